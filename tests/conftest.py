"""Pytest fixtures for testing"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Dict, Generator, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from community_fund.api.dependencies import get_today
from community_fund.api.main import create_app
from community_fund.domain.models import LoanStatus, Member, MemberRole, PaidStatus
from community_fund.infrastructure.database.models import Base, LoanRecord
from community_fund.infrastructure.database.session import get_db
from community_fund.services.contributions import create_contribution
from community_fund.services.loans import approve_loan, disburse_loan, reject_loan, request_loan
from community_fund.services.members import create_member


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Business date every API request sees
TODAY = date(2024, 7, 15)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory() -> sessionmaker:
    """Opens independent sessions, standing in for a concurrent request worker"""
    return TestingSessionLocal


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database and a pinned clock"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_today] = lambda: TODAY
    return TestClient(app)


@pytest.fixture
def admin(db: Session) -> Member:
    return create_member(
        db,
        name="Fund Treasurer",
        phone="0700000001",
        join_date=date(2023, 9, 15),
        role=MemberRole.ADMIN,
        email="treasurer@community.test",
        password_hash="$2b$12$hashedpasswordvalue",
    )


@pytest.fixture
def admin_headers(admin: Member) -> Dict[str, str]:
    return {"X-Actor-ID": admin.member_id}


@pytest.fixture
def make_member(db: Session) -> Callable[..., Member]:
    counter = {"n": 0}

    def _make(name: str = "Amina Njeri", join_date: date = date(2024, 1, 1), **kwargs) -> Member:
        counter["n"] += 1
        return create_member(db, name=name, phone=f"07110000{counter['n']:02d}", join_date=join_date, **kwargs)

    return _make


@pytest.fixture
def member(make_member) -> Member:
    return make_member()


@pytest.fixture
def make_contribution(db: Session, admin: Member) -> Callable[..., object]:
    """Paid contribution by default; pass paid=False for a pending one"""

    def _make(member_id: str, month: str = "2024-06", amount: Decimal = Decimal("2000"), paid: bool = True):
        year, month_number = int(month[:4]), int(month[5:])
        return create_contribution(
            db,
            member_id,
            month,
            amount,
            paid_status=PaidStatus.PAID if paid else PaidStatus.PENDING,
            paid_date=date(year, month_number, 5) if paid else None,
            payment_method="mobile_money" if paid else None,
            recorded_by=admin.member_id if paid else None,
        )

    return _make


@pytest.fixture
def borrower(member: Member, make_contribution) -> Member:
    """Member with contribution history, eligible to borrow"""
    make_contribution(member.member_id, "2024-01")
    return member


@pytest.fixture
def make_loan(db: Session, admin: Member) -> Callable[..., LoanRecord]:
    """
    Walk a loan through the real lifecycle up to `status`.

    All steps happen on `start`, so accrual runs from `start`.
    """

    def _make(
        borrower_id: str,
        status: LoanStatus = LoanStatus.PENDING,
        requested_amount: Decimal = Decimal("10000"),
        approved_amount: Optional[Decimal] = None,
        interest_rate: Optional[Decimal] = None,
        start: date = date(2024, 1, 15),
    ) -> LoanRecord:
        loan = request_loan(
            db,
            borrower_id,
            requested_amount,
            "Dairy cow purchase",
            start + timedelta(days=365),
            start,
            interest_rate=interest_rate,
        )
        if status == LoanStatus.REJECTED:
            return reject_loan(db, str(loan.id), "Insufficient guarantor", admin.member_id)
        if status in (LoanStatus.APPROVED, LoanStatus.DISBURSED):
            loan = approve_loan(db, str(loan.id), approved_amount or requested_amount, interest_rate, admin.member_id, start)
        if status == LoanStatus.DISBURSED:
            loan = disburse_loan(db, str(loan.id), start, actor_id=admin.member_id)
        return loan

    return _make
