"""Member registry - record-only and login-capable members"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from community_fund.domain.exceptions import DuplicateError, ValidationError
from community_fund.domain.models import LoginCapableMember, Member, MemberRole, RecordOnlyMember
from community_fund.infrastructure.database.models import LoanRecord, MemberRecord
from community_fund.infrastructure.database.repositories import (
    ContributionRepository,
    LoanRepository,
    MemberRepository,
)


@dataclass
class MemberSummary:
    """Member dashboard: savings, the loan currently out, and past loans"""

    member: Member
    total_savings: Decimal
    contribution_count: int
    current_loan: Optional[LoanRecord]
    loan_history: List[LoanRecord] = field(default_factory=list)


def to_member(record: MemberRecord) -> Member:
    """Map a row to the variant matching its credentials"""
    common = dict(
        member_id=str(record.id),
        member_code=record.member_code,
        name=record.name,
        phone=record.phone,
        role=MemberRole(record.role),
        is_active=record.is_active,
        join_date=record.join_date,
    )
    if record.email is not None and record.password_hash is not None:
        return LoginCapableMember(email=record.email, password_hash=record.password_hash, **common)
    return RecordOnlyMember(**common)


def create_member(
    db: Session,
    name: str,
    phone: str,
    join_date: date,
    role: MemberRole | str = MemberRole.MEMBER,
    email: Optional[str] = None,
    password_hash: Optional[str] = None,
) -> Member:
    """
    Register a member.

    Credentials come as a pair: email + password hash make a login-capable
    member, neither makes a record-only one. Hashing is the caller's job.
    """
    if not name or not name.strip():
        raise ValidationError("Name is required")
    if not phone or not phone.strip():
        raise ValidationError("Phone number is required")
    if (email is None) != (password_hash is None):
        raise ValidationError("Email and password hash must be provided together")
    try:
        role = MemberRole(role)
    except ValueError:
        raise ValidationError("Role must be admin or member")

    members = MemberRepository(db)
    if email is not None:
        email = email.strip().lower()
        if members.find_by_email(email):
            raise DuplicateError("A member with this email already exists")

    member_code = members.next_member_code()
    while members.find_by_code(member_code):
        member_code = f"CSL{int(member_code[3:]) + 1:04d}"

    record = MemberRecord(
        member_code=member_code,
        name=name.strip(),
        phone=phone.strip(),
        email=email,
        password_hash=password_hash,
        role=role.value,
        is_active=True,
        join_date=join_date,
    )
    try:
        members.insert(record)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateError("Member code or email already taken") from e

    return to_member(record)


def get_member(db: Session, member_id: str) -> Member:
    return to_member(MemberRepository(db).get(member_id))


def list_members(db: Session, active_only: bool = False) -> List[Member]:
    members = MemberRepository(db)
    records = members.active_members() if active_only else members.find(order_by=(MemberRecord.member_code,))
    return [to_member(record) for record in records]


def member_summary(db: Session, member_id: str) -> MemberSummary:
    """Savings and loans for one member; loan amounts are refreshed by the caller for display"""
    record = MemberRepository(db).get(member_id)
    loans = LoanRepository(db)
    total_savings, contribution_count = ContributionRepository(db).total_savings(record.id)

    return MemberSummary(
        member=to_member(record),
        total_savings=total_savings,
        contribution_count=contribution_count,
        current_loan=loans.find_active_for_borrower(record.id),
        loan_history=loans.for_borrower(record.id),
    )
