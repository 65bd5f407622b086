"""Data access layer for community fund entities"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from community_fund.domain.exceptions import NotFoundError, ValidationError
from community_fund.domain.models import ACTIVE_LOAN_STATUSES, LoanStatus, PaidStatus
from community_fund.domain.money import round_money, to_decimal
from community_fund.infrastructure.database.models import (
    Base,
    ContributionRecord,
    HistoricalInterestRecord,
    LoanRecord,
    MemberRecord,
    RepaymentRecord,
)

ModelT = TypeVar("ModelT", bound=Base)

REPORTED_LOAN_STATUSES = (LoanStatus.APPROVED.value, LoanStatus.DISBURSED.value, LoanStatus.COMPLETED.value)
ACTIVE_STATUS_VALUES = tuple(status.value for status in ACTIVE_LOAN_STATUSES)


def as_uuid(value: Any, label: str = "id") -> uuid.UUID:
    """Parse an identifier, rejecting malformed ones as validation errors"""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(f"Invalid {label} format")


def _sum(value: Any) -> Decimal:
    return round_money(to_decimal(value))


class BaseRepository(Generic[ModelT]):
    """Document-store style access to one table: find/insert/update/delete/count"""

    model: Type[ModelT]
    label = "Record"

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, record_id: Any) -> Optional[ModelT]:
        return self.db.get(self.model, as_uuid(record_id, f"{self.label.lower()} ID"))

    def get(self, record_id: Any) -> ModelT:
        """find_by_id that raises NotFoundError when absent"""
        record = self.find_by_id(record_id)
        if record is None:
            raise NotFoundError(f"{self.label} not found")
        return record

    def find_one(self, *criteria: Any) -> Optional[ModelT]:
        return self.db.query(self.model).filter(*criteria).first()

    def find(
        self,
        *criteria: Any,
        order_by: Sequence[Any] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[ModelT]:
        query = self.db.query(self.model).filter(*criteria).order_by(*order_by)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count(self, *criteria: Any) -> int:
        return self.db.query(func.count()).select_from(self.model).filter(*criteria).scalar() or 0

    def insert(self, record: ModelT) -> ModelT:
        self.db.add(record)
        self.db.flush()  # Get ID without committing
        return record

    def update(self, record: ModelT, **patch: Any) -> ModelT:
        for name, value in patch.items():
            setattr(record, name, value)
        self.db.flush()
        return record

    def delete(self, record: ModelT) -> None:
        self.db.delete(record)
        self.db.flush()

    def _next_sequence(self, column: Any) -> int:
        current = self.db.query(func.max(column)).scalar()
        return (current or 0) + 1


class MemberRepository(BaseRepository[MemberRecord]):
    model = MemberRecord
    label = "Member"

    def next_member_code(self) -> str:
        return f"CSL{self.count() + 1:04d}"

    def find_by_code(self, member_code: str) -> Optional[MemberRecord]:
        return self.find_one(MemberRecord.member_code == member_code.upper())

    def find_by_email(self, email: str) -> Optional[MemberRecord]:
        return self.find_one(MemberRecord.email == email.lower())

    def hold_for_lending(self, member: MemberRecord) -> None:
        """
        Force a versioned UPDATE of the member row on the next flush.

        Two loan writes for the same borrower that both read this version
        cannot both commit; the later one fails with StaleDataError.
        """
        flag_modified(member, "is_active")

    def count_active(self) -> int:
        return self.count(MemberRecord.is_active.is_(True))

    def active_members(self) -> List[MemberRecord]:
        return self.find(
            MemberRecord.is_active.is_(True),
            MemberRecord.role == "member",
            order_by=(MemberRecord.member_code,),
        )


class LoanRepository(BaseRepository[LoanRecord]):
    model = LoanRecord
    label = "Loan"

    def find_active_for_borrower(self, borrower_id: uuid.UUID, exclude_id: Optional[uuid.UUID] = None) -> Optional[LoanRecord]:
        """The borrower's approved or disbursed loan, if any"""
        criteria = [LoanRecord.borrower_id == borrower_id, LoanRecord.status.in_(ACTIVE_STATUS_VALUES)]
        if exclude_id is not None:
            criteria.append(LoanRecord.id != exclude_id)
        return self.find_one(*criteria)

    def for_borrower(self, borrower_id: uuid.UUID) -> List[LoanRecord]:
        return self.find(LoanRecord.borrower_id == borrower_id, order_by=(LoanRecord.request_date.desc(),))

    def search(
        self,
        borrower_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[LoanRecord], int]:
        """Filtered, newest-first page of loans plus the total match count"""
        criteria = []
        if borrower_id is not None:
            criteria.append(LoanRecord.borrower_id == borrower_id)
        if status:
            criteria.append(LoanRecord.status == status)
        if from_date:
            criteria.append(LoanRecord.request_date >= from_date)
        if to_date:
            criteria.append(LoanRecord.request_date <= to_date)

        total = self.count(*criteria)
        items = self.find(
            *criteria,
            order_by=(LoanRecord.request_date.desc(), LoanRecord.created_at.desc()),
            limit=limit,
            offset=(page - 1) * limit,
        )
        return items, total

    def accruing_loans(self) -> List[LoanRecord]:
        """Approved/disbursed loans with an approval date and approved principal"""
        return self.find(
            LoanRecord.status.in_(ACTIVE_STATUS_VALUES),
            LoanRecord.approval_date.isnot(None),
            LoanRecord.approved_amount > 0,
            order_by=(LoanRecord.approval_date,),
        )

    def reported_loans(self) -> List[LoanRecord]:
        return self.find(
            LoanRecord.status.in_(REPORTED_LOAN_STATUSES),
            LoanRecord.approved_amount > 0,
            order_by=(LoanRecord.approval_date,),
        )

    def sum_active_principal(self) -> Decimal:
        """Principal still lent out: approved/disbursed loans with a balance left"""
        total = (
            self.db.query(func.coalesce(func.sum(LoanRecord.approved_amount), 0))
            .filter(LoanRecord.status.in_(ACTIVE_STATUS_VALUES), LoanRecord.remaining_balance > 0)
            .scalar()
        )
        return _sum(total)

    def totals_by_status(self) -> Dict[str, Tuple[int, Decimal]]:
        """Loan count and approved principal per status"""
        rows = (
            self.db.query(
                LoanRecord.status,
                func.count(LoanRecord.id),
                func.coalesce(func.sum(LoanRecord.approved_amount), 0),
            )
            .group_by(LoanRecord.status)
            .all()
        )
        return {status: (count, _sum(total)) for status, count, total in rows}

    def sum_loans_given_between(self, start: date, end: date) -> Decimal:
        """Principal of loans approved or disbursed in [start, end), each loan once"""
        total = (
            self.db.query(func.coalesce(func.sum(LoanRecord.approved_amount), 0))
            .filter(
                LoanRecord.status.in_(REPORTED_LOAN_STATUSES),
                or_(
                    (LoanRecord.approval_date >= start) & (LoanRecord.approval_date < end),
                    (LoanRecord.disbursement_date >= start) & (LoanRecord.disbursement_date < end),
                ),
            )
            .scalar()
        )
        return _sum(total)


class RepaymentRepository(BaseRepository[RepaymentRecord]):
    model = RepaymentRecord
    label = "Repayment"

    def next_sequence(self) -> int:
        return self._next_sequence(RepaymentRecord.sequence)

    def for_loan(self, loan_id: uuid.UUID) -> List[RepaymentRecord]:
        return self.find(
            RepaymentRecord.loan_id == loan_id,
            order_by=(RepaymentRecord.payment_date.desc(), RepaymentRecord.sequence.desc()),
        )

    def sum_interest(self) -> Decimal:
        return _sum(self.db.query(func.coalesce(func.sum(RepaymentRecord.interest_amount), 0)).scalar())

    def sum_interest_between(self, start: date, end: date) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(RepaymentRecord.interest_amount), 0))
            .filter(RepaymentRecord.payment_date >= start, RepaymentRecord.payment_date < end)
            .scalar()
        )
        return _sum(total)

    def interest_by_loan(self) -> Dict[uuid.UUID, Decimal]:
        rows = (
            self.db.query(RepaymentRecord.loan_id, func.sum(RepaymentRecord.interest_amount))
            .group_by(RepaymentRecord.loan_id)
            .all()
        )
        return {loan_id: _sum(total) for loan_id, total in rows}


class ContributionRepository(BaseRepository[ContributionRecord]):
    model = ContributionRecord
    label = "Contribution"

    def find_for_member_month(self, member_id: uuid.UUID, month: str) -> Optional[ContributionRecord]:
        return self.find_one(ContributionRecord.member_id == member_id, ContributionRecord.month == month)

    def for_member(self, member_id: uuid.UUID) -> List[ContributionRecord]:
        return self.find(ContributionRecord.member_id == member_id, order_by=(ContributionRecord.month.desc(),))

    def search(
        self,
        member_id: Optional[uuid.UUID] = None,
        month: Optional[str] = None,
        year: Optional[int] = None,
        paid_status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[ContributionRecord], int]:
        criteria = []
        if member_id is not None:
            criteria.append(ContributionRecord.member_id == member_id)
        if month:
            criteria.append(ContributionRecord.month == month)
        if year:
            criteria.append(ContributionRecord.year == year)
        if paid_status:
            criteria.append(ContributionRecord.paid_status == paid_status)

        total = self.count(*criteria)
        items = self.find(
            *criteria,
            order_by=(ContributionRecord.month.desc(), ContributionRecord.created_at.desc()),
            limit=limit,
            offset=(page - 1) * limit,
        )
        return items, total

    def total_savings(self, member_id: uuid.UUID) -> Tuple[Decimal, int]:
        """Sum and count of the member's paid contributions"""
        total, count = (
            self.db.query(func.coalesce(func.sum(ContributionRecord.amount), 0), func.count(ContributionRecord.id))
            .filter(ContributionRecord.member_id == member_id, ContributionRecord.paid_status == PaidStatus.PAID.value)
            .one()
        )
        return _sum(total), count or 0

    def sum_paid(self) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(ContributionRecord.amount), 0))
            .filter(ContributionRecord.paid_status == PaidStatus.PAID.value)
            .scalar()
        )
        return _sum(total)

    def totals_by_status_for_month(self, month: str) -> Dict[str, Tuple[int, Decimal]]:
        """Record count and amount per paid status for one month"""
        rows = (
            self.db.query(
                ContributionRecord.paid_status,
                func.count(ContributionRecord.id),
                func.coalesce(func.sum(ContributionRecord.amount), 0),
            )
            .filter(ContributionRecord.month == month)
            .group_by(ContributionRecord.paid_status)
            .all()
        )
        return {status: (count, _sum(total)) for status, count, total in rows}

    def sum_paid_for_month(self, month: str) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(ContributionRecord.amount), 0))
            .filter(ContributionRecord.month == month, ContributionRecord.paid_status == PaidStatus.PAID.value)
            .scalar()
        )
        return _sum(total)


class HistoricalInterestRepository(BaseRepository[HistoricalInterestRecord]):
    model = HistoricalInterestRecord
    label = "Historical interest record"

    def next_sequence(self) -> int:
        return self._next_sequence(HistoricalInterestRecord.sequence)

    @staticmethod
    def date_criteria(
        start: Optional[date] = None,
        end: Optional[date] = None,
        source: Optional[str] = None,
    ) -> List[Any]:
        """Criteria for interest_date in [start, end) and an optional source"""
        criteria = []
        if start is not None:
            criteria.append(HistoricalInterestRecord.interest_date >= start)
        if end is not None:
            criteria.append(HistoricalInterestRecord.interest_date < end)
        if source:
            criteria.append(HistoricalInterestRecord.source == source)
        return criteria

    def sum_total(self, *criteria: Any) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(HistoricalInterestRecord.amount), 0))
            .filter(*criteria)
            .scalar()
        )
        return _sum(total)

    def sum_between(self, start: date, end: date) -> Decimal:
        return self.sum_total(*self.date_criteria(start, end))

    def newest_first(self, *criteria: Any, limit: Optional[int] = None, offset: Optional[int] = None) -> List[HistoricalInterestRecord]:
        return self.find(
            *criteria,
            order_by=(HistoricalInterestRecord.interest_date.desc(), HistoricalInterestRecord.sequence.desc()),
            limit=limit,
            offset=offset,
        )

    def totals_by_source(self) -> List[Tuple[str, Decimal, int]]:
        rows = (
            self.db.query(
                HistoricalInterestRecord.source,
                func.sum(HistoricalInterestRecord.amount),
                func.count(HistoricalInterestRecord.id),
            )
            .group_by(HistoricalInterestRecord.source)
            .all()
        )
        return sorted(((source, _sum(total), count) for source, total, count in rows), key=lambda r: r[1], reverse=True)

    def amounts_with_dates(self, *criteria: Any) -> List[Tuple[date, Decimal]]:
        rows = (
            self.db.query(HistoricalInterestRecord.interest_date, HistoricalInterestRecord.amount)
            .filter(*criteria)
            .all()
        )
        return [(interest_date, to_decimal(amount)) for interest_date, amount in rows]
