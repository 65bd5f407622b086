"""Historical interest - income recorded outside the repayment flow, with reports"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from community_fund.config import settings
from community_fund.domain.contributions import MAX_YEAR, MIN_YEAR, add_months, format_month, month_label
from community_fund.domain.exceptions import ConcurrencyConflictError, ValidationError
from community_fund.domain.models import InterestSource
from community_fund.domain.money import ZERO, round_money, to_decimal
from community_fund.infrastructure.database.models import HistoricalInterestRecord
from community_fund.infrastructure.database.repositories import (
    HistoricalInterestRepository,
    LoanRepository,
    MemberRepository,
    as_uuid,
)
from community_fund.services.retry import run_with_conflict_retry

RECEIPT_PREFIX = "HI"
MAX_DESCRIPTION_LENGTH = 200
RECENT_RECORD_COUNT = 10


@dataclass
class InterestTotals:
    total_amount: Decimal
    record_count: int
    average_amount: Decimal


@dataclass
class SourceTotal:
    source: str
    total_amount: Decimal
    count: int


@dataclass
class YearTotal:
    year: int
    total_amount: Decimal
    count: int


@dataclass
class MonthTotal:
    month: str
    label: str
    total_amount: Decimal
    count: int


@dataclass
class YearBreakdown:
    year: int
    total_amount: Decimal
    monthly_breakdown: List[MonthTotal] = field(default_factory=list)


@dataclass
class HistoricalInterestSummary:
    """Report across all historical interest records"""

    total_historical_interest: Decimal
    by_source: List[SourceTotal]
    yearly_totals: List[YearTotal]
    recent_records: List[HistoricalInterestRecord]
    year_breakdown: Optional[YearBreakdown] = None


def receipt_number(sequence: int) -> str:
    return f"{RECEIPT_PREFIX}{sequence:08d}"


def _validate_amount(amount: Decimal) -> Decimal:
    amount = round_money(amount)
    if amount <= 0:
        raise ValidationError("Valid interest amount is required")
    return amount


def _validate_date(interest_date: date, today: date) -> date:
    if interest_date > today:
        raise ValidationError("Interest date cannot be in the future")
    return interest_date


def _validate_description(description: Optional[str]) -> str:
    if not description or not description.strip():
        raise ValidationError("Description cannot be empty")
    if len(description.strip()) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters")
    return description.strip()


def _validate_source(source: InterestSource | str) -> str:
    try:
        return InterestSource(source).value
    except ValueError:
        raise ValidationError("Source must be loan_repayment, penalty, late_fee, settlement, or other")


def _validate_year(year: int) -> int:
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ValidationError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
    return year


def create_record(
    db: Session,
    amount: Decimal,
    interest_date: date,
    description: str,
    actor_id: str,
    today: date,
    source: InterestSource | str = InterestSource.OTHER,
    member_id: Optional[str] = None,
    loan_id: Optional[str] = None,
    borrower_name: Optional[str] = None,
    notes: Optional[str] = None,
) -> HistoricalInterestRecord:
    """Record interest income earned before or outside tracked repayments"""
    amount = _validate_amount(amount)
    interest_date = _validate_date(interest_date, today)
    description = _validate_description(description)
    source = _validate_source(source)
    actor_uuid = as_uuid(actor_id, "actor ID")

    member_uuid = MemberRepository(db).get(member_id).id if member_id else None
    loan_uuid = LoanRepository(db).get(loan_id).id if loan_id else None

    def unit() -> HistoricalInterestRecord:
        records = HistoricalInterestRepository(db)
        sequence = records.next_sequence()
        record = HistoricalInterestRecord(
            amount=amount,
            interest_date=interest_date,
            source=source,
            description=description,
            member_id=member_uuid,
            loan_id=loan_uuid,
            borrower_name=borrower_name.strip() if borrower_name else None,
            recorded_by=actor_uuid,
            sequence=sequence,
            receipt_number=receipt_number(sequence),
            notes=notes,
        )
        try:
            return records.insert(record)
        except IntegrityError as e:
            raise ConcurrencyConflictError("Receipt number already taken by a concurrent record") from e

    return run_with_conflict_retry(db, "create_historical_interest", unit)


def get_record(db: Session, record_id: str) -> HistoricalInterestRecord:
    return HistoricalInterestRepository(db).get(record_id)


def update_record(db: Session, record_id: str, today: date, **changes: Any) -> HistoricalInterestRecord:
    """
    Patch amount, interest_date, source, description, borrower_name or notes.

    Only keys present in `changes` are touched; each is validated like on create.
    """
    patch: Dict[str, Any] = {}
    if "amount" in changes:
        patch["amount"] = _validate_amount(changes["amount"])
    if "interest_date" in changes:
        patch["interest_date"] = _validate_date(changes["interest_date"], today)
    if "description" in changes:
        patch["description"] = _validate_description(changes["description"])
    if "source" in changes:
        patch["source"] = _validate_source(changes["source"])
    if "borrower_name" in changes:
        name = changes["borrower_name"]
        patch["borrower_name"] = name.strip() if name else None
    if "notes" in changes:
        patch["notes"] = changes["notes"]

    records = HistoricalInterestRepository(db)
    record = records.get(record_id)
    records.update(record, **patch)
    db.commit()
    return record


def delete_record(db: Session, record_id: str) -> None:
    records = HistoricalInterestRepository(db)
    records.delete(records.get(record_id))
    db.commit()


def _filter_window(
    year: Optional[int],
    month: Optional[int],
    start_date: Optional[date],
    end_date: Optional[date],
) -> Tuple[Optional[date], Optional[date]]:
    """Resolve the listing filters into a half-open [start, end) interest date window"""
    if month is not None and year is None:
        raise ValidationError("Month filter requires a year")
    if year is not None:
        _validate_year(year)
        if month is not None:
            if not 1 <= month <= 12:
                raise ValidationError(f"Invalid month: {month}")
            next_year, next_month = add_months(year, month, 1)
            return date(year, month, 1), date(next_year, next_month, 1)
        return date(year, 1, 1), date(year + 1, 1, 1)
    if start_date and end_date:
        if start_date > end_date:
            raise ValidationError("Start date must not be after end date")
        return start_date, end_date + timedelta(days=1)
    return None, None


def list_records(
    db: Session,
    year: Optional[int] = None,
    month: Optional[int] = None,
    source: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 50,
) -> Tuple[List[HistoricalInterestRecord], int, InterestTotals]:
    """Filtered page of records plus the count and totals over the whole filter"""
    if page < 1:
        raise ValidationError("Page must be at least 1")
    limit = max(1, min(limit, settings.max_page_size))
    start, end = _filter_window(year, month, start_date, end_date)

    records = HistoricalInterestRepository(db)
    criteria = records.date_criteria(start, end, _validate_source(source) if source else None)
    total_count = records.count(*criteria)
    total_amount = records.sum_total(*criteria)
    average = round_money(total_amount / total_count) if total_count else round_money(ZERO)

    items = records.newest_first(*criteria, limit=limit, offset=(page - 1) * limit)
    return items, total_count, InterestTotals(total_amount=total_amount, record_count=total_count, average_amount=average)


def year_breakdown(db: Session, year: int) -> YearBreakdown:
    """Monthly totals for one year; months without records are omitted"""
    _validate_year(year)
    records = HistoricalInterestRepository(db)
    months: Dict[int, Tuple[Decimal, int]] = {}
    for interest_date, amount in records.amounts_with_dates(*records.date_criteria(date(year, 1, 1), date(year + 1, 1, 1))):
        total, count = months.get(interest_date.month, (ZERO, 0))
        months[interest_date.month] = (total + amount, count + 1)

    breakdown = [
        MonthTotal(
            month=format_month(year, month),
            label=month_label(format_month(year, month)),
            total_amount=round_money(total),
            count=count,
        )
        for month, (total, count) in sorted(months.items())
    ]
    return YearBreakdown(
        year=year,
        total_amount=round_money(sum((m.total_amount for m in breakdown), ZERO)),
        monthly_breakdown=breakdown,
    )


def summary(db: Session, year: Optional[int] = None) -> HistoricalInterestSummary:
    records = HistoricalInterestRepository(db)

    years: Dict[int, Tuple[Decimal, int]] = {}
    for interest_date, amount in records.amounts_with_dates():
        total, count = years.get(interest_date.year, (ZERO, 0))
        years[interest_date.year] = (total + to_decimal(amount), count + 1)

    return HistoricalInterestSummary(
        total_historical_interest=records.sum_total(),
        by_source=[SourceTotal(source=s, total_amount=t, count=c) for s, t, c in records.totals_by_source()],
        yearly_totals=[
            YearTotal(year=y, total_amount=round_money(total), count=count)
            for y, (total, count) in sorted(years.items())
        ],
        recent_records=records.newest_first(limit=RECENT_RECORD_COUNT),
        year_breakdown=year_breakdown(db, year) if year is not None else None,
    )
