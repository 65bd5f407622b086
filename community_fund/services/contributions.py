"""Contribution ledger operations - monthly records, payments and member status"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from community_fund.config import settings
from community_fund.domain.contributions import (
    ensure_not_paid,
    format_month,
    month_key,
    month_range,
    parse_month,
    required_contribution_start,
)
from community_fund.domain.exceptions import (
    ConcurrencyConflictError,
    DomainException,
    DuplicateError,
    ValidationError,
)
from community_fund.domain.models import BatchFailure, ContributionMethod, PaidStatus
from community_fund.domain.money import round_money, to_decimal
from community_fund.infrastructure.database.models import ContributionRecord
from community_fund.infrastructure.database.repositories import (
    ContributionRepository,
    MemberRepository,
    as_uuid,
)
from community_fund.infrastructure.observability.logging import log_contribution_event
from community_fund.infrastructure.observability.metrics import record_contribution_event
from community_fund.services.retry import run_with_conflict_retry


@dataclass
class MonthlyBatchResult:
    """Outcome of creating one month's records for many members"""

    month: str
    created: List[ContributionRecord] = field(default_factory=list)
    existing: List[ContributionRecord] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)


@dataclass
class BackfillResult:
    """Outcome of entering past months for one member"""

    member_id: str
    created: List[ContributionRecord] = field(default_factory=list)
    existing: List[str] = field(default_factory=list)
    errors: List[BatchFailure] = field(default_factory=list)


@dataclass
class ContributionStatus:
    """Which required months a member has covered"""

    member_id: str
    required_from: str
    required_months: List[str]
    missing_months: List[str]
    paid_months: List[str]
    pending_months: List[str]
    total_paid: Decimal
    total_pending: Decimal
    is_current: bool


def _amount(amount: Optional[Decimal]) -> Decimal:
    if amount is None:
        return settings.default_contribution_amount
    amount = round_money(amount)
    if amount <= 0:
        raise ValidationError("Contribution amount must be positive")
    return amount


def _method(method: Optional[str]) -> Optional[str]:
    if method is None:
        return None
    try:
        return ContributionMethod(method).value
    except ValueError:
        raise ValidationError("Payment method must be cash, bank_transfer, or mobile_money")


def _notes(notes: Optional[str]) -> Optional[str]:
    if notes is not None and len(notes) > 500:
        raise ValidationError("Notes cannot exceed 500 characters")
    return notes


def _optional_amount(amount: Optional[Decimal]) -> Optional[Decimal]:
    return _amount(amount) if amount is not None else None


def _changed(event: str, record: ContributionRecord) -> None:
    record_contribution_event(event)
    log_contribution_event(event, str(record.member_id), record.month, record.paid_status)


def _stage_monthly_record(
    db: Session,
    member_uuid,
    month: str,
    amount: Optional[Decimal],
) -> Tuple[ContributionRecord, bool]:
    """
    Get the (member, month) record, or add a pending one to the caller's unit.

    Nothing is committed here. Losing the insert to a concurrent writer raises
    ConcurrencyConflictError so the retried unit finds the winner's record.
    """
    contributions = ContributionRepository(db)
    existing = contributions.find_for_member_month(member_uuid, month)
    if existing:
        return existing, False

    year, _ = parse_month(month)
    record = ContributionRecord(
        member_id=member_uuid,
        month=month,
        year=year,
        amount=amount if amount is not None else settings.default_contribution_amount,
        paid_status=PaidStatus.PENDING.value,
    )
    try:
        contributions.insert(record)
    except IntegrityError as e:
        raise ConcurrencyConflictError(f"Contribution for {month} was created concurrently") from e
    return record, True


def _mark_paid(
    record: ContributionRecord,
    actor_uuid,
    today: date,
    amount: Optional[Decimal],
    payment_method: Optional[str],
    notes: Optional[str],
    paid_date: Optional[date],
) -> None:
    ensure_not_paid(record.paid_status)
    record.paid_status = PaidStatus.PAID.value
    record.recorded_by = actor_uuid
    if paid_date is not None:
        record.paid_date = paid_date
    elif record.paid_date is None:
        record.paid_date = today
    if amount is not None:
        record.amount = amount
    if payment_method is not None:
        record.payment_method = payment_method
    if notes is not None:
        record.notes = notes


def create_contribution(
    db: Session,
    member_id: str,
    month: str,
    amount: Optional[Decimal] = None,
    paid_status: PaidStatus | str = PaidStatus.PENDING,
    paid_date: Optional[date] = None,
    payment_method: Optional[str] = None,
    notes: Optional[str] = None,
    recorded_by: Optional[str] = None,
) -> ContributionRecord:
    """
    Strict insert of a (member, month) record.

    Raises:
        DuplicateError: the member already has a record for that month
    """
    year, _ = parse_month(month)
    amount = _amount(amount)
    try:
        paid_status = PaidStatus(paid_status)
    except ValueError:
        raise ValidationError("Paid status must be paid, pending, or overdue")
    if paid_status == PaidStatus.PAID and recorded_by is None:
        raise ValidationError("Paid contributions must record who confirmed them")

    member = MemberRepository(db).get(member_id)
    contributions = ContributionRepository(db)
    if contributions.find_for_member_month(member.id, month):
        raise DuplicateError(f"Contribution for {month} already exists")

    record = ContributionRecord(
        member_id=member.id,
        month=month,
        year=year,
        amount=amount,
        paid_status=paid_status.value,
        paid_date=paid_date,
        payment_method=_method(payment_method),
        notes=_notes(notes),
        recorded_by=as_uuid(recorded_by, "actor ID") if recorded_by else None,
    )
    try:
        contributions.insert(record)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateError(f"Contribution for {month} already exists") from e

    _changed("created", record)
    return record


def ensure_monthly_record(
    db: Session,
    member_id: str,
    month: str,
    amount: Optional[Decimal] = None,
) -> Tuple[ContributionRecord, bool]:
    """
    Get or create the pending record for (member, month).

    Returns:
        (record, created) - created is False when the record already existed,
        including when a concurrent writer inserted it first
    """
    parse_month(month)
    member = MemberRepository(db).get(member_id)
    existing = ContributionRepository(db).find_for_member_month(member.id, month)
    if existing:
        return existing, False

    try:
        return create_contribution(db, str(member.id), month, amount), True
    except DuplicateError:
        return ContributionRepository(db).find_for_member_month(member.id, month), False


def create_monthly_contributions(
    db: Session,
    year: int,
    month: int,
    member_ids: Optional[Sequence[str]] = None,
    amount: Optional[Decimal] = None,
) -> MonthlyBatchResult:
    """Ensure a record exists for every active member (or the selected ones) for the month"""
    key = format_month(year, month)
    parse_month(key)
    amount = _amount(amount)

    members = MemberRepository(db)
    if member_ids:
        targets = [str(member_id) for member_id in member_ids]
    else:
        targets = [str(member.id) for member in members.active_members()]

    result = MonthlyBatchResult(month=key)
    for member_id in targets:
        try:
            record, created = ensure_monthly_record(db, member_id, key, amount)
        except DomainException as e:
            result.failures.append(BatchFailure(item=member_id, error_kind=e.kind, message=e.message))
            continue
        (result.created if created else result.existing).append(record)

    return result


def self_report(
    db: Session,
    member_id: str,
    month: str,
    today: date,
    amount: Optional[Decimal] = None,
    payment_method: Optional[str] = None,
    notes: Optional[str] = None,
) -> ContributionRecord:
    """
    Member says they paid; stays pending until an administrator confirms.

    Creating the month's record and reporting on it commit together, so a
    report that fails leaves no record behind.
    """
    parse_month(month)
    payment_method = _method(payment_method)
    notes = _notes(notes)
    new_amount = _optional_amount(amount)
    member_uuid = MemberRepository(db).get(member_id).id

    def unit() -> Tuple[ContributionRecord, bool]:
        record, created = _stage_monthly_record(db, member_uuid, month, new_amount)
        ensure_not_paid(record.paid_status)
        record.paid_status = PaidStatus.PENDING.value
        record.paid_date = today
        if new_amount is not None:
            record.amount = new_amount
        if payment_method is not None:
            record.payment_method = payment_method
        if notes is not None:
            record.notes = notes
        db.flush()
        return record, created

    record, created = run_with_conflict_retry(db, "self_report_contribution", unit)
    if created:
        _changed("created", record)
    _changed("self_reported", record)
    return record


def admin_confirm(
    db: Session,
    contribution_id: str,
    actor_id: str,
    today: date,
    amount: Optional[Decimal] = None,
    payment_method: Optional[str] = None,
    notes: Optional[str] = None,
    paid_date: Optional[date] = None,
) -> ContributionRecord:
    """Mark a contribution paid on an administrator's confirmation"""
    contribution_uuid = as_uuid(contribution_id, "contribution ID")
    actor_uuid = as_uuid(actor_id, "actor ID")
    payment_method = _method(payment_method)
    notes = _notes(notes)
    new_amount = _optional_amount(amount)
    if paid_date is not None and paid_date > today:
        raise ValidationError("Paid date cannot be in the future")

    def unit() -> ContributionRecord:
        record = ContributionRepository(db).get(contribution_uuid)
        _mark_paid(record, actor_uuid, today, new_amount, payment_method, notes, paid_date)
        db.flush()
        return record

    record = run_with_conflict_retry(db, "confirm_contribution", unit)
    _changed("confirmed", record)
    return record


def record_payment(
    db: Session,
    member_id: str,
    month: str,
    actor_id: str,
    today: date,
    amount: Optional[Decimal] = None,
    payment_method: Optional[str] = None,
    notes: Optional[str] = None,
    paid_date: Optional[date] = None,
) -> ContributionRecord:
    """Administrator records a payment for (member, month), creating the record if needed"""
    parse_month(month)
    actor_uuid = as_uuid(actor_id, "actor ID")
    payment_method = _method(payment_method)
    notes = _notes(notes)
    new_amount = _optional_amount(amount)
    if paid_date is not None and paid_date > today:
        raise ValidationError("Paid date cannot be in the future")
    member_uuid = MemberRepository(db).get(member_id).id

    def unit() -> Tuple[ContributionRecord, bool]:
        record, created = _stage_monthly_record(db, member_uuid, month, new_amount)
        _mark_paid(record, actor_uuid, today, new_amount, payment_method, notes, paid_date)
        db.flush()
        return record, created

    record, created = run_with_conflict_retry(db, "record_contribution_payment", unit)
    if created:
        _changed("created", record)
    _changed("confirmed", record)
    return record


def total_savings(db: Session, member_id: str) -> Tuple[Decimal, int]:
    member = MemberRepository(db).get(member_id)
    return ContributionRepository(db).total_savings(member.id)


def backfill(
    db: Session,
    member_id: str,
    months: Sequence[str],
    actor_id: str,
    today: date,
    amount: Optional[Decimal] = None,
    mark_as_paid: bool = True,
    payment_method: Optional[str] = None,
    notes: Optional[str] = None,
) -> BackfillResult:
    """
    Enter past months for a member, one committed record per month.

    Malformed or future months are reported as errors, months already on the
    ledger (including ones recorded concurrently) as existing; the rest are
    created, paid when mark_as_paid is set.
    """
    if not months:
        raise ValidationError("At least one month is required")
    amount = _amount(amount)
    payment_method = _method(payment_method)
    notes = _notes(notes)
    actor_uuid = as_uuid(actor_id, "actor ID")

    member = MemberRepository(db).get(member_id)
    contributions = ContributionRepository(db)
    result = BackfillResult(member_id=str(member.id))
    current = month_key(today)

    for month in dict.fromkeys(months):
        try:
            year, month_number = parse_month(month)
            if month > current:
                raise ValidationError(f"Cannot backfill future month {month}")
        except ValidationError as e:
            result.errors.append(BatchFailure(item=str(month), error_kind=e.kind, message=e.message))
            continue

        if contributions.find_for_member_month(member.id, month):
            result.existing.append(month)
            continue

        try:
            record = create_contribution(
                db,
                str(member.id),
                month,
                amount,
                paid_status=PaidStatus.PAID if mark_as_paid else PaidStatus.PENDING,
                paid_date=date(year, month_number, 1) if mark_as_paid else None,
                payment_method=payment_method,
                notes=notes or "Historical contribution",
                recorded_by=str(actor_uuid) if mark_as_paid else None,
            )
        except DuplicateError:
            # Recorded by someone else since the check above
            result.existing.append(month)
            continue
        result.created.append(record)

    return result


def contribution_status(db: Session, member_id: str, today: date) -> ContributionStatus:
    """Required months from max(community opening, join date) through the current month"""
    member = MemberRepository(db).get(member_id)
    start = required_contribution_start(member.join_date, settings.community_opening_date)
    required = month_range(start, today)
    required_set = set(required)

    by_month = {record.month: record for record in ContributionRepository(db).for_member(member.id)}
    paid = [month for month in required if month in by_month and by_month[month].paid_status == PaidStatus.PAID.value]
    pending = [month for month in required if month in by_month and by_month[month].paid_status != PaidStatus.PAID.value]
    missing = [month for month in required if month not in by_month]

    total_paid = sum(
        (to_decimal(r.amount) for r in by_month.values() if r.month in required_set and r.paid_status == PaidStatus.PAID.value),
        Decimal("0"),
    )
    total_pending = sum(
        (to_decimal(r.amount) for r in by_month.values() if r.month in required_set and r.paid_status != PaidStatus.PAID.value),
        Decimal("0"),
    )

    return ContributionStatus(
        member_id=str(member.id),
        required_from=month_key(start),
        required_months=required,
        missing_months=missing,
        paid_months=paid,
        pending_months=pending,
        total_paid=round_money(total_paid),
        total_pending=round_money(total_pending),
        is_current=len(paid) == len(required),
    )


def list_contributions(
    db: Session,
    member_id: Optional[str] = None,
    month: Optional[str] = None,
    year: Optional[int] = None,
    paid_status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[ContributionRecord], int]:
    if month is not None:
        parse_month(month)
    if paid_status is not None:
        try:
            paid_status = PaidStatus(paid_status).value
        except ValueError:
            raise ValidationError(f"Unknown paid status: {paid_status}")
    if page < 1:
        raise ValidationError("Page must be at least 1")
    limit = max(1, min(limit, settings.max_page_size))

    return ContributionRepository(db).search(
        member_id=as_uuid(member_id, "member ID") if member_id else None,
        month=month,
        year=year,
        paid_status=paid_status,
        page=page,
        limit=limit,
    )
