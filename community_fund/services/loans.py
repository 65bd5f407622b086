"""Loan lifecycle operations - request, decide, disburse, delete and interest refresh"""

import time
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from community_fund.config import settings
from community_fund.domain.exceptions import DomainException, StateConflictError, ValidationError
from community_fund.domain.interest import calculate_loan_amounts, recompute, terms_from_record
from community_fund.domain.lifecycle import (
    ensure_deletable,
    ensure_transition,
    validate_approval_date,
    validate_approval_terms,
    validate_loan_request,
)
from community_fund.domain.models import (
    ACTIVE_LOAN_STATUSES,
    BatchFailure,
    InterestRecalculation,
    LoanAmounts,
    LoanStatus,
)
from community_fund.domain.money import round_money, to_decimal
from community_fund.infrastructure.database.models import LoanRecord
from community_fund.infrastructure.database.repositories import (
    ContributionRepository,
    LoanRepository,
    MemberRepository,
    as_uuid,
)
from community_fund.infrastructure.observability.logging import (
    log_batch_item_failure,
    log_loan_transition,
    log_recalculation,
)
from community_fund.infrastructure.observability.metrics import record_loan_transition
from community_fund.services.retry import run_with_conflict_retry

DECISIONS = ("approve", "reject")


@dataclass
class RecalculationReport:
    """Batch outcome of refreshing accrued interest on every accruing loan"""

    results: List[InterestRecalculation] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)

    @property
    def updated_count(self) -> int:
        return len(self.results)


def current_amounts(loan: LoanRecord, today: date) -> LoanAmounts:
    """
    Amounts to display for a loan right now, without writing anything.

    Interest keeps accruing on approved/disbursed loans even when nothing is
    written, so those are recomputed. Other statuses show their stored snapshot.
    """
    if loan.status in {status.value for status in ACTIVE_LOAN_STATUSES}:
        return calculate_loan_amounts(terms_from_record(loan), today)

    total_due = to_decimal(loan.total_amount_due)
    accrued = total_due - to_decimal(loan.approved_amount) if loan.approved_amount and total_due else Decimal("0")
    return LoanAmounts(
        total_amount_due=total_due,
        remaining_balance=to_decimal(loan.remaining_balance),
        total_interest=round_money(max(Decimal("0"), accrued)),
        months_elapsed=Decimal("0"),
    )


def request_loan(
    db: Session,
    borrower_id: str,
    requested_amount: Decimal,
    purpose: str,
    expected_repayment_date: date,
    today: date,
    interest_rate: Optional[Decimal] = None,
    collateral: Optional[str] = None,
    guarantor: Optional[str] = None,
    guarantor_contact: Optional[str] = None,
) -> LoanRecord:
    """
    Submit a loan application.

    Requirements:
    - Amount within the configured bounds, purpose present, repayment date in the future
    - Borrower exists, is active, and has no approved/disbursed loan
    - Borrower has at least one paid contribution
    """
    requested_amount = round_money(requested_amount)
    rate = to_decimal(interest_rate) if interest_rate is not None else settings.default_interest_rate
    validate_loan_request(
        requested_amount,
        purpose,
        expected_repayment_date,
        today,
        settings.min_loan_amount,
        settings.max_loan_amount,
        rate,
    )

    borrower_uuid = as_uuid(borrower_id, "member ID")

    def unit() -> LoanRecord:
        members = MemberRepository(db)
        member = members.get(borrower_uuid)
        if not member.is_active:
            raise StateConflictError("Borrower is not an active member")

        loans = LoanRepository(db)
        if loans.find_active_for_borrower(member.id):
            raise StateConflictError("User already has an active loan")

        _, paid_count = ContributionRepository(db).total_savings(member.id)
        if paid_count == 0:
            raise ValidationError("User must have contribution history before requesting a loan")

        members.hold_for_lending(member)
        loan = LoanRecord(
            borrower_id=member.id,
            requested_amount=requested_amount,
            interest_rate=rate,
            purpose=purpose.strip(),
            collateral=collateral.strip() if collateral else None,
            guarantor=guarantor.strip() if guarantor else None,
            guarantor_contact=guarantor_contact.strip() if guarantor_contact else None,
            status=LoanStatus.PENDING.value,
            request_date=today,
            expected_repayment_date=expected_repayment_date,
            total_amount_due=Decimal("0"),
            amount_paid=Decimal("0"),
            remaining_balance=Decimal("0"),
            repayment_ids=[],
        )
        return loans.insert(loan)

    return run_with_conflict_retry(db, "request_loan", unit)


def approve_loan(
    db: Session,
    loan_id: str,
    approved_amount: Decimal,
    interest_rate: Optional[Decimal],
    approver_id: str,
    today: date,
) -> LoanRecord:
    """pending -> approved; fixes terms and computes the first snapshot"""
    loan_uuid = as_uuid(loan_id, "loan ID")
    approver_uuid = as_uuid(approver_id, "actor ID")
    approved_amount = round_money(approved_amount)

    def unit() -> Tuple[LoanRecord, str]:
        loans = LoanRepository(db)
        loan = loans.get(loan_uuid)
        previous = loan.status
        ensure_transition(previous, LoanStatus.APPROVED)

        rate = to_decimal(interest_rate) if interest_rate is not None else to_decimal(loan.interest_rate)
        validate_approval_terms(to_decimal(loan.requested_amount), approved_amount, rate)

        # Read the borrower's version before checking, so a racing approval invalidates it
        members = MemberRepository(db)
        borrower = members.get(loan.borrower_id)
        if loans.find_active_for_borrower(loan.borrower_id, exclude_id=loan.id):
            raise StateConflictError("Borrower already has an active loan")
        members.hold_for_lending(borrower)

        loan.approved_amount = approved_amount
        loan.interest_rate = rate
        loan.status = LoanStatus.APPROVED.value
        loan.approved_by = approver_uuid
        if loan.approval_date is None:
            loan.approval_date = today
        recompute(loan, today)
        db.flush()
        return loan, previous

    loan, previous = run_with_conflict_retry(db, "approve_loan", unit)
    _transitioned(loan, previous, approver_id)
    return loan


def reject_loan(db: Session, loan_id: str, reason: Optional[str], actor_id: Optional[str] = None) -> LoanRecord:
    """pending|approved -> rejected; the snapshot is left as it was"""
    loan_uuid = as_uuid(loan_id, "loan ID")
    if reason is not None and len(reason.strip()) > 500:
        raise ValidationError("Rejection reason cannot exceed 500 characters")

    def unit() -> Tuple[LoanRecord, str]:
        loan = LoanRepository(db).get(loan_uuid)
        previous = loan.status
        ensure_transition(previous, LoanStatus.REJECTED)
        loan.status = LoanStatus.REJECTED.value
        loan.rejection_reason = reason.strip() if reason else None
        db.flush()
        return loan, previous

    loan, previous = run_with_conflict_retry(db, "reject_loan", unit)
    _transitioned(loan, previous, actor_id)
    return loan


def decide_loan(
    db: Session,
    loan_id: str,
    decision: str,
    actor_id: str,
    today: date,
    approved_amount: Optional[Decimal] = None,
    interest_rate: Optional[Decimal] = None,
    rejection_reason: Optional[str] = None,
) -> LoanRecord:
    """Approve or reject a loan on an administrator's decision"""
    if decision not in DECISIONS:
        raise ValidationError("Decision must be approve or reject")

    if decision == "approve":
        if approved_amount is None:
            raise ValidationError("Approved amount is required to approve a loan")
        return approve_loan(db, loan_id, approved_amount, interest_rate, actor_id, today)

    return reject_loan(db, loan_id, rejection_reason, actor_id)


def disburse_loan(
    db: Session,
    loan_id: str,
    today: date,
    disbursement_date: Optional[date] = None,
    actor_id: Optional[str] = None,
) -> LoanRecord:
    """approved -> disbursed; funds have left the pool"""
    loan_uuid = as_uuid(loan_id, "loan ID")
    disbursement_date = disbursement_date or today
    if disbursement_date > today:
        raise ValidationError("Disbursement date cannot be in the future")

    def unit() -> Tuple[LoanRecord, str]:
        loan = LoanRepository(db).get(loan_uuid)
        previous = loan.status
        ensure_transition(previous, LoanStatus.DISBURSED)
        if loan.approval_date and disbursement_date < loan.approval_date:
            raise ValidationError("Disbursement date cannot precede the approval date")
        loan.status = LoanStatus.DISBURSED.value
        loan.disbursement_date = disbursement_date
        db.flush()
        return loan, previous

    loan, previous = run_with_conflict_retry(db, "disburse_loan", unit)
    _transitioned(loan, previous, actor_id)
    return loan


def delete_loan(db: Session, loan_id: str) -> None:
    """Remove a loan application; only pending loans have no history to lose"""
    loans = LoanRepository(db)
    loan = loans.get(loan_id)
    ensure_deletable(loan.status)
    loans.delete(loan)
    db.commit()


def update_approval_date(db: Session, loan_id: str, approval_date: date, today: date) -> LoanRecord:
    """Correct when an approved/disbursed loan started accruing, then refresh its snapshot"""
    loan_uuid = as_uuid(loan_id, "loan ID")
    validate_approval_date(approval_date, today)

    def unit() -> LoanRecord:
        loan = LoanRepository(db).get(loan_uuid)
        if loan.status not in {status.value for status in ACTIVE_LOAN_STATUSES}:
            raise StateConflictError("Can only update approval date for approved or disbursed loans")
        loan.approval_date = approval_date
        recompute(loan, today)
        db.flush()
        return loan

    return run_with_conflict_retry(db, "update_approval_date", unit)


def get_loan(db: Session, loan_id: str) -> LoanRecord:
    return LoanRepository(db).get(loan_id)


def list_loans(
    db: Session,
    borrower_id: Optional[str] = None,
    status: Optional[str] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[LoanRecord], int]:
    if status is not None:
        try:
            status = LoanStatus(status).value
        except ValueError:
            raise ValidationError(f"Unknown loan status: {status}")
    if page < 1:
        raise ValidationError("Page must be at least 1")
    limit = max(1, min(limit, settings.max_page_size))

    return LoanRepository(db).search(
        borrower_id=as_uuid(borrower_id, "member ID") if borrower_id else None,
        status=status,
        from_date=from_date,
        to_date=to_date,
        page=page,
        limit=limit,
    )


def recalculate_all(db: Session, today: date) -> RecalculationReport:
    """
    Persist refreshed interest on every accruing loan.

    Each loan is its own read-then-update unit; a failure on one loan is
    recorded and the batch moves on.
    """
    start_time = time.time()
    report = RecalculationReport()
    loan_ids = [loan.id for loan in LoanRepository(db).accruing_loans()]

    for loan_id in loan_ids:

        def unit() -> Optional[InterestRecalculation]:
            loan = LoanRepository(db).get(loan_id)
            if loan.status not in {status.value for status in ACTIVE_LOAN_STATUSES}:
                return None
            old_total = to_decimal(loan.total_amount_due)
            amounts = recompute(loan, today)
            db.flush()
            return InterestRecalculation(
                loan_id=str(loan.id),
                borrower_id=str(loan.borrower_id),
                months_elapsed=amounts.months_elapsed,
                old_total_due=round_money(old_total),
                new_total_due=amounts.total_amount_due,
                delta=round_money(amounts.total_amount_due - old_total),
            )

        try:
            result = run_with_conflict_retry(db, "recalculate_interest", unit)
        except DomainException as e:
            report.failures.append(BatchFailure(item=str(loan_id), error_kind=e.kind, message=e.message))
            continue
        except Exception as e:
            log_batch_item_failure("interest_recalculation", str(loan_id), e)
            report.failures.append(
                BatchFailure(item=str(loan_id), error_kind="InternalError", message="Loan could not be recalculated")
            )
            continue

        if result is not None:
            report.results.append(result)

    log_recalculation(report.updated_count, len(report.failures), (time.time() - start_time) * 1000)
    return report


def _transitioned(loan: LoanRecord, previous: str, actor_id: Optional[str]) -> None:
    record_loan_transition(loan.status)
    log_loan_transition(str(loan.id), previous, loan.status, actor_id)
