"""Loan lifecycle state machine - legal status transitions and their preconditions"""

from datetime import date
from decimal import Decimal
from typing import Dict, FrozenSet, Optional

from community_fund.domain.exceptions import StateConflictError, ValidationError
from community_fund.domain.models import LoanStatus

LEGAL_TRANSITIONS: Dict[LoanStatus, FrozenSet[LoanStatus]] = {
    LoanStatus.PENDING: frozenset({LoanStatus.APPROVED, LoanStatus.REJECTED}),
    LoanStatus.APPROVED: frozenset({LoanStatus.DISBURSED, LoanStatus.REJECTED}),
    LoanStatus.DISBURSED: frozenset({LoanStatus.COMPLETED}),
    LoanStatus.REJECTED: frozenset(),
    LoanStatus.COMPLETED: frozenset(),
}

MAX_INTEREST_RATE = Decimal("100")


def can_transition(current: LoanStatus | str, target: LoanStatus | str) -> bool:
    return LoanStatus(target) in LEGAL_TRANSITIONS[LoanStatus(current)]


def ensure_transition(current: LoanStatus | str, target: LoanStatus | str) -> None:
    """Raise StateConflictError unless current -> target is in the transition table"""
    if not can_transition(current, target):
        raise StateConflictError(
            f"Invalid status transition from {LoanStatus(current).value} to {LoanStatus(target).value}"
        )


def ensure_deletable(current: LoanStatus | str) -> None:
    """Only pending loans have no financial history and may be deleted"""
    if LoanStatus(current) != LoanStatus.PENDING:
        raise StateConflictError("Only pending loans can be deleted")


def validate_interest_rate(interest_rate: Decimal) -> None:
    if interest_rate < 0 or interest_rate > MAX_INTEREST_RATE:
        raise ValidationError("Interest rate must be between 0 and 100")


def validate_approval_terms(
    requested_amount: Decimal,
    approved_amount: Decimal,
    interest_rate: Decimal,
) -> None:
    """Approved amount must be positive and no larger than requested; rate within [0, 100]"""
    if approved_amount <= 0:
        raise ValidationError("Approved amount must be positive")
    if approved_amount > requested_amount:
        raise ValidationError("Approved amount cannot exceed requested amount")
    validate_interest_rate(interest_rate)


def validate_loan_request(
    requested_amount: Decimal,
    purpose: str,
    expected_repayment_date: date,
    today: date,
    min_amount: Decimal,
    max_amount: Decimal,
    interest_rate: Optional[Decimal] = None,
) -> None:
    """Input checks for a new loan application"""
    if not purpose or not purpose.strip():
        raise ValidationError("Loan purpose is required")
    if len(purpose.strip()) > 500:
        raise ValidationError("Purpose cannot exceed 500 characters")
    if requested_amount < min_amount or requested_amount > max_amount:
        raise ValidationError(f"Loan amount must be between {min_amount} and {max_amount}")
    if expected_repayment_date <= today:
        raise ValidationError("Repayment date must be in the future")
    if interest_rate is not None:
        validate_interest_rate(interest_rate)


def validate_approval_date(approval_date: date, today: date) -> None:
    if approval_date > today:
        raise ValidationError("Approval date cannot be in the future")
