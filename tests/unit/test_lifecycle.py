"""Unit tests for the loan status machine and application checks"""

import pytest
from datetime import date
from decimal import Decimal
from community_fund.domain.exceptions import StateConflictError, ValidationError
from community_fund.domain.lifecycle import (
    LEGAL_TRANSITIONS,
    can_transition,
    ensure_deletable,
    ensure_transition,
    validate_approval_date,
    validate_approval_terms,
    validate_loan_request,
)
from community_fund.domain.models import LoanStatus

TODAY = date(2024, 7, 15)


@pytest.mark.parametrize(
    "current,target",
    [
        (LoanStatus.PENDING, LoanStatus.APPROVED),
        (LoanStatus.PENDING, LoanStatus.REJECTED),
        (LoanStatus.APPROVED, LoanStatus.DISBURSED),
        (LoanStatus.APPROVED, LoanStatus.REJECTED),
        (LoanStatus.DISBURSED, LoanStatus.COMPLETED),
    ],
)
def test_legal_transitions(current, target):
    assert can_transition(current, target)
    ensure_transition(current.value, target.value)


def test_every_other_transition_is_rejected():
    for current in LoanStatus:
        for target in LoanStatus:
            if target in LEGAL_TRANSITIONS[current]:
                continue
            with pytest.raises(StateConflictError):
                ensure_transition(current, target)


def test_terminal_states_have_no_exits():
    assert LEGAL_TRANSITIONS[LoanStatus.REJECTED] == frozenset()
    assert LEGAL_TRANSITIONS[LoanStatus.COMPLETED] == frozenset()


def test_completed_to_pending_message():
    with pytest.raises(StateConflictError, match="from completed to pending"):
        ensure_transition("completed", "pending")


def test_only_pending_loans_are_deletable():
    ensure_deletable(LoanStatus.PENDING)
    for status in (LoanStatus.APPROVED, LoanStatus.DISBURSED, LoanStatus.REJECTED, LoanStatus.COMPLETED):
        with pytest.raises(StateConflictError):
            ensure_deletable(status)


def test_approved_amount_cannot_exceed_requested():
    with pytest.raises(ValidationError, match="cannot exceed requested"):
        validate_approval_terms(Decimal("5000"), Decimal("5000.01"), Decimal("16"))


def test_approved_amount_must_be_positive():
    with pytest.raises(ValidationError):
        validate_approval_terms(Decimal("5000"), Decimal("0"), Decimal("16"))


@pytest.mark.parametrize("rate", [Decimal("-1"), Decimal("100.5")])
def test_interest_rate_bounds(rate):
    with pytest.raises(ValidationError):
        validate_approval_terms(Decimal("5000"), Decimal("4000"), rate)


def test_valid_loan_request_passes():
    validate_loan_request(
        Decimal("5000"), "Roof repairs", date(2025, 1, 1), TODAY, Decimal("1000"), Decimal("100000"), Decimal("16")
    )


@pytest.mark.parametrize(
    "amount,purpose,repayment_date,message",
    [
        (Decimal("999"), "Roof", date(2025, 1, 1), "between"),
        (Decimal("100001"), "Roof", date(2025, 1, 1), "between"),
        (Decimal("5000"), "  ", date(2025, 1, 1), "purpose is required"),
        (Decimal("5000"), "x" * 501, date(2025, 1, 1), "500 characters"),
        (Decimal("5000"), "Roof", TODAY, "future"),
    ],
)
def test_invalid_loan_requests(amount, purpose, repayment_date, message):
    with pytest.raises(ValidationError, match=message):
        validate_loan_request(amount, purpose, repayment_date, TODAY, Decimal("1000"), Decimal("100000"))


def test_approval_date_cannot_be_in_future():
    validate_approval_date(TODAY, TODAY)
    with pytest.raises(ValidationError):
        validate_approval_date(date(2024, 7, 16), TODAY)
