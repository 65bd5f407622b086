"""Unit tests for money rounding, elapsed months and interest accrual"""

import pytest
from datetime import date
from decimal import Decimal
from community_fund.domain.interest import calculate_loan_amounts, recompute, yearly_interest
from community_fund.domain.models import LoanTerms
from community_fund.domain.money import elapsed_months, round_money, simple_interest, within_tolerance


def terms(approved="10000", rate="16", approval_date=date(2024, 1, 1), paid="0", requested="10000") -> LoanTerms:
    return LoanTerms(
        requested_amount=Decimal(requested),
        approved_amount=Decimal(approved) if approved is not None else None,
        interest_rate=Decimal(rate),
        approval_date=approval_date,
        amount_paid=Decimal(paid),
    )


def test_round_money_half_up():
    assert round_money(Decimal("666.665")) == Decimal("666.67")
    assert round_money(Decimal("0.005")) == Decimal("0.01")
    assert round_money("10") == Decimal("10.00")
    assert round_money(None) == Decimal("0.00")


@pytest.mark.parametrize(
    "start,evaluation,expected",
    [
        (date(2024, 1, 1), date(2024, 7, 1), Decimal("6")),
        (date(2024, 1, 10), date(2024, 3, 25), Decimal("2.5")),
        (date(2023, 11, 1), date(2024, 2, 1), Decimal("3")),
        # Evaluation day before start day: whole months only, nothing subtracted
        (date(2024, 1, 20), date(2024, 3, 5), Decimal("2")),
        (date(2024, 5, 1), date(2024, 5, 1), Decimal("0")),
    ],
)
def test_elapsed_months(start, evaluation, expected):
    assert elapsed_months(start, evaluation) == expected


def test_elapsed_months_never_negative():
    assert elapsed_months(date(2024, 7, 1), date(2024, 3, 1)) == 0


def test_simple_interest_formula():
    # 10000 * 16% * 6/12
    assert simple_interest(Decimal("10000"), Decimal("16"), Decimal("6")) == Decimal("800")


def test_ten_thousand_at_sixteen_percent_for_six_months():
    """10000 approved at 16%, six months later: 800 interest, 10800 due"""
    amounts = calculate_loan_amounts(terms(), date(2024, 7, 1))

    assert amounts.total_interest == Decimal("800.00")
    assert amounts.total_amount_due == Decimal("10800.00")
    assert amounts.remaining_balance == Decimal("10800.00")
    assert amounts.months_elapsed == Decimal("6")


def test_remaining_balance_subtracts_principal_paid():
    amounts = calculate_loan_amounts(terms(paid="3000"), date(2024, 7, 1))

    assert amounts.remaining_balance == Decimal("7800.00")
    assert amounts.remaining_balance == max(Decimal("0"), amounts.total_amount_due - Decimal("3000"))


def test_remaining_balance_floors_at_zero():
    amounts = calculate_loan_amounts(terms(paid="20000"), date(2024, 7, 1))
    assert amounts.remaining_balance == 0


def test_unapproved_terms_carry_no_interest():
    amounts = calculate_loan_amounts(terms(approved=None, approval_date=None, requested="5000"), date(2024, 7, 1))

    assert amounts.total_amount_due == Decimal("5000.00")
    assert amounts.total_interest == 0
    assert amounts.months_elapsed == 0


def test_fractional_month_interest_is_rounded_to_cents():
    # 10000 * 16% * (2 + 1/30)/12 = 271.111...
    amounts = calculate_loan_amounts(terms(approval_date=date(2024, 1, 10)), date(2024, 3, 11))

    assert amounts.total_interest == Decimal("271.11")
    assert amounts.total_amount_due == Decimal("10271.11")


def test_recompute_is_idempotent_for_fixed_date():
    class Loan:
        requested_amount = Decimal("10000")
        approved_amount = Decimal("10000")
        interest_rate = Decimal("16")
        approval_date = date(2024, 1, 1)
        amount_paid = Decimal("1000")
        total_amount_due = Decimal("0")
        remaining_balance = Decimal("0")

    loan = Loan()
    first = recompute(loan, date(2024, 4, 16))
    snapshot = (loan.total_amount_due, loan.remaining_balance)
    second = recompute(loan, date(2024, 4, 16))

    assert first == second
    assert (loan.total_amount_due, loan.remaining_balance) == snapshot


def test_yearly_interest():
    assert yearly_interest(Decimal("10000"), Decimal("16")) == Decimal("1600.00")
    assert yearly_interest(None, None) == Decimal("0.00")


def test_within_tolerance():
    assert within_tolerance(Decimal("100.00"), Decimal("100.01"))
    assert not within_tolerance(Decimal("100.00"), Decimal("100.02"))
