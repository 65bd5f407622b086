"""Interest accrual engine - derives a loan's amounts from elapsed time since approval"""

from datetime import date
from decimal import Decimal
from typing import Any

from community_fund.domain.models import LoanAmounts, LoanTerms
from community_fund.domain.money import (
    FOUR_PLACES,
    ZERO,
    elapsed_months,
    round_money,
    simple_interest,
    to_decimal,
)


def calculate_loan_amounts(terms: LoanTerms, now: date) -> LoanAmounts:
    """
    Compute total due and remaining balance as of `now`.

    Requirements:
    - No approval date or approved amount: total due is the approved (else
      requested) amount with zero interest
    - Otherwise simple interest on the approved amount for the months elapsed
      since approval
    - remaining_balance = max(0, total_amount_due - amount_paid)

    The result depends only on `terms` and `now`, so recomputing with the same
    evaluation date is idempotent.
    """
    amount_paid = to_decimal(terms.amount_paid)

    if not terms.approval_date or not terms.approved_amount:
        total_due = round_money(terms.approved_amount or terms.requested_amount)
        return LoanAmounts(
            total_amount_due=total_due,
            remaining_balance=max(ZERO, total_due - amount_paid),
            total_interest=round_money(ZERO),
            months_elapsed=ZERO,
        )

    months = elapsed_months(terms.approval_date, now)
    interest = round_money(simple_interest(terms.approved_amount, terms.interest_rate, months))
    total_due = round_money(to_decimal(terms.approved_amount) + interest)

    return LoanAmounts(
        total_amount_due=total_due,
        remaining_balance=round_money(max(ZERO, total_due - amount_paid)),
        total_interest=interest,
        months_elapsed=months.quantize(FOUR_PLACES),
    )


def terms_from_record(loan: Any) -> LoanTerms:
    """Read accrual inputs off any loan-shaped record (ORM row or dataclass)"""
    return LoanTerms(
        requested_amount=to_decimal(loan.requested_amount),
        approved_amount=to_decimal(loan.approved_amount) if loan.approved_amount is not None else None,
        interest_rate=to_decimal(loan.interest_rate),
        approval_date=loan.approval_date,
        amount_paid=to_decimal(loan.amount_paid),
    )


def recompute(loan: Any, now: date) -> LoanAmounts:
    """
    Refresh a loan record's snapshot fields in place and return the amounts.

    Callers decide when to invoke this: on approval, before every
    balance-affecting write, and for read-time display.
    """
    amounts = calculate_loan_amounts(terms_from_record(loan), now)
    loan.total_amount_due = amounts.total_amount_due
    loan.remaining_balance = amounts.remaining_balance
    return amounts


def yearly_interest(principal: Decimal | None, annual_rate_percent: Decimal | None) -> Decimal:
    """Interest one full year of the loan would earn"""
    return round_money(simple_interest(principal or 0, annual_rate_percent or 0, 12))
