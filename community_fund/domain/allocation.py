"""Repayment allocation rules - split a payment between principal and interest"""

from decimal import Decimal
from typing import Optional

from community_fund.domain.exceptions import StateConflictError, ValidationError
from community_fund.domain.models import LoanStatus, PaymentAllocation, PaymentType
from community_fund.domain.money import ZERO, round_money, to_decimal, within_tolerance


def allocate_payment(
    amount: Decimal,
    payment_type: PaymentType | str,
    principal_amount: Optional[Decimal] = None,
    interest_amount: Optional[Decimal] = None,
) -> PaymentAllocation:
    """
    Validate a payment command and split it.

    - principal: the whole amount reduces the balance
    - interest:  the whole amount is interest income, balance unaffected
    - combined:  caller-specified portions, both >= 0, summing to amount (+/- 0.01)

    Portions passed with principal/interest payments are ignored.
    """
    amount = to_decimal(amount)
    if amount <= 0:
        raise ValidationError("Payment amount is required and must be positive")

    try:
        payment_type = PaymentType(payment_type)
    except ValueError:
        raise ValidationError("Payment type must be principal, interest, or combined")

    if payment_type == PaymentType.PRINCIPAL:
        return PaymentAllocation(principal_amount=round_money(amount), interest_amount=round_money(ZERO))

    if payment_type == PaymentType.INTEREST:
        return PaymentAllocation(principal_amount=round_money(ZERO), interest_amount=round_money(amount))

    if principal_amount is None or interest_amount is None:
        raise ValidationError("Principal and interest amounts must be specified for combined payments")

    principal_amount = to_decimal(principal_amount)
    interest_amount = to_decimal(interest_amount)
    if principal_amount < 0 or interest_amount < 0:
        raise ValidationError("Principal and interest amounts cannot be negative")
    if not within_tolerance(principal_amount + interest_amount, amount):
        raise ValidationError("Principal and interest amounts must sum to total payment amount")

    return PaymentAllocation(
        principal_amount=round_money(principal_amount),
        interest_amount=round_money(interest_amount),
    )


def ensure_payable(status: LoanStatus | str, remaining_balance: Decimal) -> None:
    """Payments are only taken on disbursed loans that still owe something"""
    if LoanStatus(status) != LoanStatus.DISBURSED:
        raise StateConflictError("Can only record payments for disbursed loans")
    if remaining_balance <= 0:
        raise StateConflictError("Loan is already fully paid")


def ensure_within_balance(allocation: PaymentAllocation, remaining_balance: Decimal) -> None:
    if allocation.principal_amount > remaining_balance:
        raise ValidationError("Principal payment cannot exceed remaining loan balance")
