"""Repayment recording - allocate a payment, append it, and settle the loan balance"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from community_fund.domain.allocation import allocate_payment, ensure_payable, ensure_within_balance
from community_fund.domain.exceptions import ConcurrencyConflictError, ValidationError
from community_fund.domain.interest import recompute
from community_fund.domain.models import LoanStatus, PaymentType, RepaymentMethod
from community_fund.domain.money import round_money, to_decimal
from community_fund.infrastructure.database.models import RepaymentRecord
from community_fund.infrastructure.database.repositories import LoanRepository, RepaymentRepository, as_uuid
from community_fund.infrastructure.observability.logging import log_loan_transition, log_repayment
from community_fund.infrastructure.observability.metrics import observe_repayment, record_loan_transition
from community_fund.services.retry import run_with_conflict_retry

RECEIPT_PREFIX = "RPT"


def receipt_number(sequence: int) -> str:
    return f"{RECEIPT_PREFIX}{sequence:08d}"


def record_repayment(
    db: Session,
    loan_id: str,
    amount: Decimal,
    payment_type: PaymentType | str,
    actor_id: str,
    today: date,
    principal_amount: Optional[Decimal] = None,
    interest_amount: Optional[Decimal] = None,
    payment_method: RepaymentMethod | str = RepaymentMethod.CASH,
    payment_date: Optional[date] = None,
    notes: Optional[str] = None,
) -> RepaymentRecord:
    """
    Record one repayment against a disbursed loan.

    Requirements:
    - The payment command is validated before the loan is read
    - The loan snapshot is refreshed at `today` before checking the balance
    - The payment date falls between disbursement and today
    - Principal portion may not exceed the remaining balance
    - Repayment insert, amount_paid, remaining_balance and repayment_ids change
      together in one transaction; a zero balance completes the loan

    Args:
        payment_date: defaults to today; may not be in the future

    Raises:
        ValidationError: malformed command or over-allocation
        StateConflictError: loan not disbursed or already fully paid
        ConcurrencyConflictError: lost the race on every retry
    """
    allocation = allocate_payment(amount, payment_type, principal_amount, interest_amount)
    amount = round_money(amount)
    payment_type = PaymentType(payment_type)
    try:
        payment_method = RepaymentMethod(payment_method)
    except ValueError:
        raise ValidationError("Payment method must be cash, bank_transfer, mobile_money, or settlement")
    payment_date = payment_date or today
    if payment_date > today:
        raise ValidationError("Payment date cannot be in the future")
    if notes is not None and len(notes) > 500:
        raise ValidationError("Notes cannot exceed 500 characters")

    loan_uuid = as_uuid(loan_id, "loan ID")
    actor_uuid = as_uuid(actor_id, "actor ID")

    def unit():
        loans = LoanRepository(db)
        repayments = RepaymentRepository(db)

        loan = loans.get(loan_uuid)
        amounts = recompute(loan, today)
        ensure_payable(loan.status, amounts.remaining_balance)
        if loan.disbursement_date and payment_date < loan.disbursement_date:
            raise ValidationError("Payment date cannot precede the disbursement date")
        ensure_within_balance(allocation, amounts.remaining_balance)

        sequence = repayments.next_sequence()
        new_amount_paid = round_money(to_decimal(loan.amount_paid) + allocation.principal_amount)
        remaining = round_money(max(Decimal("0"), amounts.total_amount_due - new_amount_paid))

        repayment = RepaymentRecord(
            loan_id=loan.id,
            borrower_id=loan.borrower_id,
            amount=amount,
            payment_date=payment_date,
            payment_method=payment_method.value,
            principal_amount=allocation.principal_amount,
            interest_amount=allocation.interest_amount,
            remaining_balance=remaining,
            recorded_by=actor_uuid,
            notes=notes,
            sequence=sequence,
            receipt_number=receipt_number(sequence),
        )
        try:
            repayments.insert(repayment)
        except IntegrityError as e:
            raise ConcurrencyConflictError("Receipt number already taken by a concurrent repayment") from e

        previous = loan.status
        loan.amount_paid = new_amount_paid
        loan.remaining_balance = remaining
        loan.repayment_ids = list(loan.repayment_ids or []) + [str(repayment.id)]
        if remaining <= 0:
            loan.status = LoanStatus.COMPLETED.value
            loan.actual_repayment_date = payment_date
        db.flush()
        return repayment, loan, previous

    repayment, loan, previous = run_with_conflict_retry(db, "record_repayment", unit)

    observe_repayment(payment_type.value, amount)
    log_repayment(
        str(loan.id),
        repayment.receipt_number,
        payment_type.value,
        str(repayment.principal_amount),
        str(repayment.interest_amount),
        str(repayment.remaining_balance),
    )
    if loan.status != previous:
        record_loan_transition(loan.status)
        log_loan_transition(str(loan.id), previous, loan.status, actor_id)

    return repayment


def list_repayments(db: Session, loan_id: str) -> List[RepaymentRecord]:
    """Repayments for a loan, newest first"""
    loan = LoanRepository(db).get(loan_id)
    return RepaymentRepository(db).for_loan(loan.id)
