"""/v1/loans/{loan_id}/repayments - record and list repayments"""

from datetime import date
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from community_fund.api.dependencies import get_actor_id, get_today
from community_fund.api.v1.schemas import (
    ApiResponse,
    LoanResponse,
    RecordedRepaymentResponse,
    RepaymentRequest,
    RepaymentResponse,
)
from community_fund.infrastructure.database.session import get_db
from community_fund.services import loans as loan_service
from community_fund.services import repayments as repayment_service

router = APIRouter()


@router.post("/loans/{loan_id}/repayments", response_model=ApiResponse[RecordedRepaymentResponse], status_code=201)
def record_repayment(
    loan_id: str,
    request_body: RepaymentRequest,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    today: date = Depends(get_today),
):
    """
    Record a repayment and return it with the updated loan.

    A repayment that clears the balance completes the loan.
    """
    repayment = repayment_service.record_repayment(
        db,
        loan_id,
        amount=request_body.amount,
        payment_type=request_body.payment_type,
        actor_id=actor_id,
        today=today,
        principal_amount=request_body.principal_amount,
        interest_amount=request_body.interest_amount,
        payment_method=request_body.payment_method,
        payment_date=request_body.payment_date,
        notes=request_body.notes,
    )
    loan = loan_service.get_loan(db, loan_id)
    return ApiResponse(
        data=RecordedRepaymentResponse(
            repayment=RepaymentResponse.model_validate(repayment),
            loan=LoanResponse.from_record(loan, loan_service.current_amounts(loan, today)),
        )
    )


@router.get("/loans/{loan_id}/repayments", response_model=ApiResponse[List[RepaymentResponse]])
def list_repayments(loan_id: str, db: Session = Depends(get_db)):
    repayments = repayment_service.list_repayments(db, loan_id)
    return ApiResponse(data=[RepaymentResponse.model_validate(repayment) for repayment in repayments])
