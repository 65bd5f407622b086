"""/v1/loans - loan applications and lifecycle decisions"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from community_fund.api.dependencies import get_actor_id, get_today
from community_fund.api.v1.schemas import (
    ApiResponse,
    ApprovalDateRequest,
    DisburseRequest,
    LoanCreateRequest,
    LoanDecisionRequest,
    LoanResponse,
    Page,
)
from community_fund.config import settings
from community_fund.infrastructure.database.models import LoanRecord
from community_fund.infrastructure.database.session import get_db
from community_fund.services import loans as loan_service

router = APIRouter()


def present(loan: LoanRecord, today: date) -> LoanResponse:
    return LoanResponse.from_record(loan, loan_service.current_amounts(loan, today))


@router.post("/loans", response_model=ApiResponse[LoanResponse], status_code=201)
def request_loan(
    request_body: LoanCreateRequest,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    today: date = Depends(get_today),
):
    """
    Submit a loan application for the acting member (or the given borrower).

    The loan starts pending with nothing due until it is approved.
    """
    loan = loan_service.request_loan(
        db,
        borrower_id=str(request_body.borrower_id or actor_id),
        requested_amount=request_body.requested_amount,
        purpose=request_body.purpose,
        expected_repayment_date=request_body.expected_repayment_date,
        today=today,
        interest_rate=request_body.interest_rate,
        collateral=request_body.collateral,
        guarantor=request_body.guarantor,
        guarantor_contact=request_body.guarantor_contact,
    )
    return ApiResponse(data=present(loan, today))


@router.get("/loans", response_model=ApiResponse[Page[LoanResponse]])
def list_loans(
    borrower_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    limit = min(limit, settings.max_page_size)
    items, total = loan_service.list_loans(db, borrower_id, status, from_date, to_date, page, limit)
    return ApiResponse(data=Page[LoanResponse].build([present(loan, today) for loan in items], page, limit, total))


@router.get("/loans/{loan_id}", response_model=ApiResponse[LoanResponse])
def get_loan(loan_id: str, db: Session = Depends(get_db), today: date = Depends(get_today)):
    return ApiResponse(data=present(loan_service.get_loan(db, loan_id), today))


@router.put("/loans/{loan_id}/decision", response_model=ApiResponse[LoanResponse])
def decide_loan(
    loan_id: str,
    request_body: LoanDecisionRequest,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    today: date = Depends(get_today),
):
    loan = loan_service.decide_loan(
        db,
        loan_id,
        decision=request_body.decision,
        actor_id=actor_id,
        today=today,
        approved_amount=request_body.approved_amount,
        interest_rate=request_body.interest_rate,
        rejection_reason=request_body.rejection_reason,
    )
    return ApiResponse(data=present(loan, today))


@router.post("/loans/{loan_id}/disburse", response_model=ApiResponse[LoanResponse])
def disburse_loan(
    loan_id: str,
    request_body: Optional[DisburseRequest] = None,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    today: date = Depends(get_today),
):
    disbursement_date = request_body.disbursement_date if request_body else None
    loan = loan_service.disburse_loan(db, loan_id, today, disbursement_date, actor_id)
    return ApiResponse(data=present(loan, today))


@router.patch("/loans/{loan_id}/approval-date", response_model=ApiResponse[LoanResponse])
def update_approval_date(
    loan_id: str,
    request_body: ApprovalDateRequest,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    today: date = Depends(get_today),
):
    loan = loan_service.update_approval_date(db, loan_id, request_body.approval_date, today)
    return ApiResponse(data=present(loan, today))


@router.delete("/loans/{loan_id}", response_model=ApiResponse[dict])
def delete_loan(loan_id: str, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    loan_service.delete_loan(db, loan_id)
    return ApiResponse(data={"deleted": True, "loan_id": loan_id})
