"""/v1/members - member registry and member dashboard"""

from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from community_fund.api.dependencies import get_today
from community_fund.api.v1.schemas import (
    ApiResponse,
    LoanResponse,
    MemberCreateRequest,
    MemberResponse,
    MemberSummaryResponse,
)
from community_fund.infrastructure.database.session import get_db
from community_fund.services import members as member_service
from community_fund.services.loans import current_amounts

router = APIRouter()


@router.post("/members", response_model=ApiResponse[MemberResponse], status_code=201)
def create_member(
    request_body: MemberCreateRequest,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    member = member_service.create_member(
        db,
        name=request_body.name,
        phone=request_body.phone,
        join_date=request_body.join_date or today,
        role=request_body.role,
        email=request_body.email,
        password_hash=request_body.password_hash,
    )
    return ApiResponse(data=MemberResponse.model_validate(member))


@router.get("/members", response_model=ApiResponse[List[MemberResponse]])
def list_members(active_only: bool = Query(False), db: Session = Depends(get_db)):
    members = member_service.list_members(db, active_only=active_only)
    return ApiResponse(data=[MemberResponse.model_validate(member) for member in members])


@router.get("/members/{member_id}/summary", response_model=ApiResponse[MemberSummaryResponse])
def get_member_summary(member_id: str, db: Session = Depends(get_db), today: date = Depends(get_today)):
    """Savings total, the current loan with interest accrued to today, and loan history"""
    summary = member_service.member_summary(db, member_id)
    current_loan = None
    if summary.current_loan is not None:
        current_loan = LoanResponse.from_record(summary.current_loan, current_amounts(summary.current_loan, today))

    return ApiResponse(
        data=MemberSummaryResponse(
            member=MemberResponse.model_validate(summary.member),
            total_savings=summary.total_savings,
            contribution_count=summary.contribution_count,
            current_loan=current_loan,
            loan_history=[LoanResponse.from_record(loan, current_amounts(loan, today)) for loan in summary.loan_history],
        )
    )
