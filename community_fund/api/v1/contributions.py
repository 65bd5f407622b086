"""/v1/contributions - the monthly contribution ledger"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from community_fund.api.dependencies import get_actor_id, get_today
from community_fund.api.v1.schemas import (
    ApiResponse,
    BackfillRequest,
    BackfillResponse,
    ConfirmContributionRequest,
    ContributionResponse,
    ContributionStatusResponse,
    ContributionUpsertRequest,
    MonthlyBatchResponse,
    MonthlyContributionsRequest,
    Page,
    RecordContributionPaymentRequest,
    SelfReportRequest,
    UpsertContributionResponse,
)
from community_fund.config import settings
from community_fund.infrastructure.database.session import get_db
from community_fund.services import contributions as contribution_service

router = APIRouter()


def _method(method) -> Optional[str]:
    return method.value if method is not None else None


@router.put("/contributions", response_model=ApiResponse[UpsertContributionResponse])
def upsert_monthly_contribution(
    request_body: ContributionUpsertRequest,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    """Make sure the member has a record for the month; existing records are returned as-is"""
    record, created = contribution_service.ensure_monthly_record(
        db, str(request_body.member_id), request_body.month, request_body.amount
    )
    return ApiResponse(
        data=UpsertContributionResponse(contribution=ContributionResponse.model_validate(record), created=created)
    )


@router.post("/contributions/monthly", response_model=ApiResponse[MonthlyBatchResponse])
def create_monthly_contributions(
    request_body: MonthlyContributionsRequest,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    result = contribution_service.create_monthly_contributions(
        db,
        request_body.year,
        request_body.month,
        member_ids=[str(member_id) for member_id in request_body.member_ids] if request_body.member_ids else None,
        amount=request_body.amount,
    )
    return ApiResponse(data=MonthlyBatchResponse.model_validate(result))


@router.post("/contributions/self-report", response_model=ApiResponse[ContributionResponse])
def self_report(
    request_body: SelfReportRequest,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    today: date = Depends(get_today),
):
    record = contribution_service.self_report(
        db,
        str(request_body.member_id or actor_id),
        request_body.month,
        today,
        amount=request_body.amount,
        payment_method=_method(request_body.payment_method),
        notes=request_body.notes,
    )
    return ApiResponse(data=ContributionResponse.model_validate(record))


@router.post("/contributions/record-payment", response_model=ApiResponse[ContributionResponse])
def record_payment(
    request_body: RecordContributionPaymentRequest,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    today: date = Depends(get_today),
):
    record = contribution_service.record_payment(
        db,
        str(request_body.member_id),
        request_body.month,
        actor_id,
        today,
        amount=request_body.amount,
        payment_method=_method(request_body.payment_method),
        notes=request_body.notes,
        paid_date=request_body.paid_date,
    )
    return ApiResponse(data=ContributionResponse.model_validate(record))


@router.post("/contributions/backfill", response_model=ApiResponse[BackfillResponse])
def backfill(
    request_body: BackfillRequest,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    today: date = Depends(get_today),
):
    result = contribution_service.backfill(
        db,
        str(request_body.member_id),
        request_body.months,
        actor_id,
        today,
        amount=request_body.amount,
        mark_as_paid=request_body.mark_as_paid,
        payment_method=_method(request_body.payment_method),
        notes=request_body.notes,
    )
    return ApiResponse(data=BackfillResponse.model_validate(result))


@router.post("/contributions/{contribution_id}/confirm", response_model=ApiResponse[ContributionResponse])
def confirm_contribution(
    contribution_id: str,
    request_body: Optional[ConfirmContributionRequest] = None,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    today: date = Depends(get_today),
):
    request_body = request_body or ConfirmContributionRequest()
    record = contribution_service.admin_confirm(
        db,
        contribution_id,
        actor_id,
        today,
        amount=request_body.amount,
        payment_method=_method(request_body.payment_method),
        notes=request_body.notes,
        paid_date=request_body.paid_date,
    )
    return ApiResponse(data=ContributionResponse.model_validate(record))


@router.get("/contributions", response_model=ApiResponse[Page[ContributionResponse]])
def list_contributions(
    member_id: Optional[str] = Query(None),
    month: Optional[str] = Query(None),
    year: Optional[int] = Query(None),
    paid_status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    db: Session = Depends(get_db),
):
    limit = min(limit, settings.max_page_size)
    items, total = contribution_service.list_contributions(db, member_id, month, year, paid_status, page, limit)
    return ApiResponse(
        data=Page[ContributionResponse].build(
            [ContributionResponse.model_validate(record) for record in items], page, limit, total
        )
    )


@router.get("/members/{member_id}/contribution-status", response_model=ApiResponse[ContributionStatusResponse])
def contribution_status(member_id: str, db: Session = Depends(get_db), today: date = Depends(get_today)):
    status = contribution_service.contribution_status(db, member_id, today)
    return ApiResponse(data=ContributionStatusResponse.model_validate(status))
