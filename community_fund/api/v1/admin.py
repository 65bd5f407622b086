"""Administrator endpoints - interest refresh, dashboard overview and buy-in quotes"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from community_fund.api.dependencies import get_actor_id, get_today
from community_fund.api.v1.schemas import (
    AdminOverviewResponse,
    ApiResponse,
    CatchUpPlanResponse,
    RecalculationResponse,
)
from community_fund.infrastructure.database.session import get_db
from community_fund.services.finances import get_admin_overview, new_member_catch_up
from community_fund.services.loans import recalculate_all

router = APIRouter()


@router.post("/admin/recalculate-interest", response_model=ApiResponse[RecalculationResponse])
def recalculate_interest(
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    today: date = Depends(get_today),
):
    """Persist accrued interest on every active loan"""
    report = recalculate_all(db, today)
    return ApiResponse(data=RecalculationResponse.model_validate(report))


@router.get("/admin/overview", response_model=ApiResponse[AdminOverviewResponse])
def overview(
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    today: date = Depends(get_today),
):
    return ApiResponse(data=AdminOverviewResponse.model_validate(get_admin_overview(db, today)))


@router.get("/admin/catch-up", response_model=ApiResponse[CatchUpPlanResponse])
def catch_up(
    join_date: date = Query(..., description="Prospective member's joining date"),
    actor_id: str = Depends(get_actor_id),
    today: date = Depends(get_today),
):
    """What a member joining on join_date owes to stand level with the founders"""
    return ApiResponse(data=CatchUpPlanResponse.model_validate(new_member_catch_up(join_date, today)))
