"""GET /v1/community-finances - point-in-time rollup of the fund"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from community_fund.api.dependencies import get_today
from community_fund.api.v1.schemas import ApiResponse, CommunityFinancesResponse
from community_fund.infrastructure.database.session import get_db
from community_fund.services.finances import get_community_finances

router = APIRouter()


@router.get("/community-finances", response_model=ApiResponse[CommunityFinancesResponse])
def community_finances(
    as_of: Optional[date] = Query(None, description="Last month of the trailing history; defaults to today"),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    finances = get_community_finances(db, as_of or today)
    return ApiResponse(data=CommunityFinancesResponse.model_validate(finances))
