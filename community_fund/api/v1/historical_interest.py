"""/v1/historical-interest - interest income recorded outside repayments"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from community_fund.api.dependencies import get_actor_id, get_today
from community_fund.api.v1.schemas import (
    ApiResponse,
    HistoricalInterestCreateRequest,
    HistoricalInterestListResponse,
    HistoricalInterestResponse,
    HistoricalInterestSummaryResponse,
    HistoricalInterestUpdateRequest,
    InterestTotalsSchema,
    Page,
)
from community_fund.config import settings
from community_fund.infrastructure.database.session import get_db
from community_fund.services import historical_interest as interest_service

router = APIRouter()


@router.post("/historical-interest", response_model=ApiResponse[HistoricalInterestResponse], status_code=201)
def create_record(
    request_body: HistoricalInterestCreateRequest,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    today: date = Depends(get_today),
):
    record = interest_service.create_record(
        db,
        amount=request_body.amount,
        interest_date=request_body.interest_date,
        description=request_body.description,
        actor_id=actor_id,
        today=today,
        source=request_body.source,
        member_id=str(request_body.member_id) if request_body.member_id else None,
        loan_id=str(request_body.loan_id) if request_body.loan_id else None,
        borrower_name=request_body.borrower_name,
        notes=request_body.notes,
    )
    return ApiResponse(data=HistoricalInterestResponse.model_validate(record))


@router.get("/historical-interest", response_model=ApiResponse[HistoricalInterestListResponse])
def list_records(
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None),
    source: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    db: Session = Depends(get_db),
):
    limit = min(limit, settings.max_page_size)
    items, total, totals = interest_service.list_records(db, year, month, source, start_date, end_date, page, limit)
    return ApiResponse(
        data=HistoricalInterestListResponse(
            records=Page[HistoricalInterestResponse].build(
                [HistoricalInterestResponse.model_validate(record) for record in items], page, limit, total
            ),
            summary=InterestTotalsSchema.model_validate(totals),
        )
    )


@router.get("/historical-interest/summary", response_model=ApiResponse[HistoricalInterestSummaryResponse])
def get_summary(year: Optional[int] = Query(None), db: Session = Depends(get_db)):
    """Totals by source and by year, the latest records, and an optional monthly breakdown"""
    return ApiResponse(data=HistoricalInterestSummaryResponse.model_validate(interest_service.summary(db, year)))


@router.get("/historical-interest/{record_id}", response_model=ApiResponse[HistoricalInterestResponse])
def get_record(record_id: str, db: Session = Depends(get_db)):
    return ApiResponse(data=HistoricalInterestResponse.model_validate(interest_service.get_record(db, record_id)))


@router.put("/historical-interest/{record_id}", response_model=ApiResponse[HistoricalInterestResponse])
def update_record(
    record_id: str,
    request_body: HistoricalInterestUpdateRequest,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    today: date = Depends(get_today),
):
    record = interest_service.update_record(db, record_id, today, **request_body.model_dump(exclude_unset=True))
    return ApiResponse(data=HistoricalInterestResponse.model_validate(record))


@router.delete("/historical-interest/{record_id}", response_model=ApiResponse[dict])
def delete_record(record_id: str, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    interest_service.delete_record(db, record_id)
    return ApiResponse(data={"deleted": True, "record_id": record_id})
