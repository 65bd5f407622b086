"""Pydantic schemas for API request/response validation"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

from community_fund.domain.models import (
    ContributionMethod,
    InterestSource,
    LoanAmounts,
    LoanStatus,
    MemberRole,
    PaidStatus,
    PaymentType,
    RepaymentMethod,
)

# Money travels as Decimal internally and as a JSON number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope shared by every endpoint"""

    success: bool = True
    data: T


class ErrorResponse(BaseModel):
    """Failure envelope"""

    success: bool = False
    error_kind: str
    message: str


class Page(BaseModel, Generic[T]):
    items: List[T]
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, items: List[T], page: int, limit: int, total: int) -> "Page[T]":
        return cls(items=items, page=page, limit=limit, total=total, pages=(total + limit - 1) // limit)


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class BatchFailureSchema(ORMModel):
    item: str
    error_kind: str
    message: str


# Members


class MemberCreateRequest(BaseModel):
    """Request body for POST /v1/members"""

    name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=1, max_length=30)
    join_date: Optional[date] = None
    role: MemberRole = MemberRole.MEMBER
    email: Optional[str] = Field(None, max_length=254)
    password_hash: Optional[str] = Field(None, description="Pre-hashed password; both or neither with email")


class MemberResponse(ORMModel):
    member_id: str
    member_code: str
    name: str
    phone: str
    role: MemberRole
    is_active: bool
    join_date: date
    can_login: bool
    email: Optional[str] = None


# Loans


class LoanCreateRequest(BaseModel):
    """Request body for POST /v1/loans"""

    borrower_id: Optional[uuid.UUID] = Field(None, description="Defaults to the acting member")
    requested_amount: Decimal = Field(..., gt=0)
    purpose: str = Field(..., min_length=1)
    expected_repayment_date: date
    interest_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    collateral: Optional[str] = None
    guarantor: Optional[str] = None
    guarantor_contact: Optional[str] = None


class LoanDecisionRequest(BaseModel):
    """Request body for PUT /v1/loans/{loan_id}/decision"""

    decision: str = Field(..., description="approve | reject")
    approved_amount: Optional[Decimal] = None
    interest_rate: Optional[Decimal] = None
    rejection_reason: Optional[str] = None


class DisburseRequest(BaseModel):
    disbursement_date: Optional[date] = None


class ApprovalDateRequest(BaseModel):
    approval_date: date


class LoanResponse(ORMModel):
    """Loan with amounts evaluated at request time"""

    id: uuid.UUID
    borrower_id: uuid.UUID
    requested_amount: Money
    approved_amount: Optional[Money] = None
    interest_rate: Money
    purpose: str
    collateral: Optional[str] = None
    guarantor: Optional[str] = None
    guarantor_contact: Optional[str] = None
    status: LoanStatus
    request_date: date
    expected_repayment_date: date
    approval_date: Optional[date] = None
    approved_by: Optional[uuid.UUID] = None
    disbursement_date: Optional[date] = None
    actual_repayment_date: Optional[date] = None
    rejection_reason: Optional[str] = None
    total_amount_due: Money
    amount_paid: Money
    remaining_balance: Money
    total_interest: Money = Decimal("0")
    months_elapsed: Money = Decimal("0")
    repayment_ids: List[str]
    version: int

    @classmethod
    def from_record(cls, loan: Any, amounts: LoanAmounts) -> "LoanResponse":
        """Row fields, with the snapshot replaced by amounts evaluated now"""
        return cls.model_validate(loan).model_copy(
            update={
                "total_amount_due": amounts.total_amount_due,
                "remaining_balance": amounts.remaining_balance,
                "total_interest": amounts.total_interest,
                "months_elapsed": amounts.months_elapsed,
            }
        )


# Repayments


class RepaymentRequest(BaseModel):
    """Request body for POST /v1/loans/{loan_id}/repayments"""

    amount: Decimal
    payment_type: PaymentType
    principal_amount: Optional[Decimal] = None
    interest_amount: Optional[Decimal] = None
    payment_method: RepaymentMethod = RepaymentMethod.CASH
    payment_date: Optional[date] = None
    notes: Optional[str] = None


class RepaymentResponse(ORMModel):
    id: uuid.UUID
    loan_id: uuid.UUID
    borrower_id: uuid.UUID
    amount: Money
    payment_date: date
    payment_method: RepaymentMethod
    principal_amount: Money
    interest_amount: Money
    remaining_balance: Money
    recorded_by: uuid.UUID
    notes: Optional[str] = None
    receipt_number: str


class RecordedRepaymentResponse(BaseModel):
    repayment: RepaymentResponse
    loan: LoanResponse


# Contributions


class ContributionUpsertRequest(BaseModel):
    """Request body for PUT /v1/contributions"""

    member_id: uuid.UUID
    month: str = Field(..., description="YYYY-MM")
    amount: Optional[Decimal] = None


class MonthlyContributionsRequest(BaseModel):
    year: int
    month: int = Field(..., ge=1, le=12)
    member_ids: Optional[List[uuid.UUID]] = None
    amount: Optional[Decimal] = None


class SelfReportRequest(BaseModel):
    member_id: Optional[uuid.UUID] = Field(None, description="Defaults to the acting member")
    month: str
    amount: Optional[Decimal] = None
    payment_method: Optional[ContributionMethod] = None
    notes: Optional[str] = None


class ConfirmContributionRequest(BaseModel):
    amount: Optional[Decimal] = None
    payment_method: Optional[ContributionMethod] = None
    notes: Optional[str] = None
    paid_date: Optional[date] = None


class RecordContributionPaymentRequest(ConfirmContributionRequest):
    member_id: uuid.UUID
    month: str


class BackfillRequest(BaseModel):
    member_id: uuid.UUID
    months: List[str] = Field(..., min_length=1)
    amount: Optional[Decimal] = None
    mark_as_paid: bool = True
    payment_method: Optional[ContributionMethod] = None
    notes: Optional[str] = None


class ContributionResponse(ORMModel):
    id: uuid.UUID
    member_id: uuid.UUID
    month: str
    year: int
    amount: Money
    paid_status: PaidStatus
    paid_date: Optional[date] = None
    payment_method: Optional[ContributionMethod] = None
    notes: Optional[str] = None
    recorded_by: Optional[uuid.UUID] = None
    version: int


class UpsertContributionResponse(BaseModel):
    contribution: ContributionResponse
    created: bool


class MonthlyBatchResponse(ORMModel):
    month: str
    created: List[ContributionResponse]
    existing: List[ContributionResponse]
    failures: List[BatchFailureSchema]


class BackfillResponse(ORMModel):
    member_id: str
    created: List[ContributionResponse]
    existing: List[str]
    errors: List[BatchFailureSchema]


class ContributionStatusResponse(ORMModel):
    member_id: str
    required_from: str
    required_months: List[str]
    missing_months: List[str]
    paid_months: List[str]
    pending_months: List[str]
    total_paid: Money
    total_pending: Money
    is_current: bool


# Members (summary view)


class MemberSummaryResponse(BaseModel):
    member: MemberResponse
    total_savings: Money
    contribution_count: int
    current_loan: Optional[LoanResponse] = None
    loan_history: List[LoanResponse]


# Historical interest


class HistoricalInterestCreateRequest(BaseModel):
    amount: Decimal
    interest_date: date
    description: str
    source: InterestSource = InterestSource.OTHER
    member_id: Optional[uuid.UUID] = None
    loan_id: Optional[uuid.UUID] = None
    borrower_name: Optional[str] = None
    notes: Optional[str] = None


class HistoricalInterestUpdateRequest(BaseModel):
    """Only fields sent in the body are changed"""

    amount: Optional[Decimal] = None
    interest_date: Optional[date] = None
    description: Optional[str] = None
    source: Optional[InterestSource] = None
    borrower_name: Optional[str] = None
    notes: Optional[str] = None


class HistoricalInterestResponse(ORMModel):
    id: uuid.UUID
    amount: Money
    interest_date: date
    source: InterestSource
    description: str
    member_id: Optional[uuid.UUID] = None
    loan_id: Optional[uuid.UUID] = None
    borrower_name: Optional[str] = None
    recorded_by: uuid.UUID
    receipt_number: str
    notes: Optional[str] = None


class InterestTotalsSchema(ORMModel):
    total_amount: Money
    record_count: int
    average_amount: Money


class HistoricalInterestListResponse(BaseModel):
    records: Page[HistoricalInterestResponse]
    summary: InterestTotalsSchema


class SourceTotalSchema(ORMModel):
    source: InterestSource
    total_amount: Money
    count: int


class YearTotalSchema(ORMModel):
    year: int
    total_amount: Money
    count: int


class MonthTotalSchema(ORMModel):
    month: str
    label: str
    total_amount: Money
    count: int


class YearBreakdownSchema(ORMModel):
    year: int
    total_amount: Money
    monthly_breakdown: List[MonthTotalSchema]


class HistoricalInterestSummaryResponse(ORMModel):
    total_historical_interest: Money
    by_source: List[SourceTotalSchema]
    yearly_totals: List[YearTotalSchema]
    recent_records: List[HistoricalInterestResponse]
    year_breakdown: Optional[YearBreakdownSchema] = None


# Community finances


class MonthlyFinancialsSchema(ORMModel):
    month: str
    label: str
    contributions: Money
    loans_given: Money
    interest_collected: Money
    net_growth: Money


class LoanSummarySchema(ORMModel):
    loan_id: str
    borrower_id: str
    borrower_name: str
    borrower_code: str
    principal_amount: Money
    interest_rate: Money
    yearly_interest_amount: Money
    total_interest_earned: Money
    remaining_balance: Money
    loan_start_date: date
    status: LoanStatus


class CommunityFinancesResponse(ORMModel):
    as_of: date
    total_contributions: Money
    active_loans_principal: Money
    total_interest_collected: Money
    available_liquid_funds: Money
    expected_annual_interest: Money
    loan_summaries: List[LoanSummarySchema]
    monthly_history: List[MonthlyFinancialsSchema]


# Admin


class InterestRecalculationSchema(ORMModel):
    loan_id: str
    borrower_id: str
    months_elapsed: Money
    old_total_due: Money
    new_total_due: Money
    delta: Money


class RecalculationResponse(ORMModel):
    updated_count: int
    results: List[InterestRecalculationSchema]
    failures: List[BatchFailureSchema]


class StatusTotalSchema(ORMModel):
    count: int
    total_amount: Money


class AdminOverviewResponse(ORMModel):
    as_of: date
    current_month: str
    total_members: int
    active_members: int
    total_savings: Money
    contributions_by_status: Dict[str, StatusTotalSchema]
    loans_by_status: Dict[str, StatusTotalSchema]
    total_loans_given: Money
    outstanding_balance: Money
    active_loans_principal: Money
    total_interest_collected: Money
    available_funds: Money
    expected_annual_interest: Money
    loan_to_savings_ratio: Money


class CatchUpYearSchema(ORMModel):
    year_number: int
    start_month: int
    end_month: int
    months_count: int
    base_contribution: Money
    interest_period_months: int
    interest_amount: Money
    total_for_year: Money


class CatchUpPlanResponse(ORMModel):
    join_date: date
    months_missed: int
    years: List[CatchUpYearSchema]
    total_base_contribution: Money
    total_interest: Money
    grand_total: Money
    installments: int
    installment_amount: Money
