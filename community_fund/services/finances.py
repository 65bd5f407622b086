"""Community finance rollups - fund totals and history, the admin overview, and buy-in quotes"""

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from community_fund.config import settings
from community_fund.domain.contributions import calculate_catch_up, month_key
from community_fund.domain.finance import (
    available_liquid_funds,
    loan_to_savings_ratio,
    monthly_financials,
    trailing_month_windows,
)
from community_fund.domain.interest import yearly_interest
from community_fund.domain.models import (
    ACTIVE_LOAN_STATUSES,
    AdminOverview,
    CatchUpPlan,
    CommunityFinances,
    LoanStatus,
    LoanSummary,
    PaidStatus,
    StatusTotal,
)
from community_fund.domain.money import ZERO, round_money, to_decimal
from community_fund.infrastructure.database.repositories import (
    ContributionRepository,
    HistoricalInterestRepository,
    LoanRepository,
    MemberRepository,
    RepaymentRepository,
)
from community_fund.services.loans import current_amounts


def get_community_finances(db: Session, as_of: date, history_months: Optional[int] = None) -> CommunityFinances:
    """
    Read-only rollup of every ledger, computed on each call.

    Totals cover everything recorded; the monthly history covers the
    `history_months` calendar months ending with as_of's month.
    """
    contributions = ContributionRepository(db)
    loans = LoanRepository(db)
    repayments = RepaymentRepository(db)
    historical = HistoricalInterestRepository(db)
    members = MemberRepository(db)

    total_contributions = contributions.sum_paid()
    active_principal = loans.sum_active_principal()
    total_interest = round_money(repayments.sum_interest() + historical.sum_total())

    active_statuses = {status.value for status in ACTIVE_LOAN_STATUSES}
    interest_by_loan = repayments.interest_by_loan()
    expected_annual = ZERO
    summaries = []

    for loan in loans.reported_loans():
        principal = to_decimal(loan.approved_amount)
        rate = to_decimal(loan.interest_rate)
        if loan.status in active_statuses:
            expected_annual += principal * rate / Decimal(100)

        borrower = members.find_by_id(loan.borrower_id)
        summaries.append(
            LoanSummary(
                loan_id=str(loan.id),
                borrower_id=str(loan.borrower_id),
                borrower_name=borrower.name if borrower else "Unknown",
                borrower_code=borrower.member_code if borrower else "",
                principal_amount=round_money(principal),
                interest_rate=rate,
                yearly_interest_amount=yearly_interest(principal, rate),
                total_interest_earned=interest_by_loan.get(loan.id, round_money(ZERO)),
                remaining_balance=current_amounts(loan, as_of).remaining_balance,
                loan_start_date=loan.approval_date or loan.disbursement_date or loan.request_date,
                status=LoanStatus(loan.status),
            )
        )

    history = [
        monthly_financials(
            window,
            contributions=contributions.sum_paid_for_month(window.key),
            loans_given=loans.sum_loans_given_between(window.start, window.end),
            repayment_interest=repayments.sum_interest_between(window.start, window.end),
            historical_interest=historical.sum_between(window.start, window.end),
        )
        for window in trailing_month_windows(as_of, history_months or settings.finance_history_months)
    ]

    return CommunityFinances(
        as_of=as_of,
        total_contributions=total_contributions,
        active_loans_principal=active_principal,
        total_interest_collected=total_interest,
        available_liquid_funds=available_liquid_funds(total_contributions, total_interest, active_principal),
        expected_annual_interest=round_money(expected_annual),
        loan_summaries=summaries,
        monthly_history=history,
    )


def get_admin_overview(db: Session, today: date) -> AdminOverview:
    """
    Dashboard headline numbers as of today.

    Contribution counts cover the current month only; loan counts and the
    money totals cover everything recorded.
    """
    members = MemberRepository(db)
    contributions = ContributionRepository(db)
    loans = LoanRepository(db)

    current_month = month_key(today)
    by_paid_status = contributions.totals_by_status_for_month(current_month)
    contributions_by_status = {
        status.value: StatusTotal(*by_paid_status.get(status.value, (0, round_money(ZERO)))) for status in PaidStatus
    }
    by_loan_status = loans.totals_by_status()
    loans_by_status = {
        status.value: StatusTotal(*by_loan_status.get(status.value, (0, round_money(ZERO)))) for status in LoanStatus
    }

    outstanding = ZERO
    expected_annual = ZERO
    for loan in loans.accruing_loans():
        remaining = current_amounts(loan, today).remaining_balance
        if remaining <= 0:
            continue
        expected_annual += to_decimal(loan.approved_amount) * to_decimal(loan.interest_rate) / Decimal(100)
        if loan.status == LoanStatus.DISBURSED.value:
            outstanding += remaining

    total_savings = contributions.sum_paid()
    active_principal = loans.sum_active_principal()
    total_interest = round_money(RepaymentRepository(db).sum_interest() + HistoricalInterestRepository(db).sum_total())
    given = [loans_by_status[status.value].total_amount for status in (LoanStatus.DISBURSED, LoanStatus.COMPLETED)]

    return AdminOverview(
        as_of=today,
        current_month=current_month,
        total_members=members.count(),
        active_members=members.count_active(),
        total_savings=total_savings,
        contributions_by_status=contributions_by_status,
        loans_by_status=loans_by_status,
        total_loans_given=round_money(sum(given, ZERO)),
        outstanding_balance=round_money(outstanding),
        active_loans_principal=active_principal,
        total_interest_collected=total_interest,
        available_funds=available_liquid_funds(total_savings, total_interest, active_principal),
        expected_annual_interest=round_money(expected_annual),
        loan_to_savings_ratio=loan_to_savings_ratio(active_principal, total_savings),
    )


def new_member_catch_up(join_date: date, today: date) -> CatchUpPlan:
    """Buy-in quote for a prospective member, priced with the fund's current settings"""
    return calculate_catch_up(
        join_date,
        today,
        settings.community_opening_date,
        settings.default_contribution_amount,
        settings.default_interest_rate,
        settings.catch_up_installments,
    )
