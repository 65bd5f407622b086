"""Community finance arithmetic - pool liquidity, lending ratio and trailing monthly history"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List

from community_fund.domain.contributions import add_months, format_month, month_label
from community_fund.domain.models import MonthlyFinancials
from community_fund.domain.money import round_money


@dataclass
class MonthWindow:
    """Half-open date range [start, end) covering one calendar month"""

    key: str
    start: date
    end: date


def trailing_month_windows(as_of: date, count: int = 12) -> List[MonthWindow]:
    """
    The `count` calendar months ending with as_of's month, oldest first.

    Example:
        as_of=2024-07-15, count=3 -> 2024-05, 2024-06, 2024-07
    """
    windows = []
    for offset in range(count - 1, -1, -1):
        year, month = add_months(as_of.year, as_of.month, -offset)
        next_year, next_month = add_months(year, month, 1)
        windows.append(
            MonthWindow(
                key=format_month(year, month),
                start=date(year, month, 1),
                end=date(next_year, next_month, 1),
            )
        )
    return windows


def available_liquid_funds(
    total_contributions: Decimal,
    total_interest_collected: Decimal,
    active_loans_principal: Decimal,
) -> Decimal:
    """Money in the pool: everything paid in plus interest earned, minus principal still lent out"""
    return round_money(total_contributions + total_interest_collected - active_loans_principal)


def monthly_financials(
    window: MonthWindow,
    contributions: Decimal,
    loans_given: Decimal,
    repayment_interest: Decimal,
    historical_interest: Decimal,
) -> MonthlyFinancials:
    interest = round_money(repayment_interest + historical_interest)
    return MonthlyFinancials(
        month=window.key,
        label=month_label(window.key),
        contributions=round_money(contributions),
        loans_given=round_money(loans_given),
        interest_collected=interest,
        net_growth=round_money(contributions + interest - loans_given),
    )


def loan_to_savings_ratio(active_loans_principal: Decimal, total_savings: Decimal) -> Decimal:
    """Percent of paid-in savings currently lent out; 0 before anything is saved"""
    if total_savings <= 0:
        return round_money(Decimal("0"))
    return round_money(active_loans_principal / total_savings * Decimal(100))
