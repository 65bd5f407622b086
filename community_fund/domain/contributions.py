"""Contribution ledger rules - month keys, payment state checks, required months, late-joiner buy-in"""

import re
from datetime import date
from decimal import Decimal
from typing import List, Tuple

from community_fund.domain.exceptions import StateConflictError, ValidationError
from community_fund.domain.models import CatchUpPlan, CatchUpYear, PaidStatus
from community_fund.domain.money import ZERO, round_money, simple_interest, to_decimal

MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")
MIN_YEAR = 2020
MAX_YEAR = 2100


def parse_month(month: str) -> Tuple[int, int]:
    """Split a YYYY-MM key into (year, month), validating the range"""
    if not month or not MONTH_PATTERN.match(month):
        raise ValidationError(f"Invalid month format: {month!r}, expected YYYY-MM")
    year, month_number = int(month[:4]), int(month[5:])
    if not 1 <= month_number <= 12:
        raise ValidationError(f"Invalid month: {month}")
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ValidationError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
    return year, month_number


def format_month(year: int, month: int) -> str:
    return f"{year}-{month:02d}"


def month_key(day: date) -> str:
    return format_month(day.year, day.month)


def month_label(month: str) -> str:
    """'2024-07' -> 'July 2024'"""
    year, month_number = parse_month(month)
    return date(year, month_number, 1).strftime("%B %Y")


def add_months(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def month_range(start: date, end: date) -> List[str]:
    """Month keys from start's month through end's month, inclusive"""
    keys = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        keys.append(format_month(year, month))
        year, month = add_months(year, month, 1)
    return keys


def required_contribution_start(join_date: date, opening_date: date) -> date:
    """Members owe contributions from the later of community opening and their join date"""
    return max(join_date, opening_date)


def ensure_not_paid(paid_status: PaidStatus | str) -> None:
    if PaidStatus(paid_status) == PaidStatus.PAID:
        raise StateConflictError("Contribution already paid")


def calculate_catch_up(
    join_date: date,
    today: date,
    opening_date: date,
    monthly_contribution: Decimal,
    annual_rate_percent: Decimal,
    installments: int,
) -> CatchUpPlan:
    """
    Buy-in for a member joining after the fund opened.

    Every month from the opening month through the last completed month is
    owed. The months are split into 12-month blocks counted from opening; the
    first block earns interest for as many years as there are blocks, the
    next one year fewer, and so on down to one year for the latest block.

    Example (opening 2023-09, today 2024-07, 2000 a month at 16%):
        10 months missed, one block: 20000 + 3200 interest = 23200,
        or 24 installments of 966.67
    """
    if join_date <= opening_date:
        raise ValidationError("Joining date must be after community start date")
    if installments < 1:
        raise ValidationError("Installments must be at least 1")

    # The current month is not owed until it ends
    last_year, last_month = add_months(today.year, today.month, -1)
    months_missed = (last_year - opening_date.year) * 12 + (last_month - opening_date.month) + 1
    if months_missed <= 0:
        raise ValidationError("Invalid joining date")

    total_years = -(-months_missed // 12)
    years = []
    for year_number, start in enumerate(range(1, months_missed + 1, 12), start=1):
        end = min(start + 11, months_missed)
        months_count = end - start + 1
        base = round_money(to_decimal(monthly_contribution) * months_count)
        interest_years = total_years - year_number + 1
        interest = round_money(simple_interest(base, annual_rate_percent, interest_years * 12))
        years.append(
            CatchUpYear(
                year_number=year_number,
                start_month=start,
                end_month=end,
                months_count=months_count,
                base_contribution=base,
                interest_period_months=interest_years * 12,
                interest_amount=interest,
                total_for_year=base + interest,
            )
        )

    total_base = sum((year.base_contribution for year in years), ZERO)
    total_interest = sum((year.interest_amount for year in years), ZERO)
    grand_total = round_money(total_base + total_interest)
    return CatchUpPlan(
        join_date=join_date,
        months_missed=months_missed,
        years=years,
        total_base_contribution=round_money(total_base),
        total_interest=round_money(total_interest),
        grand_total=grand_total,
        installments=installments,
        installment_amount=round_money(grand_total / installments),
    )
