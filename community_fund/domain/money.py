"""Money and time utilities: rounding policy, elapsed months, simple interest"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[Decimal, int, float, str]

TWO_PLACES = Decimal("0.01")
FOUR_PLACES = Decimal("0.0001")
ZERO = Decimal("0")

# Tolerance allowed between a combined payment's portions and its total
SPLIT_TOLERANCE = Decimal("0.01")

# Partial months are measured against a fixed 30-day month
DAYS_PER_PARTIAL_MONTH = Decimal("30")


def to_decimal(value: Number | None) -> Decimal:
    """Coerce a number into Decimal without float artefacts (None -> 0)"""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(amount: Number | None) -> Decimal:
    """Round to 2 places, half up. Every persisted amount passes through here."""
    return to_decimal(amount).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def elapsed_months(start: date, evaluation: date) -> Decimal:
    """
    Months elapsed between two dates, including a partial month.

    Whole months come from the calendar year/month difference. When the
    evaluation day-of-month is past the start day-of-month, the day difference
    is added as a fraction of a 30-day month. An evaluation day before the
    start day is not subtracted. The result is never negative.

    Example:
        2024-01-01 -> 2024-07-01 = 6
        2024-01-10 -> 2024-03-25 = 2 + 15/30 = 2.5
    """
    months = Decimal((evaluation.year - start.year) * 12 + (evaluation.month - start.month))
    day_diff = evaluation.day - start.day
    if day_diff > 0:
        months += Decimal(day_diff) / DAYS_PER_PARTIAL_MONTH
    return max(ZERO, months)


def simple_interest(principal: Number, annual_rate_percent: Number, months: Number) -> Decimal:
    """Non-compounding interest: principal * rate/100 * months/12"""
    return to_decimal(principal) * to_decimal(annual_rate_percent) / Decimal(100) * to_decimal(months) / Decimal(12)


def within_tolerance(a: Number, b: Number, tolerance: Decimal = SPLIT_TOLERANCE) -> bool:
    return abs(to_decimal(a) - to_decimal(b)) <= tolerance
