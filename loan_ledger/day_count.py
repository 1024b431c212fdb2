"""
day_count.py - Day-Count Conventions

Pure arithmetic for turning an annual rate into an amount for a span of days.

Supported conventions:
    "30/360"   US (NASD) 30/360: every month counts as 30 days, year basis 360
    "ACT/360"  Actual calendar days, year basis 360
    "ACT/365"  Actual calendar days, year basis 365

Day counts are INCLUSIVE of both ends: a segment from the 1st to the 10th
accrues 10 days. A single date range spanning one day accrues 1 day.

The convention is always an explicit parameter. Loans carry their own
convention (Loan.day_count); there is no hidden divisor anywhere else.
"""

from __future__ import annotations
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Union

from .core import ZERO, to_decimal


class DayCountConvention(Enum):
    THIRTY_360 = "30/360"
    ACT_360 = "ACT/360"
    ACT_365 = "ACT/365"

    @classmethod
    def parse(cls, value: Union[str, "DayCountConvention"]) -> "DayCountConvention":
        """Accept an enum member or its string form (case-insensitive)."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().upper()
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(f"Unknown day count convention: {value}")


DEFAULT_DAY_COUNT = DayCountConvention.THIRTY_360

_YEAR_BASIS = {
    DayCountConvention.THIRTY_360: Decimal("360"),
    DayCountConvention.ACT_360: Decimal("360"),
    DayCountConvention.ACT_365: Decimal("365"),
}


def year_basis(convention: DayCountConvention) -> Decimal:
    """Days in a year under the convention (360 or 365)."""
    return _YEAR_BASIS[DayCountConvention.parse(convention)]


def days_between(
    start: date,
    end: date,
    convention: DayCountConvention = DEFAULT_DAY_COUNT,
) -> int:
    """
    Count accrual days from start to end, both inclusive.

    Returns 0 when end is before start.
    """
    convention = DayCountConvention.parse(convention)
    if end < start:
        return 0

    if convention is DayCountConvention.THIRTY_360:
        d1, d2 = start.day, end.day
        if d1 == 31:
            d1 = 30
        if d2 == 31 and d1 >= 30:
            d2 = 30
        days = 360 * (end.year - start.year) + 30 * (end.month - start.month) + (d2 - d1)
        return max(0, days + 1)

    return (end - start).days + 1


def year_fraction(
    start: date,
    end: date,
    convention: DayCountConvention = DEFAULT_DAY_COUNT,
) -> Decimal:
    """Inclusive day count divided by the year basis."""
    return Decimal(days_between(start, end, convention)) / year_basis(convention)


def accrue(
    amount: Decimal,
    annual_rate: Decimal,
    days: int,
    convention: DayCountConvention = DEFAULT_DAY_COUNT,
) -> Decimal:
    """
    Simple accrual: amount * annual_rate * days / basis.

    Non-positive day counts accrue nothing.
    """
    if days <= 0:
        return ZERO
    amount = to_decimal(amount)
    annual_rate = to_decimal(annual_rate)
    return amount * annual_rate * Decimal(days) / year_basis(convention)


def daily_interest(
    principal: Decimal,
    annual_rate: Decimal,
    convention: DayCountConvention = DEFAULT_DAY_COUNT,
) -> Decimal:
    """One day of interest on principal."""
    return accrue(principal, annual_rate, 1, convention)


def daily_fee(
    undrawn: Decimal,
    annual_fee_rate: Decimal,
    convention: DayCountConvention = DEFAULT_DAY_COUNT,
) -> Decimal:
    """One day of commitment fee on the undrawn amount."""
    return accrue(undrawn, annual_fee_rate, 1, convention)


def days_within(
    anchor: date,
    start: date,
    end: date,
    convention: DayCountConvention = DEFAULT_DAY_COUNT,
) -> int:
    """
    Day count of [start, end] measured from anchor.

    Computed as days_between(anchor, end) - days_between(anchor, start - 1),
    so consecutive spans that tile [anchor, X] always sum to
    days_between(anchor, X). Under 30/360 a span's count can differ from
    days_between(start, end) by a day around month ends; under the ACT
    conventions the two are identical.
    """
    if end < start:
        return 0
    before = days_between(anchor, start - timedelta(days=1), convention)
    return max(0, days_between(anchor, end, convention) - before)
