"""
summary.py - Portfolio Summary

Totals across all periods of a loan, plus the convenience entry point that
callers use to get a loan's full accrual picture in one call.

Key Formula:
    average_rate = sum(rate * principal * days) / sum(principal * days)

taken over every interest segment of every period; zero when no
principal-days exist.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from .accruals import PeriodAccrual, all_period_accruals
from .clock import Clock, SystemClock
from .core import ZERO, to_decimal
from .day_count import DayCountConvention, DEFAULT_DAY_COUNT
from .events import Loan, LoanEvent, Period
from .replay import LoanState, state_at


@dataclass(frozen=True, slots=True)
class AccrualsSummary:
    """Aggregate figures for a loan across its periods."""
    total_days: int
    total_interest_accrued: Decimal
    total_commitment_fees: Decimal
    total_fees_invoiced: Decimal
    total_pik_capitalized: Decimal
    total_due: Decimal
    current_principal: Decimal
    current_rate: Decimal
    average_rate: Decimal
    total_commitment: Decimal
    current_undrawn: Decimal
    commitment_fee_rate: Decimal


EMPTY_SUMMARY = AccrualsSummary(
    total_days=0,
    total_interest_accrued=ZERO,
    total_commitment_fees=ZERO,
    total_fees_invoiced=ZERO,
    total_pik_capitalized=ZERO,
    total_due=ZERO,
    current_principal=ZERO,
    current_rate=ZERO,
    average_rate=ZERO,
    total_commitment=ZERO,
    current_undrawn=ZERO,
    commitment_fee_rate=ZERO,
)


def weighted_average_rate(period_accruals: Iterable[PeriodAccrual]) -> Decimal:
    """Principal-day weighted average rate over all interest segments."""
    weighted = ZERO
    principal_days = ZERO
    for pa in period_accruals:
        for seg in pa.interest_segments:
            pd = seg.principal_days
            principal_days += pd
            weighted += seg.rate * pd
    if principal_days <= ZERO:
        return ZERO
    return weighted / principal_days


def summarize(period_accruals: Sequence[PeriodAccrual]) -> AccrualsSummary:
    """
    Summarize period accruals.

    Current balances come from the chronologically last period (by
    period_start), regardless of input order. Empty input gives EMPTY_SUMMARY.
    """
    if not period_accruals:
        return EMPTY_SUMMARY

    last = max(period_accruals, key=lambda pa: (pa.period_start, pa.period_end))

    return AccrualsSummary(
        total_days=sum(pa.days for pa in period_accruals),
        total_interest_accrued=sum((pa.interest_accrued for pa in period_accruals), ZERO),
        total_commitment_fees=sum((pa.commitment_fee_accrued for pa in period_accruals), ZERO),
        total_fees_invoiced=sum((pa.fees_invoiced for pa in period_accruals), ZERO),
        total_pik_capitalized=sum((pa.pik_capitalized for pa in period_accruals), ZERO),
        total_due=sum((pa.total_due for pa in period_accruals), ZERO),
        current_principal=last.closing_principal,
        current_rate=last.closing_rate,
        average_rate=weighted_average_rate(period_accruals),
        total_commitment=last.closing_commitment,
        current_undrawn=last.closing_undrawn,
        commitment_fee_rate=last.commitment_fee_rate,
    )


def summary_from_state(state: LoanState, fee_rate: Decimal = ZERO) -> AccrualsSummary:
    """Summary for a loan with no periods: balances only, no accrual totals."""
    return AccrualsSummary(
        total_days=0,
        total_interest_accrued=ZERO,
        total_commitment_fees=ZERO,
        total_fees_invoiced=ZERO,
        total_pik_capitalized=ZERO,
        total_due=ZERO,
        current_principal=state.outstanding_principal,
        current_rate=state.current_rate,
        average_rate=state.current_rate,
        total_commitment=state.total_commitment,
        current_undrawn=state.undrawn_commitment,
        commitment_fee_rate=to_decimal(fee_rate),
    )


# ============================================================================
# CONVENIENCE ENTRY POINT
# ============================================================================

@dataclass(frozen=True, slots=True)
class LoanAccruals:
    """Everything a caller needs to render a loan's accruals."""
    loan_id: str
    period_accruals: List[PeriodAccrual]
    summary: AccrualsSummary


def compute_loan_accruals(
    loan: Loan,
    events: Iterable[LoanEvent],
    periods: Iterable[Period],
    clock: Optional[Clock] = None,
    default_day_count: DayCountConvention = DEFAULT_DAY_COUNT,
) -> LoanAccruals:
    """
    Compute all period accruals and the summary for one loan.

    With no periods, current balances are derived directly from the events
    as of clock.today(). default_day_count applies when the loan carries no
    convention of its own.
    """
    events = list(events)
    periods = list(periods)

    if not periods:
        today = (clock or SystemClock()).today()
        state = state_at(events, today, loan.total_commitment, loan.interest_type)
        return LoanAccruals(loan.id, [], summary_from_state(state, loan.commitment_fee_rate))

    accruals = all_period_accruals(
        periods, events,
        fee_rate=loan.commitment_fee_rate,
        initial_commitment=loan.total_commitment,
        loan_interest_type=loan.interest_type,
        convention=loan.convention(default_day_count),
    )
    return LoanAccruals(loan.id, accruals, summarize(accruals))
