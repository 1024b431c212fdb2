"""
accruals.py - Period Aggregator

Combines replay states, segments and daily rows into one PeriodAccrual per
billing period: opening/closing balances, movements, interest and fee
accruals, the amount due, and the full drill-down that produced them.

Key Formulas:
    interest_accrued        = sum(interest segment amounts)
    commitment_fee_accrued  = sum(daily commitment fee rows)
    total_due               = cash-pay interest + commitment fee + fees invoiced

PIK projection:
    For a PIK loan whose capitalization has not yet posted in the period,
    the reported closing principal is PROJECTED:

        opening + drawn - repaid + fees_invoiced + (interest + commitment fee)

    Once a pik_capitalization_posted event lands in the period, the LEDGER
    closing principal (literal replay state) is reported instead. Both values
    are always carried; closing_principal_basis says which one is shown.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List, Sequence, Tuple

from .core import (
    EventType, InterestType, ClosingPrincipalBasis, PeriodStatus,
    ZERO, to_decimal,
)
from .day_count import DayCountConvention, DEFAULT_DAY_COUNT, accrue, days_between, days_within
from .events import LoanEvent, Period
from .replay import apply_event, sort_events, state_at, LoanState
from .segments import (
    InterestSegment, CommitmentFeeSegment,
    interest_segments, commitment_fee_segments,
)


# ============================================================================
# RESULT TYPES
# ============================================================================

@dataclass(frozen=True, slots=True)
class DailyAccrual:
    """
    One calendar day of a period's drill-down.

    days is the accrual weight of this calendar day under the convention:
    always 1 for ACT conventions; 0, 1 or more around month ends under 30/360,
    so that daily rows sum to the same totals as the segments.
    """
    date: date
    days: int
    principal: Decimal
    rate: Decimal
    interest_type: InterestType
    daily_interest: Decimal
    cumulative_interest: Decimal
    commitment: Decimal
    undrawn: Decimal
    commitment_fee: Decimal
    cumulative_commitment_fee: Decimal


@dataclass(frozen=True, slots=True)
class PeriodAccrual:
    """
    Accrual report for one period.

    closing_principal returns the value selected by closing_principal_basis;
    ledger_closing_principal and projected_closing_principal are both kept
    so reporting can show either.
    """
    period_id: str
    period_start: date
    period_end: date
    status: PeriodStatus
    days: int

    opening_principal: Decimal
    opening_rate: Decimal
    opening_commitment: Decimal
    opening_undrawn: Decimal

    principal_drawn: Decimal
    principal_repaid: Decimal
    pik_capitalized: Decimal
    fees_invoiced: Decimal

    ledger_closing_principal: Decimal
    projected_closing_principal: Decimal
    closing_principal_basis: ClosingPrincipalBasis
    closing_rate: Decimal
    closing_commitment: Decimal
    closing_undrawn: Decimal

    interest_accrued: Decimal
    cash_pay_interest: Decimal
    commitment_fee_accrued: Decimal
    commitment_fee_rate: Decimal
    avg_undrawn_amount: Decimal
    total_due: Decimal

    daily_accruals: Tuple[DailyAccrual, ...]
    interest_segments: Tuple[InterestSegment, ...]
    commitment_fee_segments: Tuple[CommitmentFeeSegment, ...]

    @property
    def closing_principal(self) -> Decimal:
        if self.closing_principal_basis is ClosingPrincipalBasis.PROJECTED:
            return self.projected_closing_principal
        return self.ledger_closing_principal

    @property
    def is_projected(self) -> bool:
        return self.closing_principal_basis is ClosingPrincipalBasis.PROJECTED

    @property
    def pik_interest(self) -> Decimal:
        """Interest accrued on PIK segments (capitalizes rather than bills)."""
        return self.interest_accrued - self.cash_pay_interest


# ============================================================================
# DAILY ROWS
# ============================================================================

def daily_accruals(
    events: Iterable[LoanEvent],
    start: date,
    end: date,
    fee_rate: Decimal = ZERO,
    initial_commitment: Decimal = ZERO,
    convention: DayCountConvention = DEFAULT_DAY_COUNT,
    default_interest_type: InterestType = InterestType.CASH_PAY,
) -> List[DailyAccrual]:
    """
    One row per calendar day in [start, end], with running totals.

    Each day uses the state at the close of that day (events on the day are
    included), matching state_at(events, day). The events are walked once
    rather than replayed from scratch per day.
    """
    fee_rate = to_decimal(fee_rate)
    ordered = sort_events(events)
    state = LoanState.initial(to_decimal(initial_commitment), default_interest_type)
    cursor = 0

    rows: List[DailyAccrual] = []
    cumulative_interest = ZERO
    cumulative_fee = ZERO

    day = start
    while day <= end:
        while cursor < len(ordered) and ordered[cursor].effective_date <= day:
            state = apply_event(state, ordered[cursor])
            cursor += 1

        weight = days_within(start, day, day, convention)
        interest = accrue(state.outstanding_principal, state.current_rate, weight, convention)
        fee = accrue(state.undrawn_commitment, fee_rate, weight, convention)
        cumulative_interest += interest
        cumulative_fee += fee

        rows.append(DailyAccrual(
            date=day,
            days=weight,
            principal=state.outstanding_principal,
            rate=state.current_rate,
            interest_type=state.interest_type,
            daily_interest=interest,
            cumulative_interest=cumulative_interest,
            commitment=state.total_commitment,
            undrawn=state.undrawn_commitment,
            commitment_fee=fee,
            cumulative_commitment_fee=cumulative_fee,
        ))
        day += timedelta(days=1)

    return rows


# ============================================================================
# PERIOD AGGREGATION
# ============================================================================

def _movements(events: Sequence[LoanEvent], start: date, end: date) -> Tuple[Decimal, Decimal, Decimal, Decimal]:
    """(drawn, repaid, pik_capitalized, fees_invoiced) for events in [start, end]."""
    drawn = repaid = capitalized = invoiced = ZERO
    for event in events:
        if not start <= event.effective_date <= end:
            continue
        kind = event.event_type
        if kind is EventType.PRINCIPAL_DRAW:
            drawn += event.amount_or_zero
        elif kind is EventType.PRINCIPAL_REPAYMENT:
            repaid += event.amount_or_zero
        elif kind is EventType.PIK_CAPITALIZATION_POSTED:
            capitalized += event.amount_or_zero
        elif kind is EventType.FEE_INVOICE:
            invoiced += event.amount_or_zero
    return drawn, repaid, capitalized, invoiced


def _has_capitalization(events: Sequence[LoanEvent], start: date, end: date) -> bool:
    return any(
        e.event_type is EventType.PIK_CAPITALIZATION_POSTED and start <= e.effective_date <= end
        for e in events
    )


def period_accrual(
    period: Period,
    events: Iterable[LoanEvent],
    fee_rate: Decimal = ZERO,
    initial_commitment: Decimal = ZERO,
    loan_interest_type: InterestType = InterestType.CASH_PAY,
    convention: DayCountConvention = DEFAULT_DAY_COUNT,
) -> PeriodAccrual:
    """
    Compute the full accrual report for one period.

    Args:
        period: The billing window
        events: The loan's events (draft events are ignored)
        fee_rate: Annual commitment fee rate on the undrawn amount
        initial_commitment: Commitment before any commitment event
        loan_interest_type: Loan-level interest type, used until a
            pik_flag_set event overrides it
        convention: Day-count convention for every accrual in the period

    Returns:
        PeriodAccrual with totals, balances and drill-down.
    """
    fee_rate = to_decimal(fee_rate)
    initial_commitment = to_decimal(initial_commitment)
    ordered = sort_events(events)
    start, end = period.period_start, period.period_end

    opening = state_at(ordered, start - timedelta(days=1), initial_commitment, loan_interest_type)
    closing = state_at(ordered, end, initial_commitment, loan_interest_type)

    drawn, repaid, capitalized, invoiced = _movements(ordered, start, end)

    segments = interest_segments(
        ordered, start, end, initial_commitment, convention, loan_interest_type,
    )
    interest = sum((s.interest for s in segments), ZERO)
    cash_pay_interest = sum((s.interest for s in segments if s.is_cash_pay), ZERO)

    rows = daily_accruals(
        ordered, start, end, fee_rate, initial_commitment, convention, loan_interest_type,
    )
    fee_accrued = sum((r.commitment_fee for r in rows), ZERO)
    avg_undrawn = (
        sum((r.undrawn for r in rows), ZERO) / Decimal(len(rows)) if rows else ZERO
    )

    fee_segments = commitment_fee_segments(
        ordered, start, end, fee_rate, initial_commitment, convention,
    )

    total_due = cash_pay_interest + fee_accrued + invoiced

    projected = opening.outstanding_principal + drawn - repaid + invoiced + (interest + fee_accrued)
    if opening.is_pik and not _has_capitalization(ordered, start, end):
        basis = ClosingPrincipalBasis.PROJECTED
    else:
        basis = ClosingPrincipalBasis.LEDGER

    return PeriodAccrual(
        period_id=period.id,
        period_start=start,
        period_end=end,
        status=period.status,
        days=days_between(start, end, convention),
        opening_principal=opening.outstanding_principal,
        opening_rate=opening.current_rate,
        opening_commitment=opening.total_commitment,
        opening_undrawn=opening.undrawn_commitment,
        principal_drawn=drawn,
        principal_repaid=repaid,
        pik_capitalized=capitalized,
        fees_invoiced=invoiced,
        ledger_closing_principal=closing.outstanding_principal,
        projected_closing_principal=projected,
        closing_principal_basis=basis,
        closing_rate=closing.current_rate,
        closing_commitment=closing.total_commitment,
        closing_undrawn=closing.undrawn_commitment,
        interest_accrued=interest,
        cash_pay_interest=cash_pay_interest,
        commitment_fee_accrued=fee_accrued,
        commitment_fee_rate=fee_rate,
        avg_undrawn_amount=avg_undrawn,
        total_due=total_due,
        daily_accruals=tuple(rows),
        interest_segments=tuple(segments),
        commitment_fee_segments=tuple(fee_segments),
    )


def all_period_accruals(
    periods: Iterable[Period],
    events: Iterable[LoanEvent],
    fee_rate: Decimal = ZERO,
    initial_commitment: Decimal = ZERO,
    loan_interest_type: InterestType = InterestType.CASH_PAY,
    convention: DayCountConvention = DEFAULT_DAY_COUNT,
) -> List[PeriodAccrual]:
    """PeriodAccrual for every period, in chronological order."""
    ordered = sort_events(events)
    return [
        period_accrual(p, ordered, fee_rate, initial_commitment, loan_interest_type, convention)
        for p in sorted(periods, key=lambda p: (p.period_start, p.period_end))
    ]
