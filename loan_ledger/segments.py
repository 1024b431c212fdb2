"""
segments.py - Segmentation Engine

Splits a date range into contiguous sub-ranges over which the inputs to an
accrual are constant, so interest and fees are exact to the day of change
rather than averaged.

    Interest segments break on:        draw, repayment, rate set/change,
                                       PIK capitalization
    Commitment-fee segments break on:  draw, repayment, commitment
                                       set/change/cancel

Algorithm (both segment kinds):
    1. Start from state_at(start) (events on the start date are included)
    2. For each relevant event in (start, end], in replay order:
         close the open segment at event_date - 1 using the pre-event state
         (skipped when empty), apply the event, reopen at event_date
    3. Close the final segment at end (skipped when empty)

Segments partition [start, end] with no gaps or overlaps, and their day
counts sum to days_between(start, end) under the chosen convention.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, FrozenSet, Iterable, List, Sequence, TypeVar

from .core import (
    InterestType,
    INTEREST_SEGMENT_EVENTS, FEE_SEGMENT_EVENTS,
    ZERO, EventType, to_decimal,
)
from .day_count import DayCountConvention, DEFAULT_DAY_COUNT, accrue, days_within
from .events import LoanEvent
from .replay import LoanState, apply_event, sort_events, state_at


@dataclass(frozen=True, slots=True)
class InterestSegment:
    """Sub-range with constant principal and rate."""
    start_date: date
    end_date: date
    days: int
    principal: Decimal
    rate: Decimal
    interest: Decimal
    interest_type: InterestType

    @property
    def is_cash_pay(self) -> bool:
        return self.interest_type is InterestType.CASH_PAY

    @property
    def principal_days(self) -> Decimal:
        return self.principal * self.days


@dataclass(frozen=True, slots=True)
class CommitmentFeeSegment:
    """Sub-range with constant commitment and undrawn amount."""
    start_date: date
    end_date: date
    days: int
    commitment: Decimal
    undrawn: Decimal
    fee_rate: Decimal
    fee: Decimal


S = TypeVar('S')

# (segment_start, segment_end, days, state) -> segment
SegmentBuilder = Callable[[date, date, int, LoanState], S]


def _segment(
    events: Iterable[LoanEvent],
    start: date,
    end: date,
    initial_commitment: Decimal,
    triggers: FrozenSet[EventType],
    convention: DayCountConvention,
    build: SegmentBuilder,
    default_interest_type: InterestType = InterestType.CASH_PAY,
) -> List[S]:
    """Shared walk for both segment kinds."""
    if end < start:
        return []

    ordered = sort_events(events)
    state = state_at(ordered, start, initial_commitment, default_interest_type)
    in_range = [
        e for e in ordered
        if start < e.effective_date <= end and e.event_type in triggers
    ]

    segments: List[S] = []
    segment_start = start

    for event in in_range:
        segment_end = event.effective_date - timedelta(days=1)
        if segment_start <= segment_end:
            days = days_within(start, segment_start, segment_end, convention)
            segments.append(build(segment_start, segment_end, days, state))
        state = apply_event(state, event)
        segment_start = event.effective_date

    if segment_start <= end:
        days = days_within(start, segment_start, end, convention)
        segments.append(build(segment_start, end, days, state))

    return segments


def interest_segments(
    events: Iterable[LoanEvent],
    start: date,
    end: date,
    initial_commitment: Decimal = ZERO,
    convention: DayCountConvention = DEFAULT_DAY_COUNT,
    default_interest_type: InterestType = InterestType.CASH_PAY,
) -> List[InterestSegment]:
    """
    Interest segments covering [start, end].

    Each segment accrues principal * rate * days / basis. default_interest_type
    is the loan-level interest type used until a pik_flag_set event says otherwise.
    """
    def build(seg_start: date, seg_end: date, days: int, state: LoanState) -> InterestSegment:
        return InterestSegment(
            start_date=seg_start,
            end_date=seg_end,
            days=days,
            principal=state.outstanding_principal,
            rate=state.current_rate,
            interest=accrue(state.outstanding_principal, state.current_rate, days, convention),
            interest_type=state.interest_type,
        )

    return _segment(
        events, start, end, to_decimal(initial_commitment),
        INTEREST_SEGMENT_EVENTS, convention, build, default_interest_type,
    )


def commitment_fee_segments(
    events: Iterable[LoanEvent],
    start: date,
    end: date,
    fee_rate: Decimal,
    initial_commitment: Decimal = ZERO,
    convention: DayCountConvention = DEFAULT_DAY_COUNT,
) -> List[CommitmentFeeSegment]:
    """
    Commitment-fee segments covering [start, end].

    Each segment accrues undrawn * fee_rate * days / basis.
    """
    fee_rate = to_decimal(fee_rate)

    def build(seg_start: date, seg_end: date, days: int, state: LoanState) -> CommitmentFeeSegment:
        return CommitmentFeeSegment(
            start_date=seg_start,
            end_date=seg_end,
            days=days,
            commitment=state.total_commitment,
            undrawn=state.undrawn_commitment,
            fee_rate=fee_rate,
            fee=accrue(state.undrawn_commitment, fee_rate, days, convention),
        )

    return _segment(
        events, start, end, to_decimal(initial_commitment),
        FEE_SEGMENT_EVENTS, convention, build,
    )


def total_days(segments: Sequence) -> int:
    """Sum of segment day counts."""
    return sum(s.days for s in segments)
