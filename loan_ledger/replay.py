"""
replay.py - State Replay Engine

Derives point-in-time loan state by folding the approved event ledger.

ARCHITECTURE:
=============

1. LoanState: immutable snapshot (value semantics, each transition returns
   a NEW instance)
2. apply_event(state, event): pure single-step transition
3. state_at(events, target_date, ...): filter, order, fold

Ordering is by effective_date, then ledger sequence, then input position.
Same-date events are applied in ledger order because financial order
matters (a draw followed by a repayment is not a repayment followed by a draw
when the repayment would clamp at zero).

No stored balance is ever a source of truth: state is always recomputed
from events, so any historical date can be reconstructed exactly.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from .core import (
    EventType, InterestType,
    ZERO, clamp_zero, to_decimal,
)
from .events import LoanEvent


@dataclass(frozen=True, slots=True)
class LoanState:
    """
    Derived loan state at a date. Never stored.

    Invariant: undrawn_commitment == max(0, total_commitment - outstanding_principal)
    """
    date: Optional[date]
    outstanding_principal: Decimal = ZERO
    current_rate: Decimal = ZERO
    interest_type: InterestType = InterestType.CASH_PAY
    total_commitment: Decimal = ZERO
    undrawn_commitment: Decimal = ZERO

    @classmethod
    def initial(
        cls,
        initial_commitment: Decimal = ZERO,
        default_interest_type: InterestType = InterestType.CASH_PAY,
        as_of: Optional[date] = None,
    ) -> 'LoanState':
        """State before any event: no principal, zero rate, seeded commitment."""
        commitment = to_decimal(initial_commitment)
        return cls(
            date=as_of,
            outstanding_principal=ZERO,
            current_rate=ZERO,
            interest_type=InterestType(default_interest_type),
            total_commitment=commitment,
            undrawn_commitment=clamp_zero(commitment),
        )

    @property
    def is_pik(self) -> bool:
        return self.interest_type is InterestType.PIK


def _rebalance(state: LoanState, principal: Decimal, commitment: Decimal) -> LoanState:
    """Set principal/commitment and recompute the undrawn amount."""
    return replace(
        state,
        outstanding_principal=principal,
        total_commitment=commitment,
        undrawn_commitment=clamp_zero(commitment - principal),
    )


def apply_event(state: LoanState, event: LoanEvent) -> LoanState:
    """
    Apply one event to a state, returning a new state.

    PURE FUNCTION - the input state is never mutated.

    Missing amounts and rates count as zero. Malformed values (e.g. negative
    amounts) are applied as-is: validation belongs to the recording system.
    """
    state = replace(state, date=event.effective_date)
    kind = event.event_type
    amount = event.amount_or_zero
    principal = state.outstanding_principal
    commitment = state.total_commitment

    if kind is EventType.PRINCIPAL_DRAW:
        return _rebalance(state, principal + amount, commitment)

    if kind is EventType.PRINCIPAL_REPAYMENT:
        return _rebalance(state, clamp_zero(principal - amount), commitment)

    if kind in (EventType.INTEREST_RATE_SET, EventType.INTEREST_RATE_CHANGE):
        return replace(state, current_rate=event.rate_or_zero)

    if kind is EventType.PIK_FLAG_SET:
        return replace(state, interest_type=event.interest_type or InterestType.CASH_PAY)

    if kind is EventType.COMMITMENT_SET:
        return _rebalance(state, principal, amount)

    if kind is EventType.COMMITMENT_CHANGE:
        return _rebalance(state, principal, commitment + amount)

    if kind is EventType.COMMITMENT_CANCEL:
        return _rebalance(state, principal, clamp_zero(commitment - amount))

    if kind is EventType.PIK_CAPITALIZATION_POSTED:
        return _rebalance(state, principal + amount, commitment)

    if kind is EventType.FEE_INVOICE:
        if event.is_pik_fee:
            return _rebalance(state, principal + amount, commitment)
        return state

    # CASH_RECEIVED records a cash flow only
    return state


def sort_events(events: Iterable[LoanEvent]) -> List[LoanEvent]:
    """
    Approved events in replay order.

    Sorted by (effective_date, sequence, input position). Python's sort is
    stable, but the input position is made explicit so the order does not
    depend on how the caller happened to build the list.
    """
    approved = [(i, e) for i, e in enumerate(events) if e.is_approved]
    approved.sort(key=lambda pair: (pair[1].effective_date, pair[1].sequence, pair[0]))
    return [e for _, e in approved]


def state_at(
    events: Iterable[LoanEvent],
    target_date: date,
    initial_commitment: Decimal = ZERO,
    default_interest_type: InterestType = InterestType.CASH_PAY,
) -> LoanState:
    """
    Loan state at the close of target_date.

    Events effective on target_date are included; later events are not.
    Draft events are ignored. The returned state's date is target_date.
    """
    state = LoanState.initial(initial_commitment, default_interest_type)
    for event in sort_events(events):
        if event.effective_date > target_date:
            break
        state = apply_event(state, event)
    return replace(state, date=target_date)


def replay_states(
    events: Iterable[LoanEvent],
    initial_commitment: Decimal = ZERO,
    default_interest_type: InterestType = InterestType.CASH_PAY,
    until: Optional[date] = None,
) -> List[LoanState]:
    """
    Every intermediate state, one per applied event, in replay order.

    Useful as an audit trail: the last element equals state_at(events, date)
    for the last event's date.
    """
    state = LoanState.initial(initial_commitment, default_interest_type)
    states: List[LoanState] = []
    for event in sort_events(events):
        if until is not None and event.effective_date > until:
            break
        state = apply_event(state, event)
        states.append(state)
    return states


def earliest_event_date(events: Iterable[LoanEvent]) -> Optional[date]:
    """Effective date of the first approved event, or None."""
    dates = [e.effective_date for e in events if e.is_approved]
    return min(dates) if dates else None
