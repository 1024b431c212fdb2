"""
Hypothesis strategies for random loan ledgers.

Events are generated with explicit, unique sequence numbers so that replay
order is fully determined by the data, never by list position.
"""

from datetime import date, timedelta
from decimal import Decimal

from hypothesis import strategies as st

from loan_ledger import (
    EventStatus, InterestType, PaymentType,
    principal_draw, principal_repayment, interest_rate_set, interest_rate_change,
    pik_flag_set, commitment_set, commitment_change, commitment_cancel,
    cash_received, fee_invoice, pik_capitalization_posted,
)


EPOCH = date(2025, 1, 1)
HORIZON_DAYS = 120

amounts = st.integers(min_value=0, max_value=2_000_000).map(Decimal)
rates = st.integers(min_value=0, max_value=2000).map(lambda bp: Decimal(bp) / Decimal(10000))
offsets = st.integers(min_value=0, max_value=HORIZON_DAYS)


def _build(kind, loan_id, day, amount, rate, seq, status):
    kwargs = dict(sequence=seq, status=status)
    if kind == "draw":
        return principal_draw(loan_id, day, amount, **kwargs)
    if kind == "repay":
        return principal_repayment(loan_id, day, amount, **kwargs)
    if kind == "rate_set":
        return interest_rate_set(loan_id, day, rate, **kwargs)
    if kind == "rate_change":
        return interest_rate_change(loan_id, day, rate, **kwargs)
    if kind == "pik_on":
        return pik_flag_set(loan_id, day, **kwargs)
    if kind == "pik_off":
        return pik_flag_set(loan_id, day, interest_type=InterestType.CASH_PAY, **kwargs)
    if kind == "commit_set":
        return commitment_set(loan_id, day, amount, **kwargs)
    if kind == "commit_up":
        return commitment_change(loan_id, day, amount, **kwargs)
    if kind == "commit_cancel":
        return commitment_cancel(loan_id, day, amount, **kwargs)
    if kind == "cash":
        return cash_received(loan_id, day, amount, **kwargs)
    if kind == "fee_cash":
        return fee_invoice(loan_id, day, amount, **kwargs)
    if kind == "fee_pik":
        return fee_invoice(loan_id, day, amount, payment_type=PaymentType.PIK, **kwargs)
    return pik_capitalization_posted(loan_id, day, amount, **kwargs)


ALL_KINDS = (
    "draw", "repay", "rate_set", "rate_change", "pik_on", "pik_off",
    "commit_set", "commit_up", "commit_cancel", "cash", "fee_cash", "fee_pik", "capitalize",
)

# Kinds whose balance effects are fully captured by both segment trigger sets
SEGMENT_KINDS = ("draw", "repay", "rate_set", "rate_change", "commit_set", "commit_up", "commit_cancel")


@st.composite
def ledgers(draw, kinds=ALL_KINDS, loan_id="L1", max_size=25, allow_drafts=False):
    """A list of events for one loan with unique sequences."""
    specs = draw(st.lists(
        st.tuples(st.sampled_from(kinds), offsets, amounts, rates,
                  st.booleans() if allow_drafts else st.just(False)),
        max_size=max_size,
    ))
    return [
        _build(kind, loan_id, EPOCH + timedelta(days=offset), amount, rate, seq,
               EventStatus.DRAFT if is_draft else EventStatus.APPROVED)
        for seq, (kind, offset, amount, rate, is_draft) in enumerate(specs)
    ]


@st.composite
def date_windows(draw):
    """(start, end) with start <= end inside the generated horizon."""
    start = draw(offsets)
    length = draw(st.integers(min_value=0, max_value=HORIZON_DAYS))
    return EPOCH + timedelta(days=start), EPOCH + timedelta(days=start + length)
