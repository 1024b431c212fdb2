"""
events.py - Event Model

Immutable records consumed by the engine:
    LoanEvent  one fact in a loan's append-only ledger
    Period     a billing/reporting window of a loan's life
    Loan       the loan metadata the engine needs (commitment, fee rate, ...)

Events are data, not behavior. The open metadata bag of the storage layer is
kept for round-tripping, but the two keys the engine branches on
(payment_type, interest_type) are parsed once into enums at construction.

Factory functions build correctly-typed events:

    draw = principal_draw("L1", date(2025, 1, 10), Decimal("400000"))
    fee = fee_invoice("L1", date(2025, 1, 5), Decimal("10000"), payment_type=PaymentType.PIK)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional
import itertools
import uuid

from .core import (
    EventType, EventStatus, InterestType, PaymentType, PeriodStatus, LoanStatus,
    ZERO, to_decimal, optional_decimal,
)
from .day_count import DayCountConvention, DEFAULT_DAY_COUNT


# Process-wide counter so factory-built events keep creation order on
# same-date ties even when the caller supplies no sequence.
_sequence_counter = itertools.count()


def parse_date(value: Any) -> date:
    """Accept a date, a datetime or an ISO-8601 string (date part is used)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"Cannot interpret {value!r} as a date")


def _parse_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    return enum_cls(value)


def _parse_optional_enum(enum_cls, value):
    """Parse a metadata value into enum_cls, returning None when absent or unknown."""
    if value is None:
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value))
    except ValueError:
        return None


# ============================================================================
# LOAN EVENT
# ============================================================================

@dataclass(frozen=True, slots=True)
class LoanEvent:
    """
    One immutable fact in a loan's event ledger.

    Attributes:
        id: Event identifier
        loan_id: Owning loan
        event_type: What happened (EventType)
        effective_date: Date the event takes economic effect
        amount: Money amount, if the event carries one
        rate: Annual rate as a fraction (0.085 for 8.5%), if the event carries one
        metadata: Read-only key-value map from the recording system
        status: DRAFT or APPROVED; only APPROVED events affect state
        sequence: Ledger position, used to order events sharing a date

    Derived (parsed from metadata at construction):
        payment_type: PaymentType for fee invoices (None when unspecified)
        interest_type: InterestType for PIK flag events (None when unspecified)
    """
    id: str
    loan_id: str
    event_type: EventType
    effective_date: date
    amount: Optional[Decimal] = None
    rate: Optional[Decimal] = None
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)
    status: EventStatus = EventStatus.APPROVED
    sequence: int = 0
    payment_type: Optional[PaymentType] = field(default=None, init=False, compare=False)
    interest_type: Optional[InterestType] = field(default=None, init=False, compare=False)

    def __post_init__(self):
        if not self.id or not str(self.id).strip():
            raise ValueError("LoanEvent id cannot be empty")
        if not self.loan_id or not str(self.loan_id).strip():
            raise ValueError("LoanEvent loan_id cannot be empty")

        object.__setattr__(self, 'event_type', _parse_enum(EventType, self.event_type))
        object.__setattr__(self, 'status', _parse_enum(EventStatus, self.status))
        object.__setattr__(self, 'effective_date', parse_date(self.effective_date))
        object.__setattr__(self, 'amount', optional_decimal(self.amount))
        object.__setattr__(self, 'rate', optional_decimal(self.rate))

        metadata = dict(self.metadata or {})
        object.__setattr__(self, 'metadata', MappingProxyType(metadata))
        object.__setattr__(self, 'payment_type', _parse_optional_enum(PaymentType, metadata.get('payment_type')))
        object.__setattr__(self, 'interest_type', _parse_optional_enum(InterestType, metadata.get('interest_type')))

    @property
    def is_approved(self) -> bool:
        return self.status is EventStatus.APPROVED

    @property
    def amount_or_zero(self) -> Decimal:
        return self.amount if self.amount is not None else ZERO

    @property
    def rate_or_zero(self) -> Decimal:
        return self.rate if self.rate is not None else ZERO

    @property
    def is_pik_fee(self) -> bool:
        """True for a fee invoice settled by capitalization."""
        return self.event_type is EventType.FEE_INVOICE and self.payment_type is PaymentType.PIK

    @classmethod
    def from_record(cls, record: Mapping[str, Any], sequence: Optional[int] = None) -> 'LoanEvent':
        """
        Adapt a raw storage row into a typed event.

        Expects the storage column names: id, loan_id, event_type,
        effective_date, amount, rate, metadata, status. A missing or null
        status is read as draft. A 'sequence' column is used when present,
        otherwise the caller-supplied position.
        """
        seq = record.get('sequence', sequence)
        return cls(
            id=str(record['id']),
            loan_id=str(record['loan_id']),
            event_type=record['event_type'],
            effective_date=record['effective_date'],
            amount=record.get('amount'),
            rate=record.get('rate'),
            metadata=record.get('metadata') or {},
            status=record.get('status') or EventStatus.DRAFT.value,
            sequence=int(seq) if seq is not None else 0,
        )

    def __repr__(self) -> str:
        parts = [f"{self.event_type.value}@{self.effective_date.isoformat()}"]
        if self.amount is not None:
            parts.append(f"amount={self.amount}")
        if self.rate is not None:
            parts.append(f"rate={self.rate}")
        if self.status is not EventStatus.APPROVED:
            parts.append(self.status.value)
        return f"LoanEvent({', '.join(parts)})"


# ============================================================================
# PERIOD AND LOAN
# ============================================================================

@dataclass(frozen=True, slots=True)
class Period:
    """A calendar window [period_start, period_end] of a loan's life."""
    id: str
    loan_id: str
    period_start: date
    period_end: date
    status: PeriodStatus = PeriodStatus.OPEN

    def __post_init__(self):
        object.__setattr__(self, 'period_start', parse_date(self.period_start))
        object.__setattr__(self, 'period_end', parse_date(self.period_end))
        object.__setattr__(self, 'status', _parse_enum(PeriodStatus, self.status))
        if self.period_end < self.period_start:
            raise ValueError(
                f"Period {self.id} ends ({self.period_end}) before it starts ({self.period_start})"
            )

    def contains(self, day: date) -> bool:
        return self.period_start <= day <= self.period_end

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Period':
        return cls(
            id=str(record['id']),
            loan_id=str(record['loan_id']),
            period_start=record['period_start'],
            period_end=record['period_end'],
            status=record.get('status') or PeriodStatus.OPEN.value,
        )


@dataclass(frozen=True, slots=True)
class Loan:
    """
    Loan metadata consumed by the engine.

    total_commitment seeds the replay before any commitment event.
    day_count is this loan's convention for interest and fee accruals;
    None means the engine default (EngineConfig.day_count) applies.
    """
    id: str
    status: LoanStatus = LoanStatus.ACTIVE
    interest_type: InterestType = InterestType.CASH_PAY
    total_commitment: Decimal = ZERO
    commitment_fee_rate: Decimal = ZERO
    loan_start_date: Optional[date] = None
    day_count: Optional[DayCountConvention] = None

    def __post_init__(self):
        if not self.id or not str(self.id).strip():
            raise ValueError("Loan id cannot be empty")
        object.__setattr__(self, 'status', _parse_enum(LoanStatus, self.status))
        object.__setattr__(self, 'interest_type', _parse_enum(InterestType, self.interest_type))
        object.__setattr__(self, 'total_commitment', to_decimal(self.total_commitment))
        object.__setattr__(self, 'commitment_fee_rate', to_decimal(self.commitment_fee_rate))
        if self.day_count is not None:
            object.__setattr__(self, 'day_count', DayCountConvention.parse(self.day_count))
        if self.loan_start_date is not None:
            object.__setattr__(self, 'loan_start_date', parse_date(self.loan_start_date))

    @property
    def is_pik(self) -> bool:
        return self.interest_type is InterestType.PIK

    def convention(self, default: DayCountConvention = DEFAULT_DAY_COUNT) -> DayCountConvention:
        """The loan's own day-count convention, else default."""
        return self.day_count or DayCountConvention.parse(default)

    @classmethod
    def from_record(
        cls,
        record: Mapping[str, Any],
        default_day_count: Optional[DayCountConvention] = None,
    ) -> 'Loan':
        """Adapt a raw storage row; null commitment/fee columns become zero."""
        start = record.get('loan_start_date')
        return cls(
            id=str(record['id']),
            status=record.get('status') or LoanStatus.ACTIVE.value,
            interest_type=record.get('interest_type') or InterestType.CASH_PAY.value,
            total_commitment=to_decimal(record.get('total_commitment')),
            commitment_fee_rate=to_decimal(record.get('commitment_fee_rate')),
            loan_start_date=parse_date(start) if start else None,
            day_count=record.get('day_count_convention') or default_day_count,
        )


# ============================================================================
# EVENT FACTORY FUNCTIONS
# ============================================================================

def _make_event(
    loan_id: str,
    event_type: EventType,
    effective_date: date,
    amount: Optional[Decimal] = None,
    rate: Optional[Decimal] = None,
    metadata: Optional[Dict[str, Any]] = None,
    status: EventStatus = EventStatus.APPROVED,
    event_id: Optional[str] = None,
    sequence: Optional[int] = None,
) -> LoanEvent:
    return LoanEvent(
        id=event_id or uuid.uuid4().hex,
        loan_id=loan_id,
        event_type=event_type,
        effective_date=effective_date,
        amount=amount,
        rate=rate,
        metadata=metadata or {},
        status=status,
        sequence=next(_sequence_counter) if sequence is None else sequence,
    )


def principal_draw(loan_id: str, effective_date: date, amount: Decimal, **kwargs) -> LoanEvent:
    """Create a principal draw event."""
    return _make_event(loan_id, EventType.PRINCIPAL_DRAW, effective_date, amount=amount, **kwargs)


def principal_repayment(loan_id: str, effective_date: date, amount: Decimal, **kwargs) -> LoanEvent:
    """Create a principal repayment event."""
    return _make_event(loan_id, EventType.PRINCIPAL_REPAYMENT, effective_date, amount=amount, **kwargs)


def interest_rate_set(loan_id: str, effective_date: date, rate: Decimal, **kwargs) -> LoanEvent:
    """Create the founding interest rate event."""
    return _make_event(loan_id, EventType.INTEREST_RATE_SET, effective_date, rate=rate, **kwargs)


def interest_rate_change(loan_id: str, effective_date: date, rate: Decimal, **kwargs) -> LoanEvent:
    """Create a rate reset event."""
    return _make_event(loan_id, EventType.INTEREST_RATE_CHANGE, effective_date, rate=rate, **kwargs)


def pik_flag_set(
    loan_id: str,
    effective_date: date,
    interest_type: InterestType = InterestType.PIK,
    **kwargs,
) -> LoanEvent:
    """Create an event switching the loan between cash-pay and PIK interest."""
    metadata = dict(kwargs.pop('metadata', None) or {})
    metadata['interest_type'] = InterestType(interest_type).value
    return _make_event(loan_id, EventType.PIK_FLAG_SET, effective_date, metadata=metadata, **kwargs)


def commitment_set(loan_id: str, effective_date: date, amount: Decimal, **kwargs) -> LoanEvent:
    """Create an event setting the total commitment."""
    return _make_event(loan_id, EventType.COMMITMENT_SET, effective_date, amount=amount, **kwargs)


def commitment_change(loan_id: str, effective_date: date, amount: Decimal, **kwargs) -> LoanEvent:
    """Create an event adjusting the total commitment by a signed amount."""
    return _make_event(loan_id, EventType.COMMITMENT_CHANGE, effective_date, amount=amount, **kwargs)


def commitment_cancel(loan_id: str, effective_date: date, amount: Decimal, **kwargs) -> LoanEvent:
    """Create an event cancelling part of the commitment."""
    return _make_event(loan_id, EventType.COMMITMENT_CANCEL, effective_date, amount=amount, **kwargs)


def cash_received(loan_id: str, effective_date: date, amount: Decimal, **kwargs) -> LoanEvent:
    """Create a cash receipt record (no effect on loan state)."""
    return _make_event(loan_id, EventType.CASH_RECEIVED, effective_date, amount=amount, **kwargs)


def fee_invoice(
    loan_id: str,
    effective_date: date,
    amount: Decimal,
    payment_type: PaymentType = PaymentType.CASH,
    **kwargs,
) -> LoanEvent:
    """Create a fee invoice; PIK fees capitalize into principal."""
    metadata = dict(kwargs.pop('metadata', None) or {})
    metadata['payment_type'] = PaymentType(payment_type).value
    return _make_event(loan_id, EventType.FEE_INVOICE, effective_date, amount=amount, metadata=metadata, **kwargs)


def pik_capitalization_posted(loan_id: str, effective_date: date, amount: Decimal, **kwargs) -> LoanEvent:
    """Create the period-close event capitalizing PIK interest into principal."""
    return _make_event(loan_id, EventType.PIK_CAPITALIZATION_POSTED, effective_date, amount=amount, **kwargs)
