"""
Core types and helpers for the loan servicing engine.

This module provides the foundational vocabulary shared by every other module:
1. Decimal context: deterministic arithmetic for money and rates
2. Enums: event types, statuses, interest and payment types
3. Event groupings: which event types move which balances
4. Exceptions: LoanLedgerError and the I/O boundary error types
5. Numeric helpers: Decimal coercion and quantization

Nothing in this module has side effects beyond configuring the Decimal context.
"""

from __future__ import annotations
from decimal import Decimal, ROUND_HALF_EVEN, getcontext
from enum import Enum
from typing import Any, FrozenSet, Optional


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Accrual arithmetic must be deterministic across processes and workers.
# The global context is configured once at import time.
#
# PRECONDITION: No other code should modify the global Decimal context.
# Worker threads inherit a copy of this context via decimal.localcontext()
# in the batch runner.
#
_LOAN_DECIMAL_CONTEXT = getcontext()
_LOAN_DECIMAL_CONTEXT.prec = 50
_LOAN_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

ZERO = Decimal("0")

# Persisted precision for AccrualEntry rows.
MONEY_PLACES = 2
RATE_PLACES = 8

_MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_PLACES)
_RATE_QUANTUM = Decimal(1).scaleb(-RATE_PLACES)

# Job type recorded by the batch runner.
JOB_TYPE_DAILY_ACCRUAL = "daily_accrual"


# ============================================================================
# ENUMS
# ============================================================================

class EventType(Enum):
    """Kinds of financial fact recorded in a loan's event ledger."""
    PRINCIPAL_DRAW = "principal_draw"
    PRINCIPAL_REPAYMENT = "principal_repayment"
    INTEREST_RATE_SET = "interest_rate_set"
    INTEREST_RATE_CHANGE = "interest_rate_change"
    PIK_FLAG_SET = "pik_flag_set"
    COMMITMENT_SET = "commitment_set"
    COMMITMENT_CHANGE = "commitment_change"
    COMMITMENT_CANCEL = "commitment_cancel"
    CASH_RECEIVED = "cash_received"
    FEE_INVOICE = "fee_invoice"
    PIK_CAPITALIZATION_POSTED = "pik_capitalization_posted"


class EventStatus(Enum):
    """
    Approval status of an event.

    Only APPROVED events participate in state derivation. DRAFT events are
    visible to callers but never alter computed balances.
    """
    DRAFT = "draft"
    APPROVED = "approved"


class InterestType(Enum):
    """How interest is settled: paid in cash or capitalized into principal."""
    CASH_PAY = "cash_pay"
    PIK = "pik"


class PaymentType(Enum):
    """Settlement of an invoiced fee."""
    CASH = "cash"
    PIK = "pik"


class PeriodStatus(Enum):
    OPEN = "open"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    SENT = "sent"


class LoanStatus(Enum):
    ACTIVE = "active"
    REPAID = "repaid"
    DEFAULTED = "defaulted"


class JobStatus(Enum):
    """Lifecycle of a batch processing job record."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ClosingPrincipalBasis(Enum):
    """
    Which closing principal a PeriodAccrual reports.

    LEDGER: the literal replay state at period end.
    PROJECTED: opening balance plus movements plus the period's interest
               charge, anticipating a PIK capitalization not yet posted.
    """
    LEDGER = "ledger"
    PROJECTED = "projected"


# ============================================================================
# EVENT GROUPINGS
# ============================================================================

# Events that open a new interest segment (principal or rate moves).
INTEREST_SEGMENT_EVENTS: FrozenSet[EventType] = frozenset({
    EventType.PRINCIPAL_DRAW,
    EventType.PRINCIPAL_REPAYMENT,
    EventType.INTEREST_RATE_SET,
    EventType.INTEREST_RATE_CHANGE,
    EventType.PIK_CAPITALIZATION_POSTED,
})

# Events that open a new commitment-fee segment (undrawn amount moves).
FEE_SEGMENT_EVENTS: FrozenSet[EventType] = frozenset({
    EventType.PRINCIPAL_DRAW,
    EventType.PRINCIPAL_REPAYMENT,
    EventType.COMMITMENT_SET,
    EventType.COMMITMENT_CHANGE,
    EventType.COMMITMENT_CANCEL,
})


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LoanLedgerError(Exception):
    """Base exception for all loan ledger errors."""
    pass


class ConfigurationError(LoanLedgerError):
    """Raised when engine configuration is invalid."""
    pass


class StoreError(LoanLedgerError):
    """Raised by storage collaborators when a read or write fails."""
    pass


class FetchError(StoreError):
    """Raised when events, periods or loans cannot be fetched."""
    pass


class InsertError(StoreError):
    """Raised when a chunk of accrual entries cannot be written."""
    pass


class JobRecordError(StoreError):
    """Raised when a processing job record cannot be created or updated."""
    pass


# ============================================================================
# NUMERIC HELPERS
# ============================================================================

def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """
    Coerce a numeric value to Decimal.

    Floats go through str() so 0.085 becomes Decimal("0.085") rather than
    its binary expansion. None returns the default.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got {value!r}")
    return Decimal(str(value))


def optional_decimal(value: Any) -> Optional[Decimal]:
    """Like to_decimal() but preserves None."""
    if value is None:
        return None
    return to_decimal(value)


def quantize_money(value: Decimal) -> Decimal:
    """Round a money amount to persisted precision (banker's rounding)."""
    return value.quantize(_MONEY_QUANTUM, rounding=ROUND_HALF_EVEN)


def quantize_rate(value: Decimal) -> Decimal:
    """Round a rate to persisted precision."""
    return value.quantize(_RATE_QUANTUM, rounding=ROUND_HALF_EVEN)


def clamp_zero(value: Decimal) -> Decimal:
    """max(0, value) for Decimals."""
    return value if value > ZERO else ZERO
