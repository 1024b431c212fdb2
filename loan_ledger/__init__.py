"""
loan_ledger - Event-Sourced Loan Servicing Engine

Derives loan balances, interest and commitment-fee accruals from an
append-only event ledger, and runs the daily accrual batch over a portfolio.

Usage:
    from loan_ledger import (
        Loan, Period, commitment_set, interest_rate_set, principal_draw,
        state_at, compute_loan_accruals,
    )

    loan = Loan("L1", total_commitment=Decimal("1000000"), commitment_fee_rate=Decimal("0.01"))
    events = [
        commitment_set("L1", date(2025, 1, 1), Decimal("1000000")),
        interest_rate_set("L1", date(2025, 1, 1), Decimal("0.08")),
        principal_draw("L1", date(2025, 1, 10), Decimal("400000")),
    ]

    state = state_at(events, date(2025, 2, 9))
    state.outstanding_principal   # Decimal("400000")
    state.undrawn_commitment      # Decimal("600000")

    period = Period("P1", "L1", date(2025, 1, 1), date(2025, 1, 31))
    result = compute_loan_accruals(loan, events, [period])
    result.summary.total_interest_accrued

Batch:
    store = InMemoryAccrualStore()
    config = EngineConfig.from_env()
    config.configure_logging()
    runner = AccrualBatchRunner(store, config)
    job = runner.run_date(date(2025, 1, 31))
"""

# Core types
from .core import (
    EventType,
    EventStatus,
    InterestType,
    PaymentType,
    PeriodStatus,
    LoanStatus,
    JobStatus,
    ClosingPrincipalBasis,
    INTEREST_SEGMENT_EVENTS,
    FEE_SEGMENT_EVENTS,
    LoanLedgerError,
    ConfigurationError,
    StoreError,
    FetchError,
    InsertError,
    JobRecordError,
    ZERO,
    to_decimal,
    quantize_money,
    quantize_rate,
)

# Day counts
from .day_count import (
    DayCountConvention,
    DEFAULT_DAY_COUNT,
    days_between,
    days_within,
    year_fraction,
    accrue,
    daily_interest,
    daily_fee,
)

# Events, periods, loans
from .events import (
    LoanEvent,
    Period,
    Loan,
    principal_draw,
    principal_repayment,
    interest_rate_set,
    interest_rate_change,
    pik_flag_set,
    commitment_set,
    commitment_change,
    commitment_cancel,
    cash_received,
    fee_invoice,
    pik_capitalization_posted,
)

# Replay
from .replay import (
    LoanState,
    apply_event,
    sort_events,
    state_at,
    replay_states,
    earliest_event_date,
)

# Segmentation
from .segments import (
    InterestSegment,
    CommitmentFeeSegment,
    interest_segments,
    commitment_fee_segments,
    total_days,
)

# Period accruals
from .accruals import (
    DailyAccrual,
    PeriodAccrual,
    daily_accruals,
    period_accrual,
    all_period_accruals,
)

# Summary
from .summary import (
    AccrualsSummary,
    EMPTY_SUMMARY,
    LoanAccruals,
    weighted_average_rate,
    summarize,
    summary_from_state,
    compute_loan_accruals,
)

# Clock, config, logging
from .clock import Clock, SystemClock, FixedClock
from .config import EngineConfig
from .logging import setup_logging, get_logger, JsonFormatter

# Storage and batch
from .store import AccrualEntry, ProcessingJob, AccrualStore, InMemoryAccrualStore
from .batch import (
    LoanResult,
    JobResult,
    AccrualBatchRunner,
    build_accrual_entries,
    backfill_start,
    date_range,
)

__all__ = [
    # Core
    'EventType', 'EventStatus', 'InterestType', 'PaymentType', 'PeriodStatus',
    'LoanStatus', 'JobStatus', 'ClosingPrincipalBasis',
    'INTEREST_SEGMENT_EVENTS', 'FEE_SEGMENT_EVENTS',
    'LoanLedgerError', 'ConfigurationError', 'StoreError', 'FetchError',
    'InsertError', 'JobRecordError',
    'ZERO', 'to_decimal', 'quantize_money', 'quantize_rate',
    # Day counts
    'DayCountConvention', 'DEFAULT_DAY_COUNT', 'days_between', 'days_within',
    'year_fraction', 'accrue', 'daily_interest', 'daily_fee',
    # Events
    'LoanEvent', 'Period', 'Loan',
    'principal_draw', 'principal_repayment', 'interest_rate_set',
    'interest_rate_change', 'pik_flag_set', 'commitment_set', 'commitment_change',
    'commitment_cancel', 'cash_received', 'fee_invoice', 'pik_capitalization_posted',
    # Replay
    'LoanState', 'apply_event', 'sort_events', 'state_at', 'replay_states',
    'earliest_event_date',
    # Segments
    'InterestSegment', 'CommitmentFeeSegment', 'interest_segments',
    'commitment_fee_segments', 'total_days',
    # Accruals
    'DailyAccrual', 'PeriodAccrual', 'daily_accruals', 'period_accrual',
    'all_period_accruals',
    # Summary
    'AccrualsSummary', 'EMPTY_SUMMARY', 'LoanAccruals', 'weighted_average_rate',
    'summarize', 'summary_from_state', 'compute_loan_accruals',
    # Clock, config, logging
    'Clock', 'SystemClock', 'FixedClock', 'EngineConfig',
    'setup_logging', 'get_logger', 'JsonFormatter',
    # Storage and batch
    'AccrualEntry', 'ProcessingJob', 'AccrualStore', 'InMemoryAccrualStore',
    'LoanResult', 'JobResult', 'AccrualBatchRunner', 'build_accrual_entries',
    'backfill_start', 'date_range',
]

__version__ = '1.0.0'
