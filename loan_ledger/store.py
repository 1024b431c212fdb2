"""
store.py - Storage boundary for the batch runner

The engine does not own persistence. The batch runner talks to storage only
through the AccrualStore protocol; the rest of the system supplies the real
implementation (database, API, ...).

Classes:
- AccrualEntry: One persisted accrual row per (loan, date)
- ProcessingJob: The job-run record with counts and capped error details
- AccrualStore: Protocol defining the reads and writes the runner needs
- InMemoryAccrualStore: Thread-safe reference implementation

AccrualEntry rows are write-once: a store must reject a second row for the
same (loan_id, accrual_date) rather than overwrite it.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple, runtime_checkable
import threading
import uuid

from .core import (
    JobStatus, LoanStatus, InsertError, FetchError, JobRecordError,
    JOB_TYPE_DAILY_ACCRUAL,
)
from .events import Loan, LoanEvent, Period


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class AccrualEntry:
    """
    One loan's accrual for one calendar day.

    commitment_balance is the undrawn commitment on that day.
    """
    loan_id: str
    accrual_date: date
    period_id: Optional[str]
    principal_balance: Decimal
    interest_rate: Decimal
    daily_interest: Decimal
    commitment_balance: Decimal
    commitment_fee_rate: Decimal
    daily_commitment_fee: Decimal
    is_pik: bool

    @property
    def key(self) -> Tuple[str, date]:
        return (self.loan_id, self.accrual_date)

    def to_record(self) -> Dict[str, Any]:
        """Row form with ISO dates and string decimals."""
        return {
            'loan_id': self.loan_id,
            'period_id': self.period_id,
            'accrual_date': self.accrual_date.isoformat(),
            'principal_balance': str(self.principal_balance),
            'interest_rate': str(self.interest_rate),
            'daily_interest': str(self.daily_interest),
            'commitment_balance': str(self.commitment_balance),
            'commitment_fee_rate': str(self.commitment_fee_rate),
            'daily_commitment_fee': str(self.daily_commitment_fee),
            'is_pik': self.is_pik,
        }


@dataclass
class ProcessingJob:
    """Job-run record. Mutable: the runner updates it as the run progresses."""
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    job_type: str = JOB_TYPE_DAILY_ACCRUAL
    status: JobStatus = JobStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    processed_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    error_details: List[Dict[str, str]] = field(default_factory=list)
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def summary(self) -> Dict[str, Any]:
        """The job-run summary handed back to callers."""
        return {
            'job_id': self.id,
            'status': self.status.value,
            'processed_count': self.processed_count,
            'skipped_count': self.skipped_count,
            'error_count': self.error_count,
            'error_details': list(self.error_details),
            'error_message': self.error_message,
        }


# ============================================================================
# PROTOCOL
# ============================================================================

@runtime_checkable
class AccrualStore(Protocol):
    """
    Storage operations used by the batch runner.

    Implementations may raise any exception on failure; the runner treats
    an exception inside one loan's unit of work as that loan's error.
    Implementations must be safe to call from several worker threads.
    """

    def list_active_loans(self) -> List[Loan]:
        ...

    def fetch_events(self, loan_id: str) -> List[LoanEvent]:
        """Approved events for the loan, in ledger order."""
        ...

    def fetch_periods(self, loan_id: str) -> List[Period]:
        ...

    def existing_accrual_dates(self, loan_id: str, start: date, end: date) -> Set[date]:
        """Dates in [start, end] that already have an AccrualEntry for the loan."""
        ...

    def insert_accruals(self, entries: Sequence[AccrualEntry]) -> None:
        """Insert new rows; must fail rather than overwrite an existing (loan, date)."""
        ...

    def create_job(self, job: ProcessingJob) -> ProcessingJob:
        ...

    def update_job(self, job: ProcessingJob) -> None:
        ...


# ============================================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================================

class InMemoryAccrualStore:
    """
    Thread-safe in-memory AccrualStore.

    Example:
        store = InMemoryAccrualStore()
        store.add_loan(Loan("L1", total_commitment=Decimal("1000000")))
        store.add_events([commitment_set("L1", date(2025, 1, 1), Decimal("1000000"))])
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.loans: Dict[str, Loan] = {}
        self.events: Dict[str, List[LoanEvent]] = {}
        self.periods: Dict[str, List[Period]] = {}
        self.accruals: Dict[Tuple[str, date], AccrualEntry] = {}
        self.jobs: Dict[str, ProcessingJob] = {}
        self.insert_calls: int = 0

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def add_loan(self, loan: Loan) -> None:
        with self._lock:
            self.loans[loan.id] = loan
            self.events.setdefault(loan.id, [])
            self.periods.setdefault(loan.id, [])

    def add_events(self, events: Iterable[LoanEvent]) -> None:
        """Append events to their loans' ledgers (append-only)."""
        with self._lock:
            for event in events:
                self.events.setdefault(event.loan_id, []).append(event)

    def add_periods(self, periods: Iterable[Period]) -> None:
        with self._lock:
            for period in periods:
                self.periods.setdefault(period.loan_id, []).append(period)

    # ------------------------------------------------------------------
    # AccrualStore protocol
    # ------------------------------------------------------------------

    def list_active_loans(self) -> List[Loan]:
        with self._lock:
            return sorted(
                (loan for loan in self.loans.values() if loan.status is LoanStatus.ACTIVE),
                key=lambda loan: loan.id,
            )

    def fetch_events(self, loan_id: str) -> List[LoanEvent]:
        with self._lock:
            if loan_id not in self.loans:
                raise FetchError(f"Loan {loan_id} not found")
            return [e for e in self.events.get(loan_id, []) if e.is_approved]

    def fetch_periods(self, loan_id: str) -> List[Period]:
        with self._lock:
            return list(self.periods.get(loan_id, []))

    def existing_accrual_dates(self, loan_id: str, start: date, end: date) -> Set[date]:
        with self._lock:
            return {
                d for (lid, d) in self.accruals
                if lid == loan_id and start <= d <= end
            }

    def insert_accruals(self, entries: Sequence[AccrualEntry]) -> None:
        """All-or-nothing insert of one chunk."""
        with self._lock:
            self.insert_calls += 1
            keys = [e.key for e in entries]
            duplicates = [k for k in keys if k in self.accruals]
            if duplicates or len(set(keys)) != len(keys):
                loan_id, day = (duplicates or keys)[0]
                raise InsertError(f"Accrual entry already exists for loan {loan_id} on {day.isoformat()}")
            for entry in entries:
                self.accruals[entry.key] = entry

    def create_job(self, job: ProcessingJob) -> ProcessingJob:
        with self._lock:
            if job.id in self.jobs:
                raise JobRecordError(f"Job {job.id} already exists")
            self.jobs[job.id] = replace(job, error_details=list(job.error_details), metadata=dict(job.metadata))
            return job

    def update_job(self, job: ProcessingJob) -> None:
        with self._lock:
            if job.id not in self.jobs:
                raise JobRecordError(f"Job {job.id} not found")
            self.jobs[job.id] = replace(job, error_details=list(job.error_details), metadata=dict(job.metadata))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def accruals_for(self, loan_id: str) -> List[AccrualEntry]:
        """All stored entries for a loan, by date."""
        with self._lock:
            return sorted(
                (e for (lid, _), e in self.accruals.items() if lid == loan_id),
                key=lambda e: e.accrual_date,
            )

    def accrual_count(self) -> int:
        with self._lock:
            return len(self.accruals)

    def __repr__(self):
        return f"InMemoryAccrualStore({len(self.loans)} loans, {len(self.accruals)} accruals)"
