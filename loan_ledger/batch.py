"""
batch.py - Batch Accrual Orchestrator

Runs the engine across every active loan for one or more dates, writing one
AccrualEntry per (loan, date) and recording a ProcessingJob with counts.

Modes:
    run_date(day)          a single date (default: clock.today())
    run_range(start, end)  every date in [start, end]
    run_backfill(end)      per loan, from min(loan_start_date, earliest event)
                           through end

Execution per run:
1. Create the job record as RUNNING
2. List active loans
3. Process each loan as an isolated unit on a bounded worker pool:
     fetch events -> plan dates -> drop dates already stored (skipped)
     -> compute entries -> insert in bounded chunks
4. Aggregate the per-loan results in the calling thread
5. Update the job record as COMPLETED (or FAILED if the run itself broke)

Guarantees:
- Idempotent by skip: stored (loan, date) pairs are never recomputed or
  overwritten, so a second run over the same dates inserts nothing.
- Isolation: an exception inside one loan's unit becomes that loan's error
  result; other loans are unaffected.
- Cancellation: the cancel event is checked before every loan-date; entries
  already inserted stay intact.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import getcontext, localcontext
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
import threading

from .clock import Clock, SystemClock
from .config import EngineConfig
from .core import JobStatus, quantize_money, quantize_rate
from .day_count import DayCountConvention, DEFAULT_DAY_COUNT, daily_fee, daily_interest
from .events import Loan, LoanEvent, Period
from .logging import get_logger
from .replay import LoanState, apply_event, earliest_event_date, sort_events
from .store import AccrualEntry, AccrualStore, ProcessingJob


logger = get_logger(__name__)

# (loan, approved events) -> dates to accrue
DatePlanner = Callable[[Loan, Sequence[LoanEvent]], List[date]]


# ============================================================================
# RESULTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class LoanResult:
    """
    Outcome of one loan's unit of work.

    processed counts inserted entries, skipped counts dates that already had
    an entry. error is set when the unit failed; entries from chunks inserted
    before the failure are still counted in processed.
    """
    loan_id: str
    processed: int = 0
    skipped: int = 0
    error: Optional[str] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class JobResult:
    """Job-run summary returned to callers."""
    job_id: str
    status: JobStatus
    processed_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    error_details: Tuple[Dict[str, str], ...] = ()
    error_message: Optional[str] = None
    cancelled: bool = False
    loan_results: Tuple[LoanResult, ...] = field(default=(), repr=False)

    @property
    def succeeded(self) -> bool:
        return self.status is JobStatus.COMPLETED

    def to_dict(self) -> Dict[str, object]:
        return {
            'job_id': self.job_id,
            'status': self.status.value,
            'processed_count': self.processed_count,
            'skipped_count': self.skipped_count,
            'error_count': self.error_count,
            'error_details': [dict(d) for d in self.error_details],
            'error_message': self.error_message,
            'cancelled': self.cancelled,
        }


# ============================================================================
# PURE HELPERS
# ============================================================================

def date_range(start: date, end: date) -> List[date]:
    """Every date in [start, end]; empty when end < start."""
    days = (end - start).days
    return [start + timedelta(days=i) for i in range(days + 1)] if days >= 0 else []


def chunked(items: Sequence, size: int) -> Iterator[Sequence]:
    """Consecutive slices of at most size items."""
    for i in range(0, len(items), size):
        yield items[i:i + size]


def find_period(periods: Iterable[Period], day: date) -> Optional[Period]:
    """The period containing day, or None when unmatched."""
    for period in periods:
        if period.contains(day):
            return period
    return None


def backfill_start(loan: Loan, events: Sequence[LoanEvent]) -> Optional[date]:
    """min(loan_start_date, earliest approved event date); None when neither exists."""
    candidates = [d for d in (loan.loan_start_date, earliest_event_date(events)) if d is not None]
    return min(candidates) if candidates else None


def build_accrual_entries(
    loan: Loan,
    events: Iterable[LoanEvent],
    periods: Sequence[Period],
    dates: Iterable[date],
    default_day_count: DayCountConvention = DEFAULT_DAY_COUNT,
) -> Iterator[AccrualEntry]:
    """
    Yield one AccrualEntry per date, in ascending date order.

    Each entry uses the loan state at the close of its date and one
    calendar day of interest and commitment fee under the loan's day-count
    convention (default_day_count when the loan has none). The event list
    is walked once across all dates.
    """
    convention = loan.convention(default_day_count)
    ordered = sort_events(events)
    state = LoanState.initial(loan.total_commitment, loan.interest_type)
    cursor = 0

    for day in sorted(dates):
        while cursor < len(ordered) and ordered[cursor].effective_date <= day:
            state = apply_event(state, ordered[cursor])
            cursor += 1

        period = find_period(periods, day)
        yield AccrualEntry(
            loan_id=loan.id,
            accrual_date=day,
            period_id=period.id if period else None,
            principal_balance=quantize_money(state.outstanding_principal),
            interest_rate=quantize_rate(state.current_rate),
            daily_interest=quantize_money(
                daily_interest(state.outstanding_principal, state.current_rate, convention)
            ),
            commitment_balance=quantize_money(state.undrawn_commitment),
            commitment_fee_rate=quantize_rate(loan.commitment_fee_rate),
            daily_commitment_fee=quantize_money(
                daily_fee(state.undrawn_commitment, loan.commitment_fee_rate, convention)
            ),
            is_pik=state.is_pik,
        )


# ============================================================================
# RUNNER
# ============================================================================

class AccrualBatchRunner:
    """
    Daily accrual job over a loan portfolio.

    Example:
        runner = AccrualBatchRunner(store, EngineConfig(max_workers=8), FixedClock(date(2026, 6, 15)))
        result = runner.run_date()
        result.processed_count, result.error_count
    """

    def __init__(
        self,
        store: AccrualStore,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.config = config or EngineConfig()
        self.clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def run(
        self,
        dates: Optional[Sequence[date]] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        backfill_end: Optional[date] = None,
        cancel: Optional[threading.Event] = None,
    ) -> JobResult:
        """
        Dispatch to one mode.

        dates          explicit dates (one date is the single-date mode)
        start, end     inclusive range; both required together
        backfill_end   per-loan backfill through this date
        nothing        single date, today
        """
        chosen = sum(x is not None for x in (dates, start or end, backfill_end))
        if chosen > 1:
            raise ValueError("Choose one of dates, start/end or backfill_end")

        if backfill_end is not None:
            return self.run_backfill(backfill_end, cancel)
        if start is not None or end is not None:
            if start is None or end is None:
                raise ValueError("A range needs both start and end")
            return self.run_range(start, end, cancel)
        if dates is not None:
            planned = sorted(set(dates))
            if len(planned) == 1:
                return self.run_date(planned[0], cancel)
            return self._run(
                lambda loan, events: list(planned),
                {'mode': 'dates', 'dates': [d.isoformat() for d in planned]},
                cancel,
            )
        return self.run_date(None, cancel)

    def run_date(self, day: Optional[date] = None, cancel: Optional[threading.Event] = None) -> JobResult:
        """Accrue a single date for every active loan."""
        day = day or self.clock.today()
        return self._run(
            lambda loan, events: [day],
            {'mode': 'single', 'processing_date': day.isoformat()},
            cancel,
        )

    def run_range(self, start: date, end: date, cancel: Optional[threading.Event] = None) -> JobResult:
        """Accrue every date in [start, end] for every active loan."""
        if end < start:
            raise ValueError(f"Range end {end} is before start {start}")
        dates = date_range(start, end)
        return self._run(
            lambda loan, events: list(dates),
            {'mode': 'range', 'start_date': start.isoformat(), 'end_date': end.isoformat()},
            cancel,
        )

    def run_backfill(self, end: Optional[date] = None, cancel: Optional[threading.Event] = None) -> JobResult:
        """
        Accrue each loan's full history through end (default: today).

        A loan's history starts at the earlier of its start date and its
        first approved event; loans with neither are left untouched.
        """
        end = end or self.clock.today()

        def plan(loan: Loan, events: Sequence[LoanEvent]) -> List[date]:
            start = backfill_start(loan, events)
            return date_range(start, end) if start is not None else []

        return self._run(plan, {'mode': 'backfill', 'end_date': end.isoformat()}, cancel)

    # ------------------------------------------------------------------
    # Job lifecycle
    # ------------------------------------------------------------------

    def _run(
        self,
        planner: DatePlanner,
        metadata: Dict[str, object],
        cancel: Optional[threading.Event],
    ) -> JobResult:
        job = ProcessingJob(status=JobStatus.RUNNING, started_at=self.clock.now(), metadata=dict(metadata))
        job_created = False

        try:
            self.store.create_job(job)
            job_created = True
            logger.info("Started accrual job %s (%s)", job.id, metadata)

            loans = self.store.list_active_loans()
            logger.info("Found %d active loans", len(loans))

            results = self._run_loans(loans, planner, cancel)
        except Exception as exc:
            logger.exception("Accrual job %s failed", job.id)
            job.status = JobStatus.FAILED
            job.error_message = str(exc) or exc.__class__.__name__
            job.completed_at = self.clock.now()
            if job_created:
                self._save_job(job)
            return JobResult(job_id=job.id, status=JobStatus.FAILED, error_message=job.error_message)

        errors = [
            {'loan_id': r.loan_id, 'error': r.error}
            for r in results if r.error is not None
        ]
        cancelled = any(r.cancelled for r in results) or bool(cancel and cancel.is_set())

        job.status = JobStatus.COMPLETED
        job.completed_at = self.clock.now()
        job.processed_count = sum(r.processed for r in results)
        job.skipped_count = sum(r.skipped for r in results)
        job.error_count = len(errors)
        job.error_details = errors[:self.config.max_error_details]
        if cancelled:
            job.metadata['cancelled'] = True
        self._save_job(job)

        logger.info(
            "Accrual job %s complete. Processed: %d, Skipped: %d, Errors: %d%s",
            job.id, job.processed_count, job.skipped_count, job.error_count,
            " (cancelled)" if cancelled else "",
        )

        return JobResult(
            job_id=job.id,
            status=JobStatus.COMPLETED,
            processed_count=job.processed_count,
            skipped_count=job.skipped_count,
            error_count=job.error_count,
            error_details=tuple(job.error_details),
            cancelled=cancelled,
            loan_results=tuple(results),
        )

    def _save_job(self, job: ProcessingJob) -> None:
        """Persist the final job record. Failure here does not undo the run."""
        try:
            self.store.update_job(job)
        except Exception:
            logger.exception("Failed to update job record %s", job.id)

    # ------------------------------------------------------------------
    # Worker pool
    # ------------------------------------------------------------------

    def _run_loans(
        self,
        loans: Sequence[Loan],
        planner: DatePlanner,
        cancel: Optional[threading.Event],
    ) -> List[LoanResult]:
        """Process loans on the worker pool; results sorted by loan id."""
        if not loans:
            return []

        decimal_context = getcontext().copy()
        results: List[LoanResult] = []
        workers = min(self.config.max_workers, len(loans))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="accrual") as executor:
            futures = {
                executor.submit(self._process_loan_in_context, decimal_context, loan, planner, cancel): loan
                for loan in loans
            }
            for future in as_completed(futures):
                results.append(future.result())

        return sorted(results, key=lambda r: r.loan_id)

    def _process_loan_in_context(self, decimal_context, loan, planner, cancel) -> LoanResult:
        # Worker threads start from decimal.DefaultContext, not the caller's.
        with localcontext(decimal_context):
            return self.process_loan(loan, planner, cancel)

    # ------------------------------------------------------------------
    # Per-loan unit of work
    # ------------------------------------------------------------------

    def process_loan(
        self,
        loan: Loan,
        planner: DatePlanner,
        cancel: Optional[threading.Event] = None,
    ) -> LoanResult:
        """
        Accrue the planned dates for one loan.

        Never raises: any failure is returned as the loan's error result.
        """
        processed = 0
        skipped = 0
        try:
            if cancel is not None and cancel.is_set():
                return LoanResult(loan.id, cancelled=True)

            events = self.store.fetch_events(loan.id)
            dates = sorted(set(planner(loan, events)))
            if not dates:
                return LoanResult(loan.id)

            existing = self.store.existing_accrual_dates(loan.id, dates[0], dates[-1])
            pending = [d for d in dates if d not in existing]
            skipped = len(dates) - len(pending)
            if skipped:
                logger.debug("Loan %s: %d dates already accrued, skipping", loan.id, skipped)
            if not pending:
                return LoanResult(loan.id, skipped=skipped)

            periods = self.store.fetch_periods(loan.id)
            entries = build_accrual_entries(loan, events, periods, pending, self.config.day_count)

            for chunk_dates in chunked(pending, self.config.insert_chunk_size):
                batch: List[AccrualEntry] = []
                for _ in chunk_dates:
                    if cancel is not None and cancel.is_set():
                        break
                    batch.append(next(entries))
                if batch:
                    self.store.insert_accruals(batch)
                    processed += len(batch)
                if len(batch) < len(chunk_dates):
                    logger.info("Loan %s: cancelled after %d entries", loan.id, processed)
                    return LoanResult(loan.id, processed, skipped, cancelled=True)

            logger.debug("Loan %s: processed %d entries", loan.id, processed)
            return LoanResult(loan.id, processed, skipped)

        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.error("Error processing loan %s: %s", loan.id, message)
            return LoanResult(loan.id, processed, skipped, error=message)
