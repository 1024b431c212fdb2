"""
test_clock_store.py - Unit tests for the clock capability and the accrual store

Tests:
- FixedClock / SystemClock behavior
- AccrualEntry record form
- ProcessingJob defaults and summary
- InMemoryAccrualStore: loan listing, approved-only event fetch,
  write-once inserts, existing-date queries, job records
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from loan_ledger import (
    Clock, FixedClock, SystemClock,
    AccrualEntry, ProcessingJob, AccrualStore, InMemoryAccrualStore,
    Loan, Period, LoanStatus, JobStatus, EventStatus,
    FetchError, InsertError, JobRecordError,
    principal_draw,
)


def entry(day: date, loan_id: str = "L1") -> AccrualEntry:
    return AccrualEntry(
        loan_id=loan_id,
        accrual_date=day,
        period_id="P1",
        principal_balance=Decimal("400000.00"),
        interest_rate=Decimal("0.08000000"),
        daily_interest=Decimal("88.89"),
        commitment_balance=Decimal("600000.00"),
        commitment_fee_rate=Decimal("0.01000000"),
        daily_commitment_fee=Decimal("16.67"),
        is_pik=False,
    )


# ============================================================================
# CLOCK
# ============================================================================

class TestClock:

    def test_fixed_clock(self):
        clock = FixedClock(date(2025, 1, 31))
        assert clock.today() == date(2025, 1, 31)
        assert clock.now() == datetime(2025, 1, 31, tzinfo=timezone.utc)

    def test_advance_and_set(self):
        clock = FixedClock(date(2025, 1, 31))
        assert clock.advance() == date(2025, 2, 1)
        assert clock.advance(days=27) == date(2025, 2, 28)
        clock.set(date(2026, 6, 15))
        assert clock.today() == date(2026, 6, 15)

    def test_system_clock(self):
        clock = SystemClock(timezone.utc)
        assert isinstance(clock.today(), date)
        assert clock.now().tzinfo is not None

    def test_protocol(self):
        assert isinstance(FixedClock(date(2025, 1, 1)), Clock)
        assert isinstance(SystemClock(), Clock)


# ============================================================================
# RECORDS
# ============================================================================

class TestAccrualEntry:

    def test_key(self):
        assert entry(date(2025, 1, 15)).key == ("L1", date(2025, 1, 15))

    def test_to_record(self):
        record = entry(date(2025, 1, 15)).to_record()
        assert record["accrual_date"] == "2025-01-15"
        assert record["daily_interest"] == "88.89"
        assert record["interest_rate"] == "0.08000000"
        assert record["commitment_balance"] == "600000.00"
        assert record["is_pik"] is False


class TestProcessingJob:

    def test_defaults(self):
        job = ProcessingJob()
        assert job.job_type == "daily_accrual"
        assert job.status is JobStatus.PENDING
        assert job.error_details == []
        assert ProcessingJob().id != job.id

    def test_summary(self):
        job = ProcessingJob(status=JobStatus.COMPLETED, processed_count=4, skipped_count=1)
        summary = job.summary()
        assert summary["status"] == "completed"
        assert summary["processed_count"] == 4
        assert summary["skipped_count"] == 1
        assert summary["job_id"] == job.id


# ============================================================================
# IN-MEMORY STORE
# ============================================================================

class TestInMemoryAccrualStore:

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryAccrualStore(), AccrualStore)

    def test_lists_active_loans_only(self):
        store = InMemoryAccrualStore()
        store.add_loan(Loan("L2"))
        store.add_loan(Loan("L1"))
        store.add_loan(Loan("L3", status=LoanStatus.REPAID))
        assert [loan.id for loan in store.list_active_loans()] == ["L1", "L2"]

    def test_fetch_events_approved_only(self, store):
        store.add_events([principal_draw("L1", date(2025, 1, 5), Decimal("1"), status=EventStatus.DRAFT)])
        fetched = store.fetch_events("L1")
        assert len(fetched) == 3
        assert all(e.is_approved for e in fetched)

    def test_fetch_unknown_loan(self, store):
        with pytest.raises(FetchError):
            store.fetch_events("missing")

    def test_fetch_periods(self, store):
        store.add_periods([Period("P2", "L1", date(2025, 2, 1), date(2025, 2, 28))])
        assert [p.id for p in store.fetch_periods("L1")] == ["P1", "P2"]
        assert store.fetch_periods("unknown") == []

    def test_insert_and_query(self, store):
        store.insert_accruals([entry(date(2025, 1, 1)), entry(date(2025, 1, 2))])
        assert store.existing_accrual_dates("L1", date(2025, 1, 1), date(2025, 1, 31)) == {
            date(2025, 1, 1), date(2025, 1, 2),
        }
        assert store.existing_accrual_dates("L1", date(2025, 1, 2), date(2025, 1, 2)) == {date(2025, 1, 2)}
        assert store.existing_accrual_dates("L2", date(2025, 1, 1), date(2025, 1, 31)) == set()
        assert [e.accrual_date.day for e in store.accruals_for("L1")] == [1, 2]
        assert store.accrual_count() == 2

    def test_insert_never_overwrites(self, store):
        store.insert_accruals([entry(date(2025, 1, 1))])
        with pytest.raises(InsertError):
            store.insert_accruals([entry(date(2025, 1, 2)), entry(date(2025, 1, 1))])
        assert store.accrual_count() == 1

    def test_duplicate_within_chunk(self, store):
        with pytest.raises(InsertError):
            store.insert_accruals([entry(date(2025, 1, 1)), entry(date(2025, 1, 1))])
        assert store.accrual_count() == 0

    def test_job_records_are_copies(self, store):
        job = ProcessingJob(status=JobStatus.RUNNING)
        store.create_job(job)
        job.metadata["late"] = True
        job.error_details.append({"loan_id": "L1", "error": "x"})

        stored = store.jobs[job.id]
        assert stored.metadata == {}
        assert stored.error_details == []

    def test_job_update(self, store):
        job = ProcessingJob(status=JobStatus.RUNNING)
        store.create_job(job)
        job.status = JobStatus.COMPLETED
        store.update_job(job)
        assert store.jobs[job.id].status is JobStatus.COMPLETED

    def test_duplicate_job(self, store):
        job = ProcessingJob()
        store.create_job(job)
        with pytest.raises(JobRecordError):
            store.create_job(job)

    def test_update_unknown_job(self, store):
        with pytest.raises(JobRecordError):
            store.update_job(ProcessingJob())
