"""
test_loan_lifecycle.py - End-to-end loan servicing scenarios

Each test drives a loan through a realistic sequence of ledger events and
checks the balances, accruals and batch entries the engine derives from it:

- Revolver draw on day 10, queried on day 40
- Revolver over a quarter: draw, rate reset, repayment, commitment cancel
- PIK loan: projection before capitalization, PIK fee capitalization
- Batch entries agree with the period drill-down
- Portfolio batch with mixed conventions and a failing loan
"""

from datetime import date, timedelta
from decimal import Decimal

from loan_ledger import (
    Loan, Period, InterestType, PaymentType, DayCountConvention, JobStatus, ZERO,
    AccrualBatchRunner, EngineConfig, FixedClock, InMemoryAccrualStore,
    ClosingPrincipalBasis,
    state_at, interest_segments, compute_loan_accruals, period_accrual,
    quantize_money,
    commitment_set, commitment_cancel, interest_rate_set, interest_rate_change,
    principal_draw, principal_repayment, fee_invoice, cash_received,
    pik_capitalization_posted,
)

from tests.fake_store import FakeStore, make_loan, revolver_events, seed_store


DAY_0 = date(2025, 1, 1)
ACT_360 = DayCountConvention.ACT_360


def day(n: int) -> date:
    return DAY_0 + timedelta(days=n)


def month(loan_id: str, period_id: str, year: int, mon: int) -> Period:
    start = date(year, mon, 1)
    end = (date(year + mon // 12, mon % 12 + 1, 1)) - timedelta(days=1)
    return Period(period_id, loan_id, start, end)


# ============================================================================
# REVOLVER
# ============================================================================

class TestRevolverDrawScenario:
    """Commitment 1,000,000 on day 0, 8% rate on day 0, draw 400,000 on day 10."""

    def setup_method(self):
        self.events = [
            commitment_set("L1", day(0), Decimal("1000000")),
            interest_rate_set("L1", day(0), Decimal("0.08")),
            principal_draw("L1", day(10), Decimal("400000")),
        ]

    def test_state_on_day_40(self):
        state = state_at(self.events, day(40), Decimal("1000000"))
        assert state.outstanding_principal == Decimal("400000")
        assert state.undrawn_commitment == Decimal("600000")

    def test_two_interest_segments(self):
        first, second = interest_segments(self.events, day(0), day(40), Decimal("1000000"), ACT_360)

        assert (first.start_date, first.end_date) == (day(0), day(9))
        assert first.principal == ZERO
        assert first.rate == Decimal("0.08")
        assert first.interest == ZERO
        assert (second.start_date, second.end_date) == (day(10), day(40))
        assert second.principal == Decimal("400000")
        assert second.days == 31


class TestRevolverQuarter:
    """A revolver through Q1 with every kind of balance movement."""

    def setup_method(self):
        self.loan = Loan("R1", total_commitment=Decimal("1000000"), commitment_fee_rate=Decimal("0.005"),
                         loan_start_date=DAY_0, day_count=ACT_360)
        self.events = [
            commitment_set("R1", date(2025, 1, 1), Decimal("1000000")),
            interest_rate_set("R1", date(2025, 1, 1), Decimal("0.08")),
            principal_draw("R1", date(2025, 1, 10), Decimal("400000")),
            interest_rate_change("R1", date(2025, 2, 15), Decimal("0.09")),
            principal_repayment("R1", date(2025, 2, 20), Decimal("100000")),
            commitment_cancel("R1", date(2025, 3, 5), Decimal("200000")),
            fee_invoice("R1", date(2025, 3, 10), Decimal("2500")),
            cash_received("R1", date(2025, 3, 31), Decimal("2500")),
        ]
        self.periods = [month("R1", f"R1-{m}", 2025, m) for m in (1, 2, 3)]
        self.result = compute_loan_accruals(self.loan, self.events, self.periods)

    def test_periods_chain(self):
        jan, feb, mar = self.result.period_accruals
        assert feb.opening_principal == jan.closing_principal == Decimal("400000")
        assert mar.opening_principal == feb.closing_principal == Decimal("300000")
        assert feb.closing_rate == Decimal("0.09")

    def test_february_segments(self):
        feb = self.result.period_accruals[1]
        assert [(s.days, s.principal, s.rate) for s in feb.interest_segments] == [
            (14, Decimal("400000"), Decimal("0.08")),
            (5, Decimal("400000"), Decimal("0.09")),
            (9, Decimal("300000"), Decimal("0.09")),
        ]
        assert quantize_money(feb.interest_accrued) == Decimal("2419.44")

    def test_march_commitment_cancel(self):
        mar = self.result.period_accruals[2]
        assert mar.closing_commitment == Decimal("800000")
        assert mar.closing_undrawn == Decimal("500000")
        assert mar.fees_invoiced == Decimal("2500")
        assert [s.undrawn for s in mar.commitment_fee_segments] == [Decimal("700000"), Decimal("500000")]

    def test_summary(self):
        summary = self.result.summary
        assert summary.total_days == 31 + 28 + 31
        assert summary.current_principal == Decimal("300000")
        assert summary.current_rate == Decimal("0.09")
        assert summary.current_undrawn == Decimal("500000")
        assert summary.total_commitment == Decimal("800000")
        assert summary.total_fees_invoiced == Decimal("2500")
        assert Decimal("0.08") < summary.average_rate < Decimal("0.09")

    def test_daily_rows_match_segment_interest(self):
        for pa in self.result.period_accruals:
            daily_total = sum((row.daily_interest for row in pa.daily_accruals), ZERO)
            assert quantize_money(daily_total) == quantize_money(pa.interest_accrued)


# ============================================================================
# PIK
# ============================================================================

class TestPikLoan:
    """PIK loan at 12% on 300,000, interest capitalized at the start of each month."""

    def setup_method(self):
        self.loan = Loan("K1", interest_type=InterestType.PIK, total_commitment=Decimal("1000000"),
                         loan_start_date=DAY_0, day_count=ACT_360)
        self.events = [
            commitment_set("K1", date(2025, 1, 1), Decimal("1000000")),
            interest_rate_set("K1", date(2025, 1, 1), Decimal("0.12")),
            principal_draw("K1", date(2025, 1, 1), Decimal("300000")),
            pik_capitalization_posted("K1", date(2025, 2, 1), Decimal("3100")),
        ]
        self.periods = [month("K1", "K1-1", 2025, 1), month("K1", "K1-2", 2025, 2)]

    def test_projection_anticipates_capitalization(self):
        jan, feb = compute_loan_accruals(self.loan, self.events, self.periods).period_accruals

        assert jan.closing_principal_basis is ClosingPrincipalBasis.PROJECTED
        assert jan.interest_accrued == Decimal("3100")
        assert jan.projected_closing_principal == Decimal("303100")
        assert jan.ledger_closing_principal == Decimal("300000")

        assert feb.closing_principal_basis is ClosingPrincipalBasis.LEDGER
        assert feb.pik_capitalized == Decimal("3100")
        assert feb.closing_principal == jan.projected_closing_principal

    def test_nothing_due_in_cash(self):
        result = compute_loan_accruals(self.loan, self.events, self.periods)
        assert result.summary.total_due == ZERO
        assert result.summary.total_pik_capitalized == Decimal("3100")

    def test_pik_fee_on_day_5(self):
        fee = fee_invoice("K1", day(5), Decimal("10000"), payment_type=PaymentType.PIK)
        events = self.events + [fee]

        assert state_at(events, day(4)).outstanding_principal == Decimal("300000")
        assert state_at(events, day(5)).outstanding_principal == Decimal("310000")

        jan = period_accrual(self.periods[0], events, ZERO, Decimal("1000000"), InterestType.PIK, ACT_360)
        assert jan.is_projected
        assert jan.projected_closing_principal == Decimal("310000") + jan.interest_accrued

    def test_batch_entries_flag_pik(self):
        store = seed_store(InMemoryAccrualStore(), self.loan, self.events, self.periods)
        AccrualBatchRunner(store, clock=FixedClock(date(2025, 2, 2))).run_backfill()

        entries = store.accruals_for("K1")
        assert len(entries) == 33
        assert all(e.is_pik for e in entries)
        assert entries[30].principal_balance == Decimal("300000.00")
        assert entries[31].principal_balance == Decimal("303100.00")
        assert entries[31].period_id == "K1-2"


# ============================================================================
# BATCH
# ============================================================================

class TestBatchMatchesDrillDown:

    def test_daily_entries_equal_rounded_drill_down(self, act360_loan, events, january):
        store = seed_store(InMemoryAccrualStore(), act360_loan, events, [january])
        AccrualBatchRunner(store, clock=FixedClock(date(2025, 1, 31))).run_backfill()

        drill_down = compute_loan_accruals(act360_loan, events, [january]).period_accruals[0].daily_accruals
        entries = store.accruals_for("L1")

        assert [e.accrual_date for e in entries] == [row.date for row in drill_down]
        for entry, row in zip(entries, drill_down):
            assert entry.principal_balance == quantize_money(row.principal)
            assert entry.daily_interest == quantize_money(row.daily_interest)
            assert entry.commitment_balance == quantize_money(row.undrawn)
            assert entry.daily_commitment_fee == quantize_money(row.commitment_fee)
            assert entry.period_id == "P1"


class TestPortfolioBatch:

    def setup_method(self):
        self.store = FakeStore(fail_fetch_for={"B"})
        seed_store(self.store, make_loan("A"), revolver_events("A"))
        seed_store(self.store, make_loan("B"), revolver_events("B"))
        seed_store(self.store, make_loan("C", day_count=DayCountConvention.ACT_365), revolver_events("C"))
        self.runner = AccrualBatchRunner(self.store, EngineConfig(max_workers=3, insert_chunk_size=7),
                                         FixedClock(date(2025, 1, 31)))

    def test_month_end_run(self):
        result = self.runner.run_range(date(2025, 1, 1), date(2025, 1, 31))

        assert result.status is JobStatus.COMPLETED
        assert result.processed_count == 62
        assert result.error_count == 1
        assert result.error_details[0]["loan_id"] == "B"
        assert self.store.accruals_for("B") == []

        a_15 = self.store.accruals_for("A")[14]
        c_15 = self.store.accruals_for("C")[14]
        assert a_15.daily_interest == Decimal("88.89")
        assert c_15.daily_interest == Decimal("87.67")

    def test_rerun_after_fix_only_fills_gaps(self):
        self.runner.run_range(date(2025, 1, 1), date(2025, 1, 31))
        self.store.fail_fetch_for = set()
        calls_before = self.store.insert_calls

        result = self.runner.run_range(date(2025, 1, 1), date(2025, 1, 31))

        assert result.processed_count == 31
        assert result.skipped_count == 62
        assert result.error_count == 0
        assert self.store.insert_calls - calls_before == 5

    def test_already_accrued_date_inserts_nothing(self):
        self.runner.run_date(date(2025, 1, 15))
        calls_before = self.store.insert_calls

        result = self.runner.run_date(date(2025, 1, 15))

        assert result.processed_count == 0
        assert result.skipped_count == 2
        assert self.store.insert_calls == calls_before
