"""Tests for report aggregation."""

from datetime import date
from decimal import Decimal

import pytest

from src.models.business import Job, OtherExpense, OtherIncome
from src.reports import available_years, build_report, realized_transactions, report_totals


@pytest.fixture
def ledger():
    """A business's jobs, incomes and expenses across a year boundary."""
    jobs = [
        Job(id="done", title="Done", date=date(2023, 12, 28), gross_income=100, expenses=10,
            completed=True),
        Job(id="open", title="Open", date=date(2024, 1, 5), gross_income=999, completed=False),
        Job(id="weekly", title="Weekly", date=date(2024, 1, 1), gross_income=50, expenses=5,
            is_recurring=True, completions={"2024-01-08": True, "2024-02-05": True}),
    ]
    incomes = [OtherIncome(id="i1", title="Grant", date=date(2024, 1, 20), amount=200)]
    expenses = [OtherExpense(id="e1", title="Rent", date=date(2024, 2, 1), amount=80)]
    return jobs, incomes, expenses


class TestRealizedTransactions:
    """Tests for the realized transaction stream."""

    def test_only_completed_occurrences_count(self, ledger):
        transactions = realized_transactions(*ledger)
        job_dates = [t.date for t in transactions if t.source_id in ("done", "open", "weekly")]
        assert sorted(job_dates) == [date(2023, 12, 28), date(2024, 1, 8), date(2024, 2, 5)]

    def test_other_entries_always_count(self, ledger):
        transactions = {t.source_id: t for t in realized_transactions(*ledger)}
        assert transactions["i1"].gross == Decimal("200")
        assert transactions["e1"].expenses == Decimal("80")


class TestBuildReport:
    """Tests for bucketed report rows."""

    def test_monthly_keys_sort_across_year_boundary(self, ledger):
        rows = build_report(*ledger, period="monthly")
        assert [row.key for row in rows] == ["2023-12", "2024-01", "2024-02"]

    def test_monthly_sums(self, ledger):
        rows = {row.key: row for row in build_report(*ledger, period="monthly")}
        assert rows["2024-01"].gross == Decimal("250")
        assert rows["2024-01"].expenses == Decimal("5")
        assert rows["2024-01"].net == Decimal("245")
        assert rows["2024-02"].net == Decimal("-35")

    def test_daily_and_yearly(self, ledger):
        daily = build_report(*ledger, period="daily")
        assert daily[0].key == "2023-12-28"
        yearly = build_report(*ledger, period="yearly")
        assert [row.key for row in yearly] == ["2023", "2024"]

    def test_year_filter(self, ledger):
        rows = build_report(*ledger, period="monthly", year=2024)
        assert [row.key for row in rows] == ["2024-01", "2024-02"]

    def test_month_range_filter(self, ledger):
        rows = build_report(*ledger, period="monthly", start_month=2, end_month=2)
        assert [row.key for row in rows] == ["2024-02"]

    def test_misordered_months_yield_nothing(self, ledger):
        """Test that start > end does not wrap around the year."""
        assert build_report(*ledger, period="monthly", start_month=6, end_month=3) == []

    def test_totals_match_filtered_transactions(self, ledger):
        """Test that row totals equal the realized gross inside the window."""
        rows = build_report(*ledger, period="daily", start_month=1, end_month=1, year="2024")
        expected = sum(
            (t.gross for t in realized_transactions(*ledger)
             if t.date.year == 2024 and t.date.month == 1),
            Decimal("0"),
        )
        assert report_totals(rows).gross == expected

    def test_garbage_amounts_count_as_zero(self):
        jobs = [Job(title="x", date=date(2024, 1, 1), gross_income="??", completed=True)]
        rows = build_report(jobs, [], [])
        assert rows[0].gross == Decimal("0")


class TestAvailableYears:
    def test_newest_first(self, ledger):
        assert available_years(*ledger) == ["2024", "2023"]
