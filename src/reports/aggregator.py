"""
Report Aggregation

DESIGN DECISION: Income is only recognized once it is realized.
A job contributes its gross income and expenses once per *completed*
occurrence; other incomes and other expenses always count.

Aggregation is deterministic and side-effect free:
1. Build the realized transaction stream
2. Keep transactions inside the year / month window
3. Sum gross and expenses per bucket key (day, month or year)
4. Return rows sorted by bucket key
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional, Union

from src.models.business import (
    ZERO,
    Job,
    OtherExpense,
    OtherIncome,
    coerce_amount,
)
from src.models.report import (
    ALL_YEARS,
    ReportFilter,
    ReportPeriod,
    ReportRow,
    Transaction,
    TransactionSource,
)


__all__ = [
    "available_years",
    "build_report",
    "build_report_for",
    "coerce_amount",
    "realized_transactions",
    "report_totals",
]


def realized_transactions(
    jobs: Iterable[Job],
    other_incomes: Iterable[OtherIncome] = (),
    other_expenses: Iterable[OtherExpense] = (),
) -> list[Transaction]:
    """Every realized money movement, in input order."""
    transactions = []

    for job in jobs:
        for day in job.schedule.completed_dates():
            transactions.append(Transaction(
                date=day,
                gross=job.gross_income,
                expenses=job.expenses,
                source=TransactionSource.JOB,
                source_id=job.id,
            ))

    for income in other_incomes:
        transactions.append(Transaction(
            date=income.date,
            gross=income.amount,
            source=TransactionSource.INCOME,
            source_id=income.id,
        ))

    for expense in other_expenses:
        transactions.append(Transaction(
            date=expense.date,
            expenses=expense.amount,
            source=TransactionSource.EXPENSE,
            source_id=expense.id,
        ))

    return transactions


def build_report_for(
    transactions: Iterable[Transaction],
    report_filter: ReportFilter,
) -> list[ReportRow]:
    """Aggregate an already-built transaction stream."""
    if report_filter.start_month > report_filter.end_month:
        return []

    totals: dict[str, list[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
    for transaction in transactions:
        if not report_filter.matches(transaction.date):
            continue
        key = report_filter.period.bucket_key(transaction.date)
        totals[key][0] += transaction.gross
        totals[key][1] += transaction.expenses

    return [
        ReportRow(key=key, gross=gross, expenses=expenses)
        for key, (gross, expenses) in sorted(totals.items())
    ]


def build_report(
    jobs: Iterable[Job],
    other_incomes: Iterable[OtherIncome],
    other_expenses: Iterable[OtherExpense],
    period: Union[ReportPeriod, str] = ReportPeriod.MONTHLY,
    start_month: int = 1,
    end_month: int = 12,
    year: Union[str, int, None] = ALL_YEARS,
) -> list[ReportRow]:
    """
    Gross / net / expense totals per period bucket.

    Args:
        jobs: Job templates of the business
        other_incomes: Incomes not tied to a job
        other_expenses: Expenses not tied to a job
        period: daily, monthly or yearly buckets
        start_month: First month (1-12) included
        end_month: Last month (1-12) included; a start after the end
            matches nothing rather than wrapping around the year
        year: A year, or "all"

    Returns:
        Rows sorted ascending by bucket key
    """
    report_filter = ReportFilter(
        period=ReportPeriod(period),
        start_month=start_month,
        end_month=end_month,
        year=year,
    )
    transactions = realized_transactions(jobs, other_incomes, other_expenses)
    return build_report_for(transactions, report_filter)


def report_totals(rows: Iterable[ReportRow], key: Optional[str] = "total") -> ReportRow:
    """Grand total over report rows."""
    gross = ZERO
    expenses = ZERO
    for row in rows:
        gross += row.gross
        expenses += row.expenses
    return ReportRow(key=key or "total", gross=gross, expenses=expenses)


def available_years(
    jobs: Iterable[Job],
    other_incomes: Iterable[OtherIncome] = (),
    other_expenses: Iterable[OtherExpense] = (),
) -> list[str]:
    """Distinct years that have any entry, newest first (for the year filter)."""
    years = {job.date.year for job in jobs}
    years.update(income.date.year for income in other_incomes)
    years.update(expense.date.year for expense in other_expenses)
    return [str(year) for year in sorted(years, reverse=True)]
