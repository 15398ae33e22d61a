"""Income report package."""

from src.reports.aggregator import (
    available_years,
    build_report,
    build_report_for,
    realized_transactions,
    report_totals,
)

__all__ = [
    "available_years",
    "build_report",
    "build_report_for",
    "realized_transactions",
    "report_totals",
]
