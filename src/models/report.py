"""
Report Models

Inputs and outputs of the income report aggregation.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.models.business import ZERO


class ReportPeriod(str, Enum):
    """Bucket size of a report row."""
    DAILY = "daily"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    def bucket_key(self, day: date) -> str:
        """Fixed-width key; lexicographic order equals chronological order."""
        if self is ReportPeriod.DAILY:
            return day.isoformat()
        if self is ReportPeriod.MONTHLY:
            return f"{day.year:04d}-{day.month:02d}"
        return f"{day.year:04d}"


ALL_YEARS = "all"


class ReportFilter(BaseModel):
    """
    Period granularity plus the month / year window of a report.

    The `with_start_month` / `with_end_month` helpers keep
    start_month <= end_month by moving the other bound, the way the
    month pickers are expected to behave. The model itself accepts a
    misordered range; the aggregator then reports nothing.
    """

    model_config = ConfigDict(frozen=True)

    period: ReportPeriod = ReportPeriod.MONTHLY
    start_month: int = Field(default=1, ge=1, le=12)
    end_month: int = Field(default=12, ge=1, le=12)
    year: str = ALL_YEARS

    @field_validator('year', mode='before')
    @classmethod
    def normalize_year(cls, v: Union[str, int, None]) -> str:
        if v is None or v == "":
            return ALL_YEARS
        return str(v).strip().lower()

    def with_start_month(self, month: int) -> 'ReportFilter':
        end_month = max(self.end_month, month)
        return self.model_copy(update={"start_month": month, "end_month": end_month})

    def with_end_month(self, month: int) -> 'ReportFilter':
        start_month = min(self.start_month, month)
        return self.model_copy(update={"start_month": start_month, "end_month": month})

    def matches(self, day: date) -> bool:
        year_ok = self.year == ALL_YEARS or str(day.year) == self.year
        return year_ok and self.start_month <= day.month <= self.end_month


class TransactionSource(str, Enum):
    JOB = "job"
    INCOME = "income"
    EXPENSE = "expense"


class Transaction(BaseModel):
    """One realized money movement."""

    model_config = ConfigDict(frozen=True)

    date: date
    gross: Decimal = ZERO
    expenses: Decimal = ZERO
    source: TransactionSource
    source_id: str


class ReportRow(BaseModel):
    """Totals for one bucket (a day, a month or a year)."""

    key: str
    gross: Decimal = ZERO
    expenses: Decimal = ZERO

    @property
    def net(self) -> Decimal:
        return self.gross - self.expenses

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "gross": float(self.gross),
            "net": float(self.net),
            "expenses": float(self.expenses),
        }
