"""
Core Data Models for Business Manager

These models define the schemas for everything a business owns:
jobs (one-off or weekly-recurring), other incomes, other expenses and labels.
They are designed to:
1. Accept the persisted document format (camelCase keys) as well as Python names
2. Coerce malformed amounts to zero instead of failing a whole load
3. Be serializable back to the same document format for storage

DESIGN DECISION: A job's recurrence is exposed as a tagged variant
(`OneOffSchedule` or `WeeklySchedule`) through `Job.schedule`. Code that
expands, completes or scans jobs asks the schedule, never `is_recurring`.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, ClassVar, Optional, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


ZERO = Decimal("0")

_TIME_ONLY = re.compile(r"^T?\d{2}:\d{2}(:\d{2}(\.\d+)?)?$")


def new_id() -> str:
    """Generate a unique entity id."""
    return str(uuid4())


def coerce_amount(value: Any) -> Any:
    """
    Coerce a user-entered amount to a Decimal.

    Empty, unparsable and non-finite values become 0.
    Anything else is returned as a Decimal for field validation
    (so negative amounts are still rejected).
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return ZERO
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            parsed = Decimal(value.strip().replace(",", ""))
        except InvalidOperation:
            return ZERO
        return parsed if parsed.is_finite() else ZERO
    return ZERO


def parse_day(value: Union[date, datetime, str, None]) -> Optional[date]:
    """Parse a YYYY-MM-DD string (or date) and return None when it is not one."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


Amount = Annotated[
    Decimal,
    BeforeValidator(coerce_amount),
    Field(ge=0),
    PlainSerializer(float, return_type=float, when_used="json"),
]


# =============================================================================
# ENUMS
# =============================================================================

class JobCategory(str, Enum):
    """
    Job categories.

    WORK carries money fields, TASK is a to-do without income or expenses.
    """
    WORK = "work"
    TASK = "task"


# =============================================================================
# SCHEDULES - the recurring / one-off variant of a job
# =============================================================================

@dataclass(frozen=True)
class OneOffSchedule:
    """A job that happens exactly once, on its own date."""

    kind: ClassVar[str] = "one_off"

    date: date
    completed: bool = False

    def occurs_on(self, day: date) -> bool:
        return day == self.date

    def is_complete_on(self, day: date) -> bool:
        return self.completed

    def occurrence_id(self, job_id: str, day: date) -> str:
        return job_id

    def occurrence_dates(self, start: date, end: date) -> list[date]:
        return [self.date] if start <= self.date <= end else []

    def reminder_dates(self, start: date, end: date) -> list[date]:
        """Occurrences worth checking for a deadline reminder."""
        # The deadline, not the job date, decides whether a one-off job is due
        return [self.date]

    def completed_dates(self) -> list[date]:
        return [self.date] if self.completed else []

    def effective_deadline(
        self, deadline: Optional[datetime], day: date
    ) -> Optional[datetime]:
        return deadline

    def toggled(self, day: date) -> dict[str, Any]:
        """Field updates that flip completion for the given day."""
        return {"completed": not self.completed}


@dataclass(frozen=True)
class WeeklySchedule:
    """
    A job that repeats every week from its anchor date, forever.

    Occurrences fall on the anchor's weekday, never before the anchor,
    and never on a date listed in `exceptions`.
    """

    kind: ClassVar[str] = "weekly"

    anchor: date
    completions: frozenset[str] = field(default_factory=frozenset)
    exceptions: frozenset[str] = field(default_factory=frozenset)

    def occurs_on(self, day: date) -> bool:
        return (
            day >= self.anchor
            and day.weekday() == self.anchor.weekday()
            and day.isoformat() not in self.exceptions
        )

    def is_complete_on(self, day: date) -> bool:
        return day.isoformat() in self.completions

    def occurrence_id(self, job_id: str, day: date) -> str:
        return f"{job_id}_{day.isoformat()}"

    def occurrence_dates(self, start: date, end: date) -> list[date]:
        first = max(start, self.anchor)
        first += timedelta(days=(self.anchor.weekday() - first.weekday()) % 7)
        days = []
        current = first
        while current <= end:
            if current.isoformat() not in self.exceptions:
                days.append(current)
            current += timedelta(days=7)
        return days

    def reminder_dates(self, start: date, end: date) -> list[date]:
        """Occurrences worth checking for a deadline reminder."""
        return self.occurrence_dates(start, end)

    def completed_dates(self) -> list[date]:
        days = (parse_day(key) for key in self.completions)
        return sorted(day for day in days if day is not None)

    def effective_deadline(
        self, deadline: Optional[datetime], day: date
    ) -> Optional[datetime]:
        # Only the time of day of a recurring deadline is meaningful
        if deadline is None:
            return None
        return datetime.combine(day, deadline.time())

    def toggled(self, day: date) -> dict[str, Any]:
        """Field updates that flip completion for the given day."""
        key = day.isoformat()
        completions = {k: True for k in self.completions}
        if key in completions:
            del completions[key]
        else:
            completions[key] = True
        return {"completions": completions}


Schedule = Union[OneOffSchedule, WeeklySchedule]


# =============================================================================
# STORED ENTITIES
# =============================================================================

class DocumentModel(BaseModel):
    """Base for entities stored in a business document (camelCase keys)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_document(self, include_nulls: bool = False) -> dict[str, Any]:
        """
        Serialize to the persisted document format.

        With include_nulls=True, unset optional fields are written as null,
        which tells the remote store to remove them.
        """
        return self.model_dump(
            by_alias=True,
            mode="json",
            exclude_none=not include_nulls,
        )


class Label(DocumentModel):
    """A tag a business attaches to its jobs."""

    id: str = Field(default_factory=new_id)
    title: str = Field(..., min_length=1, max_length=100)
    color: str = Field(
        default="gray",
        max_length=50,
        description="Style metadata used by the presentation layer"
    )


class OtherIncome(DocumentModel):
    """Income not tied to a job. Always realized."""

    id: str = Field(default_factory=new_id)
    title: str = Field(..., max_length=200)
    date: date
    amount: Amount = ZERO


class OtherExpense(DocumentModel):
    """Expense not tied to a job. Always realized."""

    id: str = Field(default_factory=new_id)
    title: str = Field(..., max_length=200)
    date: date
    amount: Amount = ZERO


class Job(DocumentModel):
    """
    A job template: the stored unit of work.

    For a one-off job `completed` holds the completion state.
    For a recurring job `completions` maps occurrence dates (YYYY-MM-DD)
    to true and `exceptions` lists suppressed occurrence dates.
    """

    id: str = Field(default_factory=new_id)
    title: str = Field(..., max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    notes: Optional[str] = Field(default=None, max_length=2000)
    category: JobCategory = JobCategory.WORK

    # Anchor date; fixes the weekday of a recurring job
    date: date
    deadline: Optional[datetime] = None

    gross_income: Amount = ZERO
    expenses: Amount = ZERO

    is_recurring: bool = False
    completed: bool = False
    completions: dict[str, bool] = Field(default_factory=dict)
    exceptions: list[str] = Field(default_factory=list)

    remind_for_deadline: bool = False
    label_id: Optional[str] = None
    google_calendar_event_id: Optional[str] = None

    @field_validator('category', mode='before')
    @classmethod
    def default_category(cls, v: Any) -> Any:
        return v or JobCategory.WORK

    @field_validator('completed', 'is_recurring', 'remind_for_deadline', mode='before')
    @classmethod
    def default_false(cls, v: Any) -> Any:
        return False if v is None else v

    @field_validator('deadline', mode='before')
    @classmethod
    def parse_deadline(cls, v: Any, info: ValidationInfo) -> Any:
        """
        Parse a stored deadline into a naive local datetime.

        A deadline stored as time only ("09:00") is placed on the job date.
        An unparsable deadline is dropped rather than failing the job.
        """
        if isinstance(v, datetime):
            parsed = v
        elif isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            try:
                if _TIME_ONLY.match(v):
                    anchor = info.data.get("date")
                    if anchor is None:
                        return None
                    parsed = datetime.combine(anchor, time.fromisoformat(v.lstrip("T")))
                else:
                    parsed = datetime.fromisoformat(v)
            except ValueError:
                return None
        else:
            return v
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone().replace(tzinfo=None)
        return parsed

    @field_validator('completions', mode='before')
    @classmethod
    def keep_true_completions(cls, v: Any) -> Any:
        """Only true keys mark an occurrence complete."""
        if not v:
            return {}
        if isinstance(v, dict):
            return {str(k): True for k, done in v.items() if done}
        return v

    @field_validator('exceptions', mode='before')
    @classmethod
    def exceptions_as_list(cls, v: Any) -> Any:
        # The remote store may hand arrays back as index-keyed objects
        if not v:
            return []
        if isinstance(v, dict):
            return [item for item in v.values() if item]
        return v

    @model_validator(mode='after')
    def zero_money_for_tasks(self) -> 'Job':
        """Tasks carry no money."""
        if self.category == JobCategory.TASK:
            self.gross_income = ZERO
            self.expenses = ZERO
        return self

    @property
    def schedule(self) -> Schedule:
        if self.is_recurring:
            return WeeklySchedule(
                anchor=self.date,
                completions=frozenset(self.completions),
                exceptions=frozenset(self.exceptions),
            )
        return OneOffSchedule(date=self.date, completed=self.completed)

    def deadline_on(self, day: date) -> Optional[datetime]:
        """Deadline of the occurrence on `day`."""
        return self.schedule.effective_deadline(self.deadline, day)


class Business(DocumentModel):
    """
    A business and everything it owns.

    Deleting a business deletes its jobs, incomes, expenses and labels.
    Jobs reference labels weakly through `label_id`.
    """

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    jobs: list[Job] = Field(default_factory=list)
    other_incomes: list[OtherIncome] = Field(default_factory=list)
    other_expenses: list[OtherExpense] = Field(default_factory=list)
    labels: list[Label] = Field(default_factory=list)

    def get_job(self, job_id: str) -> Optional[Job]:
        return next((job for job in self.jobs if job.id == job_id), None)

    def get_label(self, label_id: str) -> Optional[Label]:
        return next((label for label in self.labels if label.id == label_id), None)

    def to_document(self, include_nulls: bool = False) -> dict[str, Any]:
        """
        Serialize to the stored tree: children keyed by their ids.
        """
        return {
            "name": self.name,
            "jobs": {job.id: job.to_document(include_nulls) for job in self.jobs},
            "otherIncomes": {
                income.id: income.to_document(include_nulls)
                for income in self.other_incomes
            },
            "otherExpenses": {
                expense.id: expense.to_document(include_nulls)
                for expense in self.other_expenses
            },
            "labels": {
                label.id: label.to_document(include_nulls) for label in self.labels
            },
        }


# =============================================================================
# DERIVED MODELS
# =============================================================================

class Occurrence(BaseModel):
    """
    A job template projected onto one concrete date.

    Never stored; recomputed from the job whenever it is needed.
    """

    model_config = ConfigDict(frozen=True)

    job: Job
    occurrence_date: date
    is_complete: bool
    occurrence_id: str
    effective_deadline: Optional[datetime] = None

    @property
    def title(self) -> str:
        return self.job.title

    @classmethod
    def of(cls, job: Job, day: date, schedule: Optional[Schedule] = None) -> 'Occurrence':
        schedule = schedule or job.schedule
        return cls(
            job=job,
            occurrence_date=day,
            is_complete=schedule.is_complete_on(day),
            occurrence_id=schedule.occurrence_id(job.id, day),
            effective_deadline=schedule.effective_deadline(job.deadline, day),
        )
