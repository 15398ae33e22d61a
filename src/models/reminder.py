"""
Reminder Models

A ReminderEvent is produced by the deadline scanner and carries
everything a notification or e-mail needs to render its message.
"""

from datetime import date, datetime
from html import escape
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ReminderEvent(BaseModel):
    """An upcoming deadline that the user should be reminded about."""

    model_config = ConfigDict(frozen=True)

    reminder_id: str = Field(
        ...,
        description="Marker id derived from (job id, occurrence date)"
    )
    business_id: Optional[str] = None
    business_name: str
    job_id: str
    job_title: str
    occurrence_date: date
    deadline: datetime
    days_until_deadline: int = Field(..., ge=1)

    @property
    def title(self) -> str:
        return "Deadline approaching"

    @property
    def body(self) -> str:
        unit = "day" if self.days_until_deadline == 1 else "days"
        return (
            f'"{self.job_title}" at "{self.business_name}" is due in '
            f"{self.days_until_deadline} {unit}."
        )

    @property
    def subject(self) -> str:
        return f"Reminder: {self.job_title} is due in {self.days_until_deadline} day(s)"

    def html_body(self) -> str:
        """E-mail body for the reminder."""
        return (
            f"<p>{escape(self.body)}</p>"
            f"<p>Deadline: {self.deadline.strftime('%d %b %Y %H:%M')}</p>"
        )
