"""
Deadline Scanner

Finds job occurrences whose deadline is coming up and that the user
has not been reminded about yet.

The scan is pure: it reads jobs, "now" and the set of already-notified
reminder ids, and returns ReminderEvents. Showing notifications, sending
e-mail and recording the markers is the caller's job
(see src.reminders.service).
"""

import math
from datetime import date, datetime, timedelta
from typing import AbstractSet, Iterable, Optional

from src.models.business import Business, Job
from src.models.reminder import ReminderEvent


ONE_DAY_SECONDS = 24 * 60 * 60

DEFAULT_LOOKAHEAD_DAYS = 3
DEFAULT_MAX_DAYS = 3


def reminder_id(job_id: str, occurrence_date: date) -> str:
    """Marker id for one (job, occurrence date) pair."""
    return f"notified-{job_id}-{occurrence_date.isoformat()}"


def days_until(deadline: datetime, now: datetime) -> int:
    """Whole days left, rounded up."""
    return math.ceil((deadline - now).total_seconds() / ONE_DAY_SECONDS)


def find_due_reminders(
    jobs: Iterable[Job],
    business_name: str,
    now: datetime,
    lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
    already_notified: AbstractSet[str] = frozenset(),
    business_id: Optional[str] = None,
    max_days: int = DEFAULT_MAX_DAYS,
) -> list[ReminderEvent]:
    """
    Reminders due for one business.

    Only jobs with a deadline and reminders switched on are considered.
    An occurrence is reminded when it is not complete, its deadline is
    strictly after `now`, it has no marker in `already_notified`, and
    the deadline is 1..max_days whole days away (rounded up).
    """
    events = []
    today = now.date()
    window_end = today + timedelta(days=lookahead_days)

    for job in jobs:
        if job.deadline is None or not job.remind_for_deadline:
            continue

        schedule = job.schedule
        for day in schedule.reminder_dates(today, window_end):
            if schedule.is_complete_on(day):
                continue

            deadline = schedule.effective_deadline(job.deadline, day)
            if deadline is None or deadline <= now:
                continue

            marker = reminder_id(job.id, day)
            if marker in already_notified:
                continue

            remaining = days_until(deadline, now)
            if not 0 < remaining <= max_days:
                continue

            events.append(ReminderEvent(
                reminder_id=marker,
                business_id=business_id,
                business_name=business_name,
                job_id=job.id,
                job_title=job.title,
                occurrence_date=day,
                deadline=deadline,
                days_until_deadline=remaining,
            ))

    return events


def scan_businesses(
    businesses: Iterable[Business],
    now: datetime,
    lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
    already_notified: AbstractSet[str] = frozenset(),
    max_days: int = DEFAULT_MAX_DAYS,
) -> list[ReminderEvent]:
    """Reminders due across every business."""
    events = []
    for business in businesses:
        events.extend(find_due_reminders(
            business.jobs,
            business.name,
            now,
            lookahead_days=lookahead_days,
            already_notified=already_notified,
            business_id=business.id,
            max_days=max_days,
        ))
    return events
