"""
Recurrence Expander

Projects job templates onto concrete calendar dates.

All functions here are pure: same jobs and dates in, same occurrences out.
They never raise for a malformed date; an unparsable date simply has no
occurrences. Recurrence rules live on the job's schedule
(`OneOffSchedule` / `WeeklySchedule`), so nothing below branches on
`is_recurring`.
"""

from datetime import date, datetime
from typing import Any, Iterable, Optional, Union

from src.models.business import Job, Occurrence, WeeklySchedule, new_id, parse_day


DateLike = Union[date, datetime, str]


def occurrences_on_date(jobs: Iterable[Job], target_date: DateLike) -> list[Occurrence]:
    """
    Occurrences of all jobs that fall on `target_date`.

    Sorted by title (case-sensitive), ties kept in input order.
    """
    day = parse_day(target_date)
    if day is None:
        return []

    found = []
    for job in jobs:
        schedule = job.schedule
        if schedule.occurs_on(day):
            found.append(Occurrence.of(job, day, schedule))

    return sorted(found, key=lambda occurrence: occurrence.job.title)


def occurrences_in_range(
    jobs: Iterable[Job],
    start: DateLike,
    end: DateLike,
) -> list[Occurrence]:
    """
    Occurrences of all jobs between `start` and `end`, both inclusive.

    Ordered by date, then title. Empty when the range is inverted
    or either bound is unparsable.
    """
    first = parse_day(start)
    last = parse_day(end)
    if first is None or last is None or first > last:
        return []

    found = []
    for job in jobs:
        schedule = job.schedule
        for day in schedule.occurrence_dates(first, last):
            found.append(Occurrence.of(job, day, schedule))

    return sorted(found, key=lambda o: (o.occurrence_date, o.job.title))


def template_list(jobs: Iterable[Job]) -> list[Occurrence]:
    """
    One pseudo-occurrence per template, for the date-agnostic job list.

    Uses the template's own id, anchor date and `completed` flag.
    Newest anchor date first.
    """
    entries = [
        Occurrence(
            job=job,
            occurrence_date=job.date,
            is_complete=job.completed,
            occurrence_id=job.id,
            effective_deadline=job.deadline,
        )
        for job in jobs
    ]
    return sorted(entries, key=lambda o: o.occurrence_date, reverse=True)


def toggle_completion(job: Job, occurrence_date: DateLike) -> Job:
    """
    Flip the completion state of one occurrence.

    Returns an updated copy; toggling twice gives back the original state.
    An unparsable date leaves the job unchanged.
    """
    day = parse_day(occurrence_date)
    if day is None:
        return job
    return job.model_copy(update=job.schedule.toggled(day))


def is_detachable(job: Job, occurrence_date: DateLike) -> bool:
    """True when the date is a live occurrence of a weekly job."""
    day = parse_day(occurrence_date)
    schedule = job.schedule
    return day is not None and isinstance(schedule, WeeklySchedule) and schedule.occurs_on(day)


def detach_occurrence(
    job: Job,
    occurrence_date: DateLike,
    new_job_data: dict[str, Any],
) -> tuple[Job, Optional[Job]]:
    """
    Split one occurrence of a recurring job into a standalone job.

    Returns (original with the date added to its exceptions, new job).
    The new job is one-off, not completed, and gets a fresh id; its
    date defaults to the detached occurrence date.

    Both halves must be persisted together. When the date is unparsable,
    the job is one-off, or the date is not an occurrence of the job, the
    original is returned unchanged and no new job is made.
    """
    day = parse_day(occurrence_date)
    if day is None:
        return job, None
    if not is_detachable(job, day):
        return job, None

    key = day.isoformat()
    exceptions = list(job.exceptions)
    if key not in exceptions:
        exceptions.append(key)
    updated = job.model_copy(update={"exceptions": exceptions})

    data = {"date": day, **new_job_data}
    for field in ("id", "completed", "completions", "exceptions", "google_calendar_event_id",
                  "googleCalendarEventId"):
        data.pop(field, None)
    data["is_recurring"] = False
    data.pop("isRecurring", None)

    standalone = Job.model_validate({
        **data,
        "id": new_id(),
        "completed": False,
    })
    return updated, standalone
