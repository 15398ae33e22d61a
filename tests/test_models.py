"""
Tests for Business Manager models

Test strategy:
1. Unit tests for individual components (models, schedules)
2. Integration tests for the store and services (with fake backends)
3. No real API calls in tests (httpx MockTransport)
"""

import json
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from src.models.business import (
    Business,
    Job,
    JobCategory,
    Label,
    OneOffSchedule,
    OtherIncome,
    WeeklySchedule,
    coerce_amount,
    parse_day,
)
from src.models.reminder import ReminderEvent
from src.models.report import ReportFilter, ReportPeriod, ReportRow


class TestAmountCoercion:
    """Tests for lenient amount parsing."""

    @pytest.mark.parametrize("raw", [None, "", "abc", float("nan"), float("inf"), "Infinity"])
    def test_unparsable_amounts_become_zero(self, raw):
        """Test that junk amounts are coerced to zero."""
        assert coerce_amount(raw) == Decimal("0")

    def test_string_amount_with_separators(self):
        """Test that thousands separators are ignored."""
        assert coerce_amount("1,250.50") == Decimal("1250.50")

    def test_negative_amount_rejected(self):
        """Test that negative amounts still fail validation."""
        with pytest.raises(ValueError):
            OtherIncome(title="Refund", date=date(2024, 1, 1), amount=-5)

    def test_job_with_garbage_amount_loads(self):
        """Test that a malformed amount does not fail the whole job."""
        job = Job(title="Odd", date=date(2024, 1, 1), gross_income="n/a")
        assert job.gross_income == Decimal("0")


class TestParseDay:
    """Tests for date parsing."""

    def test_parses_iso_string(self):
        assert parse_day("2024-01-08") == date(2024, 1, 8)

    def test_datetime_is_truncated(self):
        assert parse_day(datetime(2024, 1, 8, 23, 59)) == date(2024, 1, 8)

    @pytest.mark.parametrize("raw", ["", "not-a-date", "2024-13-01", None, 42])
    def test_invalid_input_returns_none(self, raw):
        assert parse_day(raw) is None


class TestJobModel:
    """Tests for the Job model."""

    def test_defaults(self):
        """Test a minimal job."""
        job = Job(title="Quote", date=date(2024, 3, 1))
        assert job.category == JobCategory.WORK
        assert job.completed is False
        assert job.is_recurring is False
        assert job.completions == {}
        assert job.exceptions == []
        assert job.id

    def test_ids_are_unique(self):
        """Test that generated ids never collide in rapid succession."""
        ids = {Job(title="x", date=date(2024, 1, 1)).id for _ in range(200)}
        assert len(ids) == 200

    def test_task_has_no_money(self):
        """Test that tasks carry no income or expenses."""
        job = Job(
            title="Call supplier",
            date=date(2024, 3, 1),
            category="task",
            gross_income=500,
            expenses=100,
        )
        assert job.gross_income == Decimal("0")
        assert job.expenses == Decimal("0")

    def test_accepts_camel_case_document(self):
        """Test loading the stored document format."""
        job = Job.model_validate({
            "id": "j1",
            "title": "Deliver",
            "date": "2024-01-01",
            "grossIncome": "100",
            "isRecurring": True,
            "completions": {"2024-01-08": True, "2024-01-15": False},
            "labelId": "l1",
        })
        assert job.gross_income == Decimal("100")
        assert job.is_recurring is True
        assert job.completions == {"2024-01-08": True}
        assert job.label_id == "l1"

    def test_time_only_deadline_uses_job_date(self):
        """Test that a stored time-only deadline lands on the job date."""
        job = Job(title="x", date=date(2024, 1, 1), deadline="09:30")
        assert job.deadline == datetime(2024, 1, 1, 9, 30)

    def test_unparsable_deadline_is_dropped(self):
        job = Job(title="x", date=date(2024, 1, 1), deadline="soon")
        assert job.deadline is None

    def test_exceptions_from_index_keyed_object(self):
        """Test that an array returned as an index-keyed object is read back."""
        job = Job.model_validate({
            "title": "x",
            "date": "2024-01-01",
            "exceptions": {"0": "2024-01-08", "1": "2024-01-22"},
        })
        assert job.exceptions == ["2024-01-08", "2024-01-22"]

    def test_to_document_uses_camel_case(self):
        """Test serialization back to the stored format."""
        job = Job(id="j1", title="x", date=date(2024, 1, 1), gross_income=10, label_id="l1")
        document = job.to_document()
        assert document["grossIncome"] == 10.0
        assert document["labelId"] == "l1"
        assert document["date"] == "2024-01-01"
        assert "googleCalendarEventId" not in document

    def test_to_document_with_nulls_marks_removals(self):
        job = Job(id="j1", title="x", date=date(2024, 1, 1))
        assert job.to_document(include_nulls=True)["labelId"] is None


class TestSchedules:
    """Tests for the one-off / weekly schedule variants."""

    def test_one_off_schedule(self, job_a):
        schedule = job_a.schedule
        assert isinstance(schedule, OneOffSchedule)
        assert schedule.occurs_on(date(2024, 1, 10))
        assert not schedule.occurs_on(date(2024, 1, 17))
        assert schedule.occurrence_id(job_a.id, date(2024, 1, 10)) == job_a.id

    def test_weekly_schedule(self, job_b):
        schedule = job_b.schedule
        assert isinstance(schedule, WeeklySchedule)
        assert schedule.occurs_on(date(2024, 1, 8))
        assert not schedule.occurs_on(date(2024, 1, 15))
        assert not schedule.occurs_on(date(2023, 12, 25))
        assert not schedule.occurs_on(date(2024, 1, 9))
        assert schedule.occurrence_id("job-b", date(2024, 1, 8)) == "job-b_2024-01-08"

    def test_weekly_occurrence_dates(self, job_b):
        days = job_b.schedule.occurrence_dates(date(2023, 12, 20), date(2024, 1, 31))
        assert days == [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 22), date(2024, 1, 29)]

    def test_recurring_deadline_moves_to_occurrence(self, job_b):
        """Test that only the deadline's time of day carries over."""
        assert job_b.deadline_on(date(2024, 1, 22)) == datetime(2024, 1, 22, 17, 0)

    def test_one_off_deadline_is_unchanged(self, job_a):
        assert job_a.deadline_on(date(2024, 1, 10)) == datetime(2024, 1, 12, 9, 0)


class TestBusinessModel:
    """Tests for the Business model."""

    def test_to_document_keys_children_by_id(self, job_a):
        business = Business(
            id="b1",
            name="Bakery",
            jobs=[job_a],
            labels=[Label(id="l1", title="Urgent", color="red")],
        )
        document = business.to_document()
        assert document["name"] == "Bakery"
        assert set(document["jobs"]) == {"job-a"}
        assert document["labels"]["l1"]["title"] == "Urgent"
        assert document["otherIncomes"] == {}

    def test_lookup_helpers(self, job_a):
        business = Business(name="Bakery", jobs=[job_a])
        assert business.get_job("job-a") is job_a
        assert business.get_job("missing") is None
        assert business.get_label("missing") is None


class TestReportModels:
    """Tests for report inputs and outputs."""

    def test_bucket_keys(self):
        day = date(2024, 3, 5)
        assert ReportPeriod.DAILY.bucket_key(day) == "2024-03-05"
        assert ReportPeriod.MONTHLY.bucket_key(day) == "2024-03"
        assert ReportPeriod.YEARLY.bucket_key(day) == "2024"

    def test_moving_start_past_end_moves_end(self):
        """Test that month pickers keep the range ordered."""
        report_filter = ReportFilter(start_month=2, end_month=4).with_start_month(6)
        assert (report_filter.start_month, report_filter.end_month) == (6, 6)

    def test_moving_end_before_start_moves_start(self):
        report_filter = ReportFilter(start_month=5, end_month=8).with_end_month(3)
        assert (report_filter.start_month, report_filter.end_month) == (3, 3)

    def test_year_filter_normalized(self):
        assert ReportFilter(year=2024).year == "2024"
        assert ReportFilter(year=None).year == "all"

    def test_row_net(self):
        row = ReportRow(key="2024-01", gross=Decimal("100"), expenses=Decimal("30"))
        assert row.net == Decimal("70")
        assert row.to_dict() == {"key": "2024-01", "gross": 100.0, "net": 70.0, "expenses": 30.0}


class TestReminderModel:
    """Tests for reminder rendering."""

    def test_body_mentions_job_business_and_days(self):
        event = ReminderEvent(
            reminder_id="notified-j1-2024-01-10",
            business_name="Bakery",
            job_id="j1",
            job_title="Deliver <cake>",
            occurrence_date=date(2024, 1, 10),
            deadline=datetime(2024, 1, 12, 9, 0),
            days_until_deadline=2,
        )
        assert "Deliver <cake>" in event.body
        assert "Bakery" in event.body
        assert "2 days" in event.body
        assert "&lt;cake&gt;" in event.html_body()

    def test_days_must_be_positive(self):
        with pytest.raises(ValueError):
            ReminderEvent(
                reminder_id="r",
                business_name="b",
                job_id="j",
                job_title="t",
                occurrence_date=date(2024, 1, 1),
                deadline=datetime(2024, 1, 1),
                days_until_deadline=0,
            )


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.JOB_ADDED,
            description="Job added",
        )
        assert event.event_type == AuditEventType.JOB_ADDED
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.job_added("b1", "j1", "Deliver", is_recurring=False)
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "job_added"
        assert log_dict["business_id"] == "b1"
        assert log_dict["entity_id"] == "j1"

    def test_save_failed_is_error(self):
        event = AuditEventBuilder.save_failed("b1", "job", "j1", "timeout")
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "timeout"

    def test_json_line_round_trips(self):
        event = AuditEventBuilder.label_deleted("b1", "l1", ["j1", "j2"])
        line = event.to_json_line()
        assert "\n" not in line
        assert AuditEvent.model_validate(json.loads(line)).details["cleared_jobs"] == ["j1", "j2"]
