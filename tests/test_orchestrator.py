"""Tests for component wiring and the read-side flows."""

from datetime import datetime

import pytest

from src.orchestrator import create_app_components
from src.services.storage import FirebaseBusinessStorage, LocalBusinessStorage
from src.store import SessionContext


class TestCreateAppComponents:
    """Tests for the session factory."""

    def test_guest_gets_local_storage_and_no_calendar(self):
        components = create_app_components(SessionContext(is_guest=True), setup_logging=False)
        assert isinstance(components.storage, LocalBusinessStorage)
        assert components.calendar is None

    def test_signed_in_user_gets_remote_storage(self, monkeypatch):
        monkeypatch.setenv("FIREBASE_DATABASE_URL", "https://db.example.com")
        components = create_app_components(
            SessionContext(user_id="u1", is_guest=False, id_token="t"),
            calendar_token="oauth",
            setup_logging=False,
        )
        assert isinstance(components.storage, FirebaseBusinessStorage)
        assert components.calendar.is_connected

    def test_unconfigured_remote_falls_back_to_guest(self, monkeypatch):
        monkeypatch.delenv("FIREBASE_DATABASE_URL", raising=False)
        context = SessionContext(user_id="u1", is_guest=False)
        components = create_app_components(context, setup_logging=False)
        assert isinstance(components.storage, LocalBusinessStorage)
        assert context.is_guest is True


class TestFlows:
    """Tests for schedule, report and reminder flows over a guest store."""

    @pytest.mark.asyncio
    async def test_schedule_report_and_reminders(self):
        components = create_app_components(SessionContext(is_guest=True), setup_logging=False)
        store = components.store
        business = await store.add_business("Bakery")
        job = await store.add_job(business.id, {
            "title": "Deliver cake",
            "date": "2024-01-10",
            "deadline": "2024-01-12T09:00",
            "grossIncome": 150,
            "remindForDeadline": True,
        })

        assert [o.job.id for o in components.schedule.on_date(business.id, "2024-01-10")] == [job.id]
        assert components.schedule.on_date("missing", "2024-01-10") == []

        rows, total = components.reports.report(business.id)
        assert rows == []

        reminders = await components.run_reminders_once(datetime(2024, 1, 10, 10, 0))
        assert [r.job_id for r in reminders] == [job.id]

        await store.toggle_job_status(business.id, job.id, "2024-01-10")
        rows, total = components.reports.report(business.id, period="monthly")
        assert [row.key for row in rows] == ["2024-01"]
        assert float(total.gross) == 150.0
        assert components.reports.years(business.id) == ["2024"]

        await components.close()
