"""
Main Orchestrator for Business Manager

This module ties together all the components and defines the
read-side flows the presentation layer calls:
1. Schedule (business -> occurrences on a date or in a range)
2. Report (business + filter -> period rows and totals)

and the factory that wires a store, storage backend, calendar,
e-mail and reminder service for one session.

DESIGN DECISION: The orchestrator enforces the boundaries:
- The store is the only writer
- Expander, aggregator and scanner stay pure and are re-run on demand
- Guest sessions never touch remote services
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError

from src.audit import AuditLogger
from src.config import get_settings
from src.config.logging import configure_logging
from src.models.business import Occurrence
from src.models.report import ALL_YEARS, ReportPeriod, ReportRow
from src.reminders import LogNotificationDisplay, NotificationDisplay, NotifiedMarkerStore, ReminderService
from src.reports import available_years, build_report, report_totals
from src.scheduling import occurrences_in_range, occurrences_on_date, template_list
from src.services.calendar import GoogleCalendarService
from src.services.email import ResendEmailService
from src.services.storage import (
    BusinessStorageInterface,
    FirebaseBusinessStorage,
    LocalAuditStorage,
    LocalBusinessStorage,
)
from src.store import BusinessStore, SessionContext


logger = structlog.get_logger(__name__)


class ScheduleFlow:
    """
    Occurrences of the store's jobs, for the calendar and job list views.

    Unknown businesses give empty results.
    """

    def __init__(self, store: BusinessStore):
        self._store = store

    def _jobs(self, business_id: str) -> list:
        business = self._store.get_business(business_id)
        return business.jobs if business else []

    def on_date(self, business_id: str, day: Union[date, str]) -> list[Occurrence]:
        return occurrences_on_date(self._jobs(business_id), day)

    def in_range(
        self,
        business_id: str,
        start: Union[date, str],
        end: Union[date, str],
    ) -> list[Occurrence]:
        return occurrences_in_range(self._jobs(business_id), start, end)

    def all_jobs(self, business_id: str) -> list[Occurrence]:
        return template_list(self._jobs(business_id))


class ReportFlow:
    """Income report for one business."""

    def __init__(self, store: BusinessStore):
        self._store = store

    def report(
        self,
        business_id: str,
        period: Union[ReportPeriod, str] = ReportPeriod.MONTHLY,
        start_month: int = 1,
        end_month: int = 12,
        year: Union[str, int, None] = ALL_YEARS,
    ) -> tuple[list[ReportRow], ReportRow]:
        """
        Returns:
            (rows sorted by bucket, grand total row)
        """
        business = self._store.get_business(business_id)
        if business is None:
            logger.warning("business_not_found", business_id=business_id, action="report")
            rows: list[ReportRow] = []
        else:
            rows = build_report(
                business.jobs,
                business.other_incomes,
                business.other_expenses,
                period=period,
                start_month=start_month,
                end_month=end_month,
                year=year,
            )
        return rows, report_totals(rows)

    def years(self, business_id: str) -> list[str]:
        business = self._store.get_business(business_id)
        if business is None:
            return []
        return available_years(business.jobs, business.other_incomes, business.other_expenses)


@dataclass
class AppComponents:
    """Everything one session needs."""
    context: SessionContext
    store: BusinessStore
    storage: BusinessStorageInterface
    schedule: ScheduleFlow
    reports: ReportFlow
    reminders: ReminderService
    audit_logger: AuditLogger
    calendar: Optional[GoogleCalendarService] = None
    email: Optional[ResendEmailService] = None

    async def run_reminders_once(self, now: Optional[datetime] = None) -> list:
        return await self.reminders.run_once(self.store.businesses, now)

    async def close(self) -> None:
        """Stop following the backend and close HTTP clients."""
        self.store.stop_sync()
        for client in (self.storage, self.calendar, self.email):
            close = getattr(client, "close", None)
            if close is not None:
                await close()


def create_storage(context: SessionContext) -> BusinessStorageInterface:
    """
    Storage backend for the session.

    Signed-in users get the remote database; guests, and signed-in users
    when the database is not configured, get the local file.
    """
    app_settings = get_settings().app
    if not context.is_guest and context.user_id:
        try:
            return FirebaseBusinessStorage(context.user_id, id_token=context.id_token)
        except ValidationError as e:
            # Remote database not configured - continue with local storage
            logger.warning("remote_storage_not_configured", error=str(e))
            context.is_guest = True
    return LocalBusinessStorage(app_settings.guest_data_path)


def create_app_components(
    context: SessionContext,
    calendar_token: Optional[str] = None,
    notifier: Optional[NotificationDisplay] = None,
    on_session_expired: Optional[Any] = None,
    storage: Optional[BusinessStorageInterface] = None,
    setup_logging: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        context: Who is using the app (guest or signed-in user)
        calendar_token: OAuth access token for calendar sync, if granted
        notifier: Where reminder notifications are shown (logs by default)
        on_session_expired: Called when the calendar session expires
        storage: Override the storage backend (tests)
        setup_logging: Configure structlog from settings

    Returns:
        AppComponents
    """
    if setup_logging:
        configure_logging()

    app_settings = get_settings().app
    storage = storage or create_storage(context)
    audit_logger = AuditLogger(LocalAuditStorage(app_settings.audit_log_path))

    calendar = None
    if not context.is_guest:
        try:
            calendar = GoogleCalendarService(access_token=calendar_token)
        except ValidationError as e:
            logger.warning("calendar_not_configured", error=str(e))

    email = None
    try:
        email = ResendEmailService()
    except ValidationError as e:
        logger.warning("email_not_configured", error=str(e))

    store = BusinessStore(
        context,
        storage,
        calendar=calendar,
        audit_logger=audit_logger,
        on_session_expired=on_session_expired,
    )

    reminders = ReminderService(
        NotifiedMarkerStore(app_settings.notified_markers_path),
        notifier=notifier or LogNotificationDisplay(),
        email_service=email,
        email_to=app_settings.reminder_email,
        audit_logger=audit_logger,
        lookahead_days=app_settings.reminder_lookahead_days,
        max_days=app_settings.reminder_max_days,
    )

    logger.info("app_components_created", is_guest=context.is_guest)

    return AppComponents(
        context=context,
        store=store,
        storage=storage,
        schedule=ScheduleFlow(store),
        reports=ReportFlow(store),
        reminders=reminders,
        audit_logger=audit_logger,
        calendar=calendar,
        email=email,
    )
