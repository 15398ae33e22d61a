"""
Reminder Dispatch

Turns the scanner's ReminderEvents into user-visible side effects:
a notification, an optional e-mail, and a persisted marker so the same
occurrence is never reminded twice on this device.

DESIGN DECISION: A marker is written once the reminder reached the user by
at least one channel. A failed e-mail next to a shown notification still
counts. With notifications denied and no e-mail delivered, nothing is
marked and the next tick tries again.
"""

import asyncio
import inspect
import json
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional, Union

import structlog

from src.audit import AuditLogger
from src.models.audit import AuditEventBuilder
from src.models.business import Business
from src.models.reminder import ReminderEvent
from src.reminders.scanner import DEFAULT_LOOKAHEAD_DAYS, DEFAULT_MAX_DAYS, scan_businesses
from src.services.email import ResendEmailService


logger = structlog.get_logger(__name__)

BusinessesProvider = Callable[[], Union[Iterable[Business], Awaitable[Iterable[Business]]]]


class NotifiedMarkerStore:
    """
    Reminder ids that have already been shown, kept in a local JSON file.

    Markers are device-local and survive restarts. An unreadable file
    is treated as empty.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._markers: Optional[set[str]] = None

    def _load(self) -> set[str]:
        if self._markers is None:
            self._markers = set()
            if self._path.exists():
                try:
                    data = json.loads(self._path.read_text(encoding="utf-8"))
                    self._markers = {str(item) for item in data}
                except (OSError, ValueError, TypeError) as e:
                    logger.warning("reminder_markers_unreadable", path=str(self._path), error=str(e))
        return self._markers

    def contains(self, reminder_id: str) -> bool:
        return reminder_id in self._load()

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._load())

    def mark(self, reminder_id: str) -> None:
        markers = self._load()
        if reminder_id in markers:
            return
        markers.add(reminder_id)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(sorted(markers)), encoding="utf-8")
        except OSError as e:
            # Kept in memory; the occurrence stays suppressed for this run
            logger.error("reminder_marker_write_failed", reminder_id=reminder_id, error=str(e))


class NotificationDisplay(ABC):
    """Where reminder notifications are shown."""

    @abstractmethod
    async def request_permission(self) -> bool:
        """Ask the platform for permission to show notifications."""
        pass

    @abstractmethod
    async def show(
        self,
        title: str,
        body: str,
        on_click: Optional[Callable[[], None]] = None,
    ) -> None:
        """Show one notification."""
        pass


class LogNotificationDisplay(NotificationDisplay):
    """Shows notifications as log lines. Used when no desktop surface exists."""

    async def request_permission(self) -> bool:
        return True

    async def show(
        self,
        title: str,
        body: str,
        on_click: Optional[Callable[[], None]] = None,
    ) -> None:
        logger.info("notification", title=title, body=body)


class ReminderService:
    """Periodically scans businesses and dispatches deadline reminders."""

    def __init__(
        self,
        markers: NotifiedMarkerStore,
        notifier: Optional[NotificationDisplay] = None,
        email_service: Optional[ResendEmailService] = None,
        email_to: Optional[str] = None,
        audit_logger: Optional[AuditLogger] = None,
        lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
        max_days: int = DEFAULT_MAX_DAYS,
    ):
        self._markers = markers
        self._notifier = notifier or LogNotificationDisplay()
        self._email_service = email_service
        self._email_to = email_to
        self._audit = audit_logger
        self._lookahead_days = lookahead_days
        self._max_days = max_days
        self._permission: Optional[bool] = None

    async def _can_notify(self) -> bool:
        if self._permission is None:
            self._permission = await self._notifier.request_permission()
            if not self._permission:
                logger.warning("notification_permission_denied")
        return self._permission

    async def run_once(
        self,
        businesses: Iterable[Business],
        now: Optional[datetime] = None,
    ) -> list[ReminderEvent]:
        """
        Scan once and dispatch every due reminder.

        Returns the reminders that were delivered (and are now marked).
        """
        now = now or datetime.now()
        events = scan_businesses(
            businesses,
            now,
            lookahead_days=self._lookahead_days,
            already_notified=self._markers.snapshot(),
            max_days=self._max_days,
        )

        can_notify = await self._can_notify() if events else False
        delivered = []
        for event in events:
            if can_notify:
                await self._notifier.show(event.title, event.body)

            emailed = await self._send_email(event)
            if not (can_notify or emailed):
                logger.info("reminder_not_delivered", reminder_id=event.reminder_id)
                continue
            self._markers.mark(event.reminder_id)
            delivered.append(event)

            logger.info(
                "reminder_dispatched",
                reminder_id=event.reminder_id,
                days_until_deadline=event.days_until_deadline,
                emailed=emailed,
            )
            if self._audit:
                await self._audit.log(AuditEventBuilder.reminder_sent(
                    reminder_id=event.reminder_id,
                    business_id=event.business_id,
                    job_id=event.job_id,
                    days_until_deadline=event.days_until_deadline,
                    emailed=emailed,
                ))

        return delivered

    async def _send_email(self, event: ReminderEvent) -> bool:
        if not self._email_service or not self._email_to:
            return False

        sent = await self._email_service.send(self._email_to, event.subject, event.html_body())
        if not sent and self._audit:
            await self._audit.log(AuditEventBuilder.email_failed(
                to=self._email_to,
                subject=event.subject,
                error_message="Resend did not accept the message",
            ))
        return sent

    async def run_forever(
        self,
        get_businesses: BusinessesProvider,
        interval_seconds: float = 60,
    ) -> None:
        """
        Re-scan every `interval_seconds` until cancelled.

        `get_businesses` may be sync or async and is called on every tick,
        so the scan always sees the store's current state.
        """
        while True:
            try:
                businesses = get_businesses()
                if inspect.isawaitable(businesses):
                    businesses = await businesses
                await self.run_once(list(businesses))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("reminder_scan_failed", error=str(e))
            await asyncio.sleep(interval_seconds)
