"""Deadline reminders: scanning and dispatch."""

from src.reminders.scanner import (
    days_until,
    find_due_reminders,
    reminder_id,
    scan_businesses,
)
from src.reminders.service import (
    LogNotificationDisplay,
    NotificationDisplay,
    NotifiedMarkerStore,
    ReminderService,
)

__all__ = [
    "days_until",
    "find_due_reminders",
    "reminder_id",
    "scan_businesses",
    "LogNotificationDisplay",
    "NotificationDisplay",
    "NotifiedMarkerStore",
    "ReminderService",
]
