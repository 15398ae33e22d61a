"""Services package."""

from src.services.calendar import (
    CalendarError,
    CalendarNotConnectedError,
    GoogleCalendarService,
    SessionExpiredError,
)
from src.services.email import ResendEmailService
from src.services.storage import (
    AuditStorageInterface,
    BusinessStorageInterface,
    Collection,
    ConnectionError,
    FirebaseBusinessStorage,
    LocalAuditStorage,
    LocalBusinessStorage,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
)

__all__ = [
    # Calendar services
    "CalendarError",
    "CalendarNotConnectedError",
    "GoogleCalendarService",
    "SessionExpiredError",
    # E-mail services
    "ResendEmailService",
    # Storage services
    "AuditStorageInterface",
    "BusinessStorageInterface",
    "Collection",
    "ConnectionError",
    "FirebaseBusinessStorage",
    "LocalAuditStorage",
    "LocalBusinessStorage",
    "NotFoundError",
    "PermissionDeniedError",
    "StorageError",
]
