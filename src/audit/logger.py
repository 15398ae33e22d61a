"""
Audit Logger

DESIGN DECISION: Every mutation of a business is logged.
This provides:
1. Traceability of what changed, and when
2. Debugging capability when a remote write or collaborator fails
3. A history the user can review

The audit logger:
- Is async to fit the store's async flow
- Gracefully handles failures (never crashes the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder, AuditEventType, AuditSeverity
from src.services.storage import AuditStorageInterface


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_save_failed(
        self,
        business_id: Optional[str],
        entity_type: str,
        entity_id: Optional[str],
        error_message: str,
    ) -> None:
        """Log a failed write to the storage backend."""
        await self.log(AuditEventBuilder.save_failed(
            business_id=business_id,
            entity_type=entity_type,
            entity_id=entity_id,
            error_message=error_message,
        ))

    async def log_entry_changed(
        self,
        event_type: AuditEventType,
        business_id: str,
        collection: str,
        entry_id: str,
        title: str,
    ) -> None:
        """Log an add/update/delete of an income, expense or label."""
        await self.log(AuditEventBuilder.entry_changed(
            event_type=event_type,
            business_id=business_id,
            collection=collection,
            entry_id=entry_id,
            title=title,
        ))

    async def log_calendar_sync_failed(
        self,
        business_id: Optional[str],
        job_id: Optional[str],
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.calendar_sync_failed(
            business_id=business_id,
            job_id=job_id,
            error_message=error_message,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a multi-step user action (e.g. detach-and-edit).
    Pass it through all subsequent operations.
    """
    return uuid4()
