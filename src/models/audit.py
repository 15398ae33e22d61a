"""
Audit Models for Business Manager

Every mutation of a business and every outbound side effect
(calendar sync, reminder, e-mail) is recorded as an audit event.
This provides:
1. Traceability of who changed what, and when
2. Debugging information when a remote write or collaborator fails
3. A history the user can review

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Businesses
    BUSINESS_CREATED = "business_created"
    BUSINESS_RENAMED = "business_renamed"
    BUSINESS_DELETED = "business_deleted"

    # Jobs
    JOB_ADDED = "job_added"
    JOB_UPDATED = "job_updated"
    JOB_DELETED = "job_deleted"
    JOB_STATUS_TOGGLED = "job_status_toggled"
    OCCURRENCE_DETACHED = "occurrence_detached"

    # Other incomes / expenses / labels
    ENTRY_ADDED = "entry_added"
    ENTRY_UPDATED = "entry_updated"
    ENTRY_DELETED = "entry_deleted"
    LABEL_DELETED = "label_deleted"

    # Persistence
    SAVE_FAILED = "save_failed"

    # Collaborators
    CALENDAR_SYNCED = "calendar_synced"
    CALENDAR_SYNC_FAILED = "calendar_sync_failed"
    SESSION_EXPIRED = "session_expired"
    REMINDER_SENT = "reminder_sent"
    EMAIL_FAILED = "email_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    business_id: Optional[str] = Field(
        default=None,
        description="Business the event belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'job', 'label', 'otherIncomes')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one detach-and-edit)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "business_id": self.business_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_json_line(self) -> str:
        """Serialize as one line of the append-only audit file."""
        return json.dumps(self.model_dump(mode="json"), ensure_ascii=False)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.job_added(business_id, job_id, title)
        event = AuditEventBuilder.save_failed(business_id, "job", job_id, str(e))
    """

    @staticmethod
    def business_created(business_id: str, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUSINESS_CREATED,
            business_id=business_id,
            entity_type="business",
            entity_id=business_id,
            description=f"Business created: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def business_renamed(business_id: str, old_name: str, new_name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUSINESS_RENAMED,
            business_id=business_id,
            entity_type="business",
            entity_id=business_id,
            description=f"Business renamed: {old_name} -> {new_name}",
            details={"old_name": old_name, "new_name": new_name},
            is_user_action=True,
        )

    @staticmethod
    def business_deleted(business_id: str, name: str, job_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUSINESS_DELETED,
            severity=AuditSeverity.WARNING,
            business_id=business_id,
            entity_type="business",
            entity_id=business_id,
            description=f"Business deleted: {name}",
            details={"name": name, "job_count": job_count},
            is_user_action=True,
        )

    @staticmethod
    def job_added(business_id: str, job_id: str, title: str, is_recurring: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.JOB_ADDED,
            business_id=business_id,
            entity_type="job",
            entity_id=job_id,
            description=f"Job added: {title}",
            details={"title": title, "is_recurring": is_recurring},
            is_user_action=True,
        )

    @staticmethod
    def job_updated(business_id: str, job_id: str, title: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.JOB_UPDATED,
            business_id=business_id,
            entity_type="job",
            entity_id=job_id,
            description=f"Job updated: {title}",
            details={"title": title},
            is_user_action=True,
        )

    @staticmethod
    def job_deleted(business_id: str, job_id: str, title: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.JOB_DELETED,
            business_id=business_id,
            entity_type="job",
            entity_id=job_id,
            description=f"Job deleted: {title}",
            details={"title": title},
            is_user_action=True,
        )

    @staticmethod
    def job_status_toggled(
        business_id: str,
        job_id: str,
        occurrence_date: str,
        completed: bool,
    ) -> AuditEvent:
        state = "complete" if completed else "incomplete"
        return AuditEvent(
            event_type=AuditEventType.JOB_STATUS_TOGGLED,
            business_id=business_id,
            entity_type="job",
            entity_id=job_id,
            description=f"Occurrence {occurrence_date} marked {state}",
            details={"occurrence_date": occurrence_date, "completed": completed},
            is_user_action=True,
        )

    @staticmethod
    def occurrence_detached(
        business_id: str,
        job_id: str,
        occurrence_date: str,
        new_job_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCCURRENCE_DETACHED,
            business_id=business_id,
            entity_type="job",
            entity_id=job_id,
            correlation_id=correlation_id,
            description=f"Occurrence {occurrence_date} detached into its own job",
            details={"occurrence_date": occurrence_date, "new_job_id": new_job_id},
            is_user_action=True,
        )

    @staticmethod
    def entry_changed(
        event_type: AuditEventType,
        business_id: str,
        collection: str,
        entry_id: str,
        title: str,
    ) -> AuditEvent:
        verb = {
            AuditEventType.ENTRY_ADDED: "added",
            AuditEventType.ENTRY_UPDATED: "updated",
            AuditEventType.ENTRY_DELETED: "deleted",
        }.get(event_type, "changed")
        return AuditEvent(
            event_type=event_type,
            business_id=business_id,
            entity_type=collection,
            entity_id=entry_id,
            description=f"{collection} entry {verb}: {title}",
            details={"title": title},
            is_user_action=True,
        )

    @staticmethod
    def label_deleted(business_id: str, label_id: str, cleared_jobs: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LABEL_DELETED,
            business_id=business_id,
            entity_type="label",
            entity_id=label_id,
            description=f"Label deleted, cleared from {len(cleared_jobs)} jobs",
            details={"cleared_jobs": cleared_jobs},
            is_user_action=True,
        )

    @staticmethod
    def save_failed(
        business_id: Optional[str],
        entity_type: str,
        entity_id: Optional[str],
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            business_id=business_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"Failed to persist {entity_type}",
            error_message=error_message,
        )

    @staticmethod
    def calendar_synced(business_id: str, job_id: str, event_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CALENDAR_SYNCED,
            business_id=business_id,
            entity_type="job",
            entity_id=job_id,
            description="Job synced to calendar",
            details={"calendar_event_id": event_id},
        )

    @staticmethod
    def calendar_sync_failed(
        business_id: Optional[str],
        job_id: Optional[str],
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CALENDAR_SYNC_FAILED,
            severity=AuditSeverity.WARNING,
            business_id=business_id,
            entity_type="job",
            entity_id=job_id,
            description="Calendar sync failed; job kept without calendar event",
            error_message=error_message,
        )

    @staticmethod
    def session_expired(service: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_EXPIRED,
            severity=AuditSeverity.WARNING,
            description=f"{service} session expired; user must sign in again",
            details={"service": service},
        )

    @staticmethod
    def reminder_sent(
        reminder_id: str,
        business_id: Optional[str],
        job_id: str,
        days_until_deadline: int,
        emailed: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_SENT,
            business_id=business_id,
            entity_type="job",
            entity_id=job_id,
            description=f"Deadline reminder sent ({days_until_deadline} days left)",
            details={
                "reminder_id": reminder_id,
                "days_until_deadline": days_until_deadline,
                "emailed": emailed,
            },
        )

    @staticmethod
    def email_failed(to: str, subject: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EMAIL_FAILED,
            severity=AuditSeverity.ERROR,
            description=f"E-mail could not be sent: {subject}",
            details={"to": to},
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
