"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Use the remote document database for signed-in users
2. Use a local JSON file for guest mode
3. Use in-memory fakes for testing
4. Keep the store decoupled from the backend

Both backends store the same tree, rooted at the user's businesses:

    {business_id: {"name": ..., "jobs": {job_id: {...}}, "otherIncomes": {...},
                   "otherExpenses": {...}, "labels": {...}}}

Paths passed to `apply_updates` are relative to that root,
e.g. "<business_id>/jobs/<job_id>/labelId".
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError

from src.models.audit import AuditEvent
from src.models.business import Business, Job, Label, OtherExpense, OtherIncome


logger = structlog.get_logger(__name__)

SnapshotCallback = Callable[[list[Business]], None]
Unsubscribe = Callable[[], None]


class Collection(str, Enum):
    """Child collections of a business document."""
    JOBS = "jobs"
    OTHER_INCOMES = "otherIncomes"
    OTHER_EXPENSES = "otherExpenses"
    LABELS = "labels"

    @property
    def model(self) -> type[BaseModel]:
        return {
            Collection.JOBS: Job,
            Collection.OTHER_INCOMES: OtherIncome,
            Collection.OTHER_EXPENSES: OtherExpense,
            Collection.LABELS: Label,
        }[self]


def child_path(business_id: str, collection: Collection, child_id: str, *fields: str) -> str:
    """Path of a child entity (or one of its fields) below the businesses root."""
    return "/".join([business_id, collection.value, child_id, *fields])


def business_from_document(business_id: str, data: Optional[dict]) -> Business:
    """
    Build a Business from its stored document.

    Children are stored keyed by id; the key is used when the child has no
    `id` field. Missing fields get their defaults. Malformed children are
    skipped with a warning instead of failing the whole business.
    """
    data = data if isinstance(data, dict) else {}
    children = {
        collection: _children(business_id, collection, data.get(collection.value))
        for collection in Collection
    }
    return Business(
        id=business_id,
        name=str(data.get("name") or "Untitled"),
        jobs=children[Collection.JOBS],
        other_incomes=children[Collection.OTHER_INCOMES],
        other_expenses=children[Collection.OTHER_EXPENSES],
        labels=children[Collection.LABELS],
    )


def businesses_from_document(root: Optional[dict]) -> list[Business]:
    """Build every business below the businesses root."""
    if not isinstance(root, dict):
        return []
    return [business_from_document(str(key), value) for key, value in root.items()]


def _children(business_id: str, collection: Collection, raw: Any) -> list:
    if not raw:
        return []
    items = raw.items() if isinstance(raw, dict) else enumerate(raw)

    children = []
    for key, item in items:
        if not isinstance(item, dict):
            continue
        try:
            children.append(collection.model.model_validate({"id": str(key), **item}))
        except ValidationError as e:
            logger.warning(
                "skipping_malformed_entry",
                business_id=business_id,
                collection=collection.value,
                key=str(key),
                error=str(e),
            )
    return children


class BusinessStorageInterface(ABC):
    """
    Abstract interface for business storage operations.

    Every backend (remote database, local file) must implement these methods.
    All writes raise StorageError on failure.
    """

    @abstractmethod
    async def load_businesses(self) -> list[Business]:
        """Read the full current list of businesses."""
        pass

    @abstractmethod
    async def create_business(self, name: str) -> str:
        """
        Create an empty business.

        Returns:
            The generated business id
        """
        pass

    @abstractmethod
    async def update_business(self, business_id: str, fields: dict[str, Any]) -> None:
        """Update top-level fields (e.g. name) of a business."""
        pass

    @abstractmethod
    async def delete_business(self, business_id: str) -> None:
        """Delete a business and everything it owns."""
        pass

    @abstractmethod
    async def push_child(
        self,
        business_id: str,
        collection: Collection,
        data: dict[str, Any],
    ) -> str:
        """
        Create a child entity with a generated id.

        The id is also written into the entity as its `id` field.

        Returns:
            The generated id
        """
        pass

    @abstractmethod
    async def update_child(
        self,
        business_id: str,
        collection: Collection,
        child_id: str,
        fields: dict[str, Any],
    ) -> None:
        """
        Update fields of a child entity.

        A None value removes that field.
        """
        pass

    @abstractmethod
    async def remove_child(
        self,
        business_id: str,
        collection: Collection,
        child_id: str,
    ) -> None:
        """Delete a child entity."""
        pass

    @abstractmethod
    async def apply_updates(self, updates: dict[str, Any]) -> None:
        """
        Write several locations as one atomic unit.

        Args:
            updates: {path below the businesses root: value};
                    a None value removes the location
        """
        pass

    @abstractmethod
    def subscribe(self, callback: SnapshotCallback) -> Unsubscribe:
        """
        Deliver the full list of businesses now and after every change.

        Returns:
            A function that stops the subscription
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events sharing a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Events about one entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class PermissionDeniedError(StorageError):
    """The backend rejected the credentials for this user."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
