"""
Local File Storage Implementation

Guest mode keeps everything on this device: one JSON blob read at
start-up and rewritten after every mutation. The blob has the same
tree shape as the remote database, so the store talks to both the same way.

Also provides the append-only JSON-lines audit log.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from src.models.audit import AuditEvent
from src.models.business import Business, new_id
from src.services.storage.interface import (
    AuditStorageInterface,
    BusinessStorageInterface,
    Collection,
    NotFoundError,
    SnapshotCallback,
    StorageError,
    Unsubscribe,
    businesses_from_document,
)


logger = structlog.get_logger(__name__)


def _write_json_atomically(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, ensure_ascii=False, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class LocalBusinessStorage(BusinessStorageInterface):
    """
    Guest-mode storage in a single JSON file.

    A corrupt file is moved aside (".corrupt") and the guest starts empty.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._document: Optional[dict[str, Any]] = None
        self._listeners: list[SnapshotCallback] = []

    @property
    def path(self) -> Path:
        return self._path

    def _root(self) -> dict[str, Any]:
        if self._document is None:
            self._document = self._read()
        return self._document

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            corrupt = self._path.with_suffix(self._path.suffix + ".corrupt")
            logger.error(
                "guest_data_unreadable",
                path=str(self._path),
                moved_to=str(corrupt),
                error=str(e),
            )
            try:
                os.replace(self._path, corrupt)
            except OSError as move_error:
                raise StorageError(f"Failed to move unreadable guest data aside: {move_error}")
            return {}
        except OSError as e:
            raise StorageError(f"Failed to read guest data: {e}")

        if isinstance(data, list):
            # Older blobs held a list of businesses with embedded ids
            return {
                str(item.get("id") or new_id()): item
                for item in data
                if isinstance(item, dict)
            }
        return data if isinstance(data, dict) else {}

    def _flush(self) -> None:
        try:
            _write_json_atomically(self._path, self._root())
        except OSError as e:
            raise StorageError(f"Failed to write guest data: {e}")
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = businesses_from_document(self._root())
        for listener in list(self._listeners):
            listener(snapshot)

    def _business(self, business_id: str) -> dict[str, Any]:
        business = self._root().get(business_id)
        if not isinstance(business, dict):
            raise NotFoundError(f"Business not found: {business_id}")
        return business

    def _collection(self, business_id: str, collection: Collection) -> dict[str, Any]:
        business = self._business(business_id)
        children = business.get(collection.value)
        if isinstance(children, list):
            children = {
                str(item.get("id") or new_id()): item
                for item in children
                if isinstance(item, dict)
            }
        if not isinstance(children, dict):
            children = {}
        business[collection.value] = children
        return children

    async def load_businesses(self) -> list[Business]:
        return businesses_from_document(self._root())

    async def create_business(self, name: str) -> str:
        business_id = new_id()
        self._root()[business_id] = {"name": name}
        self._flush()
        return business_id

    async def update_business(self, business_id: str, fields: dict[str, Any]) -> None:
        business = self._business(business_id)
        _merge(business, fields)
        self._flush()

    async def delete_business(self, business_id: str) -> None:
        self._root().pop(business_id, None)
        self._flush()

    async def push_child(
        self,
        business_id: str,
        collection: Collection,
        data: dict[str, Any],
    ) -> str:
        child_id = new_id()
        children = self._collection(business_id, collection)
        children[child_id] = {**_without_nulls(data), "id": child_id}
        self._flush()
        return child_id

    async def update_child(
        self,
        business_id: str,
        collection: Collection,
        child_id: str,
        fields: dict[str, Any],
    ) -> None:
        children = self._collection(business_id, collection)
        child = children.get(child_id)
        if not isinstance(child, dict):
            raise NotFoundError(f"{collection.value} entry not found: {child_id}")
        _merge(child, fields)
        self._flush()

    async def remove_child(
        self,
        business_id: str,
        collection: Collection,
        child_id: str,
    ) -> None:
        self._collection(business_id, collection).pop(child_id, None)
        self._flush()

    async def apply_updates(self, updates: dict[str, Any]) -> None:
        """
        Apply every path, then write the file once.

        The new document is built on a copy, so a bad path leaves
        both memory and file untouched.
        """
        if not updates:
            return
        document = json.loads(json.dumps(self._root()))
        for path, value in updates.items():
            parts = [part for part in path.split("/") if part]
            if not parts:
                raise StorageError(f"Invalid update path: {path!r}")
            node = document
            for part in parts[:-1]:
                child = node.get(part)
                if not isinstance(child, dict):
                    child = {}
                    node[part] = child
                node = child
            if value is None:
                node.pop(parts[-1], None)
            else:
                node[parts[-1]] = value
        self._document = document
        self._flush()

    def subscribe(self, callback: SnapshotCallback) -> Unsubscribe:
        self._listeners.append(callback)
        callback(businesses_from_document(self._root()))

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe


def _merge(target: dict[str, Any], fields: dict[str, Any]) -> None:
    for key, value in fields.items():
        if value is None:
            target.pop(key, None)
        else:
            target[key] = value


def _without_nulls(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


class LocalAuditStorage(AuditStorageInterface):
    """
    Append-only audit log in a JSON-lines file.

    Unreadable lines are skipped on read.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(event.to_json_line() + "\n")
            return True
        except OSError as e:
            # Audit logging must not break the main flow
            logger.error("audit_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    def _read_events(self) -> list[AuditEvent]:
        if not self._path.exists():
            return []
        events = []
        with self._path.open(encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(AuditEvent.model_validate_json(line))
                except ValidationError:
                    continue
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._read_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._read_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
