"""Tests for the storage backends."""

import asyncio
import json

import httpx
import pytest
from structlog.testing import capture_logs

from src.config.settings import FirebaseSettings
from src.models.audit import AuditEventBuilder
from src.services.storage import (
    Collection,
    FirebaseBusinessStorage,
    LocalAuditStorage,
    LocalBusinessStorage,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    business_from_document,
    businesses_from_document,
    child_path,
)


class TestDocumentParsing:
    """Tests for building businesses from the stored tree."""

    def test_children_keyed_by_id(self):
        businesses = businesses_from_document({
            "b1": {
                "name": "Bakery",
                "jobs": {"k1": {"title": "Deliver", "date": "2024-01-01"}},
                "labels": {"l1": {"id": "l1", "title": "Urgent"}},
            }
        })
        assert len(businesses) == 1
        business = businesses[0]
        assert business.id == "b1"
        assert business.jobs[0].id == "k1"
        assert business.labels[0].title == "Urgent"
        assert business.other_incomes == []

    def test_malformed_child_is_skipped(self):
        businesses = businesses_from_document({
            "b1": {
                "name": "Bakery",
                "jobs": {
                    "ok": {"title": "Fine", "date": "2024-01-01"},
                    "bad": {"title": "No date"},
                    "junk": "not a dict",
                },
            }
        })
        assert [job.id for job in businesses[0].jobs] == ["ok"]

    def test_missing_business_fields_get_defaults(self):
        business = business_from_document("b1", None)
        assert business.id == "b1"
        assert business.name == "Untitled"
        assert business.jobs == [] and business.labels == []

    def test_empty_root(self):
        assert businesses_from_document(None) == []

    def test_child_path(self):
        assert child_path("b1", Collection.JOBS, "j1", "labelId") == "b1/jobs/j1/labelId"


class TestLocalBusinessStorage:
    """Tests for guest-mode file storage."""

    @pytest.mark.asyncio
    async def test_create_and_reload(self, tmp_path):
        path = tmp_path / "guest.json"
        storage = LocalBusinessStorage(path)
        business_id = await storage.create_business("Bakery")
        job_id = await storage.push_child(
            business_id, Collection.JOBS, {"title": "Deliver", "date": "2024-01-01", "labelId": None}
        )

        reloaded = await LocalBusinessStorage(path).load_businesses()
        assert reloaded[0].name == "Bakery"
        assert reloaded[0].jobs[0].id == job_id
        assert "labelId" not in json.loads(path.read_text())[business_id]["jobs"][job_id]

    @pytest.mark.asyncio
    async def test_update_with_null_removes_field(self, tmp_path):
        storage = LocalBusinessStorage(tmp_path / "guest.json")
        business_id = await storage.create_business("Bakery")
        job_id = await storage.push_child(
            business_id, Collection.JOBS, {"title": "Deliver", "date": "2024-01-01", "labelId": "l1"}
        )
        await storage.update_child(business_id, Collection.JOBS, job_id, {"labelId": None})
        businesses = await storage.load_businesses()
        assert businesses[0].jobs[0].label_id is None

    @pytest.mark.asyncio
    async def test_update_missing_child_raises(self, tmp_path):
        storage = LocalBusinessStorage(tmp_path / "guest.json")
        business_id = await storage.create_business("Bakery")
        with pytest.raises(NotFoundError):
            await storage.update_child(business_id, Collection.JOBS, "nope", {"title": "x"})

    @pytest.mark.asyncio
    async def test_apply_updates_writes_all_paths(self, tmp_path):
        storage = LocalBusinessStorage(tmp_path / "guest.json")
        business_id = await storage.create_business("Bakery")
        await storage.apply_updates({
            child_path(business_id, Collection.JOBS, "j1"): {"title": "A", "date": "2024-01-01"},
            child_path(business_id, Collection.LABELS, "l1"): {"title": "Tag"},
        })
        business = (await storage.load_businesses())[0]
        assert [job.id for job in business.jobs] == ["j1"]
        assert [label.id for label in business.labels] == ["l1"]

    @pytest.mark.asyncio
    async def test_apply_updates_bad_path_changes_nothing(self, tmp_path):
        storage = LocalBusinessStorage(tmp_path / "guest.json")
        business_id = await storage.create_business("Bakery")
        with pytest.raises(StorageError):
            await storage.apply_updates({f"{business_id}/name": "Renamed", "/": "x"})
        assert (await storage.load_businesses())[0].name == "Bakery"

    @pytest.mark.asyncio
    async def test_corrupt_file_moved_aside(self, tmp_path):
        path = tmp_path / "guest.json"
        path.write_text("{not json")
        storage = LocalBusinessStorage(path)
        assert await storage.load_businesses() == []
        assert (tmp_path / "guest.json.corrupt").exists()

    @pytest.mark.asyncio
    async def test_corrupt_file_that_cannot_move_is_storage_error(self, tmp_path, monkeypatch):
        path = tmp_path / "guest.json"
        path.write_text("{not json")

        def refuse(src, dst):
            raise PermissionError("read-only directory")

        monkeypatch.setattr("src.services.storage.local.os.replace", refuse)
        with pytest.raises(StorageError, match="move unreadable guest data"):
            await LocalBusinessStorage(path).load_businesses()

    @pytest.mark.asyncio
    async def test_subscribe_delivers_snapshots(self, tmp_path):
        storage = LocalBusinessStorage(tmp_path / "guest.json")
        snapshots = []
        unsubscribe = storage.subscribe(snapshots.append)
        await storage.create_business("Bakery")
        unsubscribe()
        await storage.create_business("Studio")

        assert len(snapshots) == 2
        assert snapshots[0] == []
        assert [b.name for b in snapshots[1]] == ["Bakery"]


class TestLocalAuditStorage:
    """Tests for the JSON-lines audit log."""

    @pytest.mark.asyncio
    async def test_append_and_query(self, tmp_path):
        storage = LocalAuditStorage(tmp_path / "audit.jsonl")
        assert await storage.append_event(AuditEventBuilder.job_added("b1", "j1", "A", False))
        assert await storage.append_event(AuditEventBuilder.job_deleted("b1", "j1", "A"))
        assert await storage.append_event(AuditEventBuilder.job_added("b1", "j2", "B", False))

        by_entity = await storage.get_events_by_entity("job", "j1")
        assert [e.event_type.value for e in by_entity] == ["job_added", "job_deleted"]
        assert len(await storage.get_recent_events(limit=2)) == 2


def firebase_storage(handler, id_token="token-123"):
    return FirebaseBusinessStorage(
        "user-1",
        id_token=id_token,
        settings=FirebaseSettings(database_url="https://db.example.com/"),
        transport=httpx.MockTransport(handler),
    )


class TestFirebaseBusinessStorage:
    """Tests for the Realtime Database REST backend."""

    @pytest.mark.asyncio
    async def test_load_uses_user_path_and_token(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"b1": {"name": "Bakery"}})

        storage = firebase_storage(handler)
        businesses = await storage.load_businesses()
        await storage.close()

        assert [b.name for b in businesses] == ["Bakery"]
        request = seen[0]
        assert request.method == "GET"
        assert request.url.path == "/users/user-1/businesses.json"
        assert request.url.params["auth"] == "token-123"

    @pytest.mark.asyncio
    async def test_push_child_writes_generated_key(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path, json.loads(request.content)))
            if request.method == "POST":
                return httpx.Response(200, json={"name": "-Nkey"})
            return httpx.Response(200, json={"id": "-Nkey"})

        storage = firebase_storage(handler)
        key = await storage.push_child("b1", Collection.OTHER_INCOMES, {"title": "Grant"})
        await storage.close()

        assert key == "-Nkey"
        assert seen == [
            ("POST", "/users/user-1/businesses/b1/otherIncomes.json", {"title": "Grant"}),
            ("PATCH", "/users/user-1/businesses/b1/otherIncomes/-Nkey.json", {"id": "-Nkey"}),
        ]

    @pytest.mark.asyncio
    async def test_apply_updates_is_one_patch_on_root(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={})

        updates = {"b1/jobs/j1/exceptions": ["2024-01-08"], "b1/jobs/j2": {"title": "New"}}
        storage = firebase_storage(handler)
        await storage.apply_updates(updates)
        await storage.close()

        assert seen == [("PATCH", "/users/user-1/businesses.json", updates)]

    @pytest.mark.asyncio
    async def test_remove_child_deletes(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path))
            return httpx.Response(200, json=None)

        storage = firebase_storage(handler)
        await storage.remove_child("b1", Collection.LABELS, "l1")
        await storage.close()

        assert seen == [("DELETE", "/users/user-1/businesses/b1/labels/l1.json")]

    @pytest.mark.asyncio
    async def test_rejected_credentials(self):
        storage = firebase_storage(lambda request: httpx.Response(401, json={"error": "denied"}))
        with pytest.raises(PermissionDeniedError):
            await storage.load_businesses()
        await storage.close()

    @pytest.mark.asyncio
    async def test_server_error_is_storage_error(self):
        storage = firebase_storage(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(StorageError):
            await storage.update_business("b1", {"name": "Renamed"})
        await storage.close()


SSE_PUT = 'event: put\ndata: {"path": "/", "data": null}\n\n'


def streaming_storage(reload_response, attempts=2):
    """Firebase storage whose stream sends one put event."""
    streams = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.headers.get("Accept") == "text/event-stream":
            streams.append(request)
            return httpx.Response(
                200, text=SSE_PUT, headers={"Content-Type": "text/event-stream"}
            )
        return reload_response()

    storage = FirebaseBusinessStorage(
        "user-1",
        id_token="token-123",
        settings=FirebaseSettings(
            database_url="https://db.example.com",
            subscribe_attempts=attempts,
            subscribe_backoff_seconds=0,
        ),
        transport=httpx.MockTransport(handler),
    )
    return storage, streams


async def wait_for(condition, timeout=1.0):
    for _ in range(int(timeout / 0.01)):
        if condition():
            return
        await asyncio.sleep(0.01)


class TestFirebaseSubscription:
    """Tests for the streamed snapshot subscription."""

    @pytest.mark.asyncio
    async def test_put_event_delivers_snapshot(self):
        storage, streams = streaming_storage(
            lambda: httpx.Response(200, json={"b1": {"name": "Bakery"}})
        )
        snapshots = []

        unsubscribe = storage.subscribe(snapshots.append)
        await wait_for(lambda: snapshots)
        unsubscribe()
        await storage.close()

        assert [[b.name for b in snapshot] for snapshot in snapshots] == [["Bakery"]]
        assert streams[0].url.params["auth"] == "token-123"

    @pytest.mark.asyncio
    async def test_failing_reload_is_retried_then_logged(self):
        storage, streams = streaming_storage(lambda: httpx.Response(500, text="boom"))
        snapshots = []

        with capture_logs() as logs:
            unsubscribe = storage.subscribe(snapshots.append)
            await wait_for(lambda: any(e["event"] == "subscription_failed" for e in logs))
        unsubscribe()
        await storage.close()

        assert snapshots == []
        assert len(streams) == 2
        failures = [e for e in logs if e["event"] == "subscription_failed"]
        assert len(failures) == 1
        assert "HTTP 500" in failures[0]["error"]
        assert [e["attempt"] for e in logs if e["event"] == "subscription_retrying"] == [1]

    @pytest.mark.asyncio
    async def test_rejected_reload_is_not_retried(self):
        storage, streams = streaming_storage(lambda: httpx.Response(403), attempts=3)

        with capture_logs() as logs:
            unsubscribe = storage.subscribe(lambda businesses: None)
            await wait_for(lambda: any(e["event"] == "subscription_failed" for e in logs))
        unsubscribe()
        await storage.close()

        assert len(streams) == 1
        assert [e["error_type"] for e in logs if e["event"] == "subscription_failed"] == [
            "PermissionDeniedError"
        ]
