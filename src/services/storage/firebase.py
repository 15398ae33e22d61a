"""
Firebase Realtime Database Storage Implementation

Signed-in users keep their businesses under `users/<uid>/businesses`
in a Firebase Realtime Database, accessed through its REST API:

- push      -> POST   (the database assigns the key)
- update    -> PATCH  (null values remove fields)
- remove    -> DELETE
- multi-path update -> PATCH on the businesses root (atomic)
- subscribe -> streaming GET (server-sent events)

TRADEOFFS:
- No conflict detection: the last writer wins
- Subscriptions re-read the whole collection on every change
  (a user owns a handful of businesses, so this stays small)
"""

import asyncio
import json
from typing import Any, Optional

import httpx
import structlog
from google.auth.transport.requests import Request
from google.oauth2.service_account import Credentials
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.config import get_settings
from src.config.settings import FirebaseSettings
from src.models.business import Business
from src.services.storage.interface import (
    BusinessStorageInterface,
    Collection,
    ConnectionError,
    PermissionDeniedError,
    SnapshotCallback,
    StorageError,
    Unsubscribe,
    businesses_from_document,
)


logger = structlog.get_logger(__name__)

FIREBASE_SCOPES = [
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/firebase.database",
]


class FirebaseBusinessStorage(BusinessStorageInterface):
    """
    Realtime Database implementation of business storage.

    Authenticates with the signed-in user's id token (`auth=`), or with a
    service account access token when `credentials_path` is configured.
    """

    def __init__(
        self,
        user_id: str,
        id_token: Optional[str] = None,
        settings: Optional[FirebaseSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings or get_settings().firebase
        self._user_id = user_id
        self._id_token = id_token
        self._transport = transport
        self._credentials: Optional[Credentials] = None
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def root_path(self) -> str:
        return f"users/{self._user_id}/businesses"

    def _url(self, path: str = "") -> str:
        suffix = f"/{path.strip('/')}" if path else ""
        return f"{self._settings.database_url}/{self.root_path}{suffix}.json"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._settings.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _refresh_service_account_token(self) -> str:
        if self._credentials is None:
            try:
                self._credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=FIREBASE_SCOPES,
                )
            except FileNotFoundError:
                raise ConnectionError(
                    f"Firebase credentials file not found: {self._settings.credentials_path}"
                )
        if not self._credentials.valid:
            self._credentials.refresh(Request())
        return self._credentials.token

    async def _auth_params(self) -> dict[str, str]:
        if self._settings.credentials_path:
            token = await asyncio.to_thread(self._refresh_service_account_token)
            return {"access_token": token}
        if self._id_token:
            return {"auth": self._id_token}
        return {}

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _request(
        self,
        method: str,
        path: str = "",
        payload: Any = None,
    ) -> Any:
        client = self._get_client()
        response = await client.request(
            method,
            self._url(path),
            params=await self._auth_params(),
            content=json.dumps(payload) if payload is not None else None,
            headers={"Content-Type": "application/json"},
        )
        if response.status_code in (401, 403):
            raise PermissionDeniedError(
                f"Database rejected credentials for user {self._user_id}"
            )
        response.raise_for_status()
        return response.json() if response.content else None

    async def _call(self, action: str, method: str, path: str = "", payload: Any = None) -> Any:
        try:
            return await self._request(method, path, payload)
        except StorageError:
            raise
        except httpx.TransportError as e:
            raise ConnectionError(f"Failed to {action}: {e}")
        except httpx.HTTPStatusError as e:
            raise StorageError(
                f"Failed to {action}: HTTP {e.response.status_code}"
            )

    async def load_businesses(self) -> list[Business]:
        """Read every business of the user."""
        root = await self._call("load businesses", "GET")
        return businesses_from_document(root)

    async def create_business(self, name: str) -> str:
        result = await self._call(
            "create business",
            "POST",
            payload={"name": name},
        )
        return result["name"]

    async def update_business(self, business_id: str, fields: dict[str, Any]) -> None:
        await self._call("update business", "PATCH", business_id, fields)

    async def delete_business(self, business_id: str) -> None:
        await self._call("delete business", "DELETE", business_id)

    async def push_child(
        self,
        business_id: str,
        collection: Collection,
        data: dict[str, Any],
    ) -> str:
        """
        POST the entity, then write the generated key into it as `id`.

        If the second write fails the loader still falls back to the key.
        """
        path = f"{business_id}/{collection.value}"
        result = await self._call(f"add {collection.value}", "POST", path, data)
        key = result["name"]
        await self._call(f"add {collection.value}", "PATCH", f"{path}/{key}", {"id": key})
        return key

    async def update_child(
        self,
        business_id: str,
        collection: Collection,
        child_id: str,
        fields: dict[str, Any],
    ) -> None:
        path = f"{business_id}/{collection.value}/{child_id}"
        await self._call(f"update {collection.value}", "PATCH", path, fields)

    async def remove_child(
        self,
        business_id: str,
        collection: Collection,
        child_id: str,
    ) -> None:
        path = f"{business_id}/{collection.value}/{child_id}"
        await self._call(f"remove {collection.value}", "DELETE", path)

    async def apply_updates(self, updates: dict[str, Any]) -> None:
        """Multi-path PATCH on the businesses root; applied atomically."""
        if not updates:
            return
        await self._call("apply updates", "PATCH", payload=updates)

    # === Subscription ===

    def subscribe(self, callback: SnapshotCallback) -> Unsubscribe:
        """
        Stream changes in the background and deliver full snapshots.

        Must be called from a running event loop.
        """
        task = asyncio.get_running_loop().create_task(self._listen(callback))
        task.add_done_callback(self._report_listener_exit)

        def unsubscribe() -> None:
            task.cancel()

        return unsubscribe

    def _report_listener_exit(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("subscription_failed", user_id=self._user_id, error=str(error))

    def _log_stream_retry(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "subscription_retrying",
            user_id=self._user_id,
            attempt=retry_state.attempt_number,
            error=str(retry_state.outcome.exception()),
        )

    async def _listen(self, callback: SnapshotCallback) -> None:
        """Keep the stream open, reconnecting after transient failures."""
        backoff = self._settings.subscribe_backoff_seconds
        try:
            async for attempt in AsyncRetrying(
                retry=(
                    retry_if_exception_type((httpx.TransportError, httpx.HTTPStatusError, StorageError))
                    & retry_if_not_exception_type(PermissionDeniedError)
                ),
                stop=stop_after_attempt(self._settings.subscribe_attempts),
                wait=wait_exponential(multiplier=backoff, min=backoff, max=60),
                before_sleep=self._log_stream_retry,
                reraise=True,
            ):
                with attempt:
                    await self._stream(callback)
        except (httpx.HTTPError, StorageError) as e:
            logger.error(
                "subscription_failed",
                user_id=self._user_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def _stream(self, callback: SnapshotCallback) -> None:
        client = self._get_client()
        async with client.stream(
            "GET",
            self._url(),
            params=await self._auth_params(),
            headers={"Accept": "text/event-stream"},
            timeout=httpx.Timeout(self._settings.timeout_seconds, read=None),
        ) as response:
            if response.status_code in (401, 403):
                logger.error("subscription_rejected", user_id=self._user_id)
                return
            response.raise_for_status()

            event_name = None
            async for line in response.aiter_lines():
                if line.startswith("event:"):
                    event_name = line.split(":", 1)[1].strip()
                elif line.startswith("data:") and event_name in ("put", "patch"):
                    # Deltas are not merged; the whole collection is re-read
                    callback(await self.load_businesses())
                elif event_name in ("cancel", "auth_revoked"):
                    logger.warning(
                        "subscription_closed_by_server",
                        user_id=self._user_id,
                        reason=event_name,
                    )
                    return
