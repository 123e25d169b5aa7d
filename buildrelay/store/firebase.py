"""Firebase Realtime Database client over the REST API.

Reads, writes and pushes are plain HTTP calls against ``<url>/<path>.json``.
Subscriptions use the REST streaming endpoint (Server-Sent Events): the
server sends a ``put`` with the full value, then ``put``/``patch`` events
with relative paths as the subtree changes.
"""

import copy
import json
from typing import Any, Optional

import httpx
import structlog

from buildrelay.store.base import (
    CoordinationStore,
    OnChange,
    OnError,
    StoreError,
    Subscription,
    split_path,
)

logger = structlog.get_logger(__name__)


def apply_event(snapshot: Any, event: str, rel_path: str, data: Any) -> Any:
    """Apply a streaming put/patch event to a local snapshot.

    Args:
        snapshot: Current value at the watched path
        event: "put" or "patch"
        rel_path: Path of the change relative to the watched path
        data: Event payload

    Returns:
        The updated snapshot (may be a new object)
    """
    parts = split_path(rel_path)

    if event == "patch":
        for key, value in (data or {}).items():
            snapshot = apply_event(snapshot, "put", "/".join(parts + [key]), value)
        return snapshot

    if not parts:
        return copy.deepcopy(data)

    root = snapshot if isinstance(snapshot, dict) else {}
    node = root
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child

    if data is None:
        node.pop(parts[-1], None)
    else:
        node[parts[-1]] = copy.deepcopy(data)
    return root or None


class FirebaseSubscription(Subscription):
    """SSE stream on one path."""

    def __init__(
        self,
        store: "FirebaseStore",
        path: str,
        on_change: OnChange,
        on_error: Optional[OnError] = None,
    ):
        super().__init__(path, on_change, on_error)
        self._store = store
        self._snapshot: Any = None

    async def _listen(self) -> None:
        client = self._store._client
        url = self._store._url(self.path)
        headers = {"Accept": "text/event-stream"}

        async with client.stream(
            "GET",
            url,
            params=self._store._params(),
            headers=headers,
            timeout=httpx.Timeout(self._store.timeout, read=None),
        ) as response:
            if response.status_code >= 400:
                raise StoreError(
                    f"Stream on /{self.path} rejected with status {response.status_code}"
                )

            event: Optional[str] = None
            data_lines: list[str] = []
            async for line in response.aiter_lines():
                if self._closed:
                    return
                if line.startswith("event:"):
                    event = line[len("event:"):].strip()
                elif line.startswith("data:"):
                    data_lines.append(line[len("data:"):].strip())
                elif line == "":
                    if event is not None:
                        await self._dispatch(event, "\n".join(data_lines))
                    event, data_lines = None, []

        if not self._closed:
            raise StoreError(f"Stream on /{self.path} closed by server")

    async def _dispatch(self, event: str, raw: str) -> None:
        if event == "keep-alive":
            return
        if event in ("cancel", "auth_revoked"):
            raise StoreError(f"Stream on /{self.path} ended by server: {event}")
        if event not in ("put", "patch"):
            logger.debug("firebase_stream_event_ignored", path=self.path, sse_event=event)
            return

        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreError(f"Malformed stream payload on /{self.path}") from e

        self._snapshot = apply_event(
            self._snapshot, event, message.get("path", "/"), message.get("data")
        )
        await self._deliver(copy.deepcopy(self._snapshot))


class FirebaseStore(CoordinationStore):
    """Coordination store backed by a Firebase Realtime Database."""

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the REST client.

        Args:
            base_url: Database URL (https://<project>.firebaseio.com)
            auth_token: Database secret or ID token, sent as ?auth=
            timeout: Request timeout in seconds
            client: Optional pre-built httpx client (shared connection pool)
        """
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout, follow_redirects=True
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{'/'.join(split_path(path))}.json"

    def _params(self) -> dict[str, str]:
        return {"auth": self.auth_token} if self.auth_token else {}

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(
                method, self._url(path), params=self._params(), **kwargs
            )
            response.raise_for_status()
            return response.json() if response.content else None
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (401, 403):
                raise StoreError(f"Permission denied for {method} /{path}") from e
            raise StoreError(f"{method} /{path} failed with status {status}") from e
        except httpx.HTTPError as e:
            raise StoreError(f"{method} /{path} failed: {e}") from e
        except ValueError as e:
            raise StoreError(f"{method} /{path} returned malformed JSON") from e

    async def read(self, path: str) -> Any:
        return await self._request("GET", path)

    async def write(self, path: str, value: Any) -> None:
        if value is None:
            await self._request("DELETE", path)
        else:
            await self._request("PUT", path, json=value)

    async def push(self, path: str, value: Any) -> str:
        result = await self._request("POST", path, json=value)
        if not isinstance(result, dict) or "name" not in result:
            raise StoreError(f"POST /{path} returned no key")
        return result["name"]

    async def subscribe(
        self,
        path: str,
        on_change: OnChange,
        on_error: Optional[OnError] = None,
    ) -> Subscription:
        return FirebaseSubscription(self, path, on_change, on_error).start()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
