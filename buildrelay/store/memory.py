"""In-process coordination store.

Behaves like the hosted store (path tree, push keys, subtree watches)
without a network. Used for local runs and as the test double for the
orchestrator.
"""

import asyncio
import copy
import itertools
import time
from typing import Any, Optional

from buildrelay.store.base import (
    CoordinationStore,
    OnChange,
    OnError,
    Subscription,
    join_path,
    paths_overlap,
    split_path,
)


class MemorySubscription(Subscription):
    """Subscription fed by an in-memory queue."""

    def __init__(
        self,
        store: "InMemoryStore",
        path: str,
        on_change: OnChange,
        on_error: Optional[OnError] = None,
    ):
        super().__init__(path, on_change, on_error)
        self._store = store
        self._queue: asyncio.Queue = asyncio.Queue()

    def notify(self, value: Any) -> None:
        if not self._closed:
            self._queue.put_nowait(value)

    def _on_close(self) -> None:
        self._store._detach(self)

    async def _listen(self) -> None:
        while not self._closed:
            value = await self._queue.get()
            await self._deliver(value)


class InMemoryStore(CoordinationStore):
    """Dictionary-backed store with push notifications."""

    def __init__(self, data: Optional[dict[str, Any]] = None):
        self._root: dict[str, Any] = copy.deepcopy(data) if data else {}
        self._subscriptions: list[MemorySubscription] = []
        self._push_counter = itertools.count()

    @property
    def subscriptions(self) -> list[MemorySubscription]:
        """Live subscriptions, oldest first."""
        return list(self._subscriptions)

    def snapshot(self, path: str = "") -> Any:
        """Synchronous read, for inspection."""
        return copy.deepcopy(self._get(path))

    async def read(self, path: str) -> Any:
        return self.snapshot(path)

    async def write(self, path: str, value: Any) -> None:
        self._set(path, copy.deepcopy(value))
        self._notify(path)

    async def push(self, path: str, value: Any) -> str:
        key = self._next_push_key()
        await self.write(join_path(path, key), value)
        return key

    async def subscribe(
        self,
        path: str,
        on_change: OnChange,
        on_error: Optional[OnError] = None,
    ) -> Subscription:
        subscription = MemorySubscription(self, path, on_change, on_error)
        self._subscriptions.append(subscription)
        subscription.notify(self.snapshot(path))
        return subscription.start()

    async def close(self) -> None:
        for subscription in list(self._subscriptions):
            await subscription.close()

    def _next_push_key(self) -> str:
        # Millisecond prefix keeps keys sorted by creation time
        return f"-{int(time.time() * 1000):013d}{next(self._push_counter):06d}"

    def _get(self, path: str) -> Any:
        node: Any = self._root
        for part in split_path(path):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def _set(self, path: str, value: Any) -> None:
        parts = split_path(path)
        if not parts:
            self._root = value if isinstance(value, dict) else {}
            return

        if value is None:
            self._delete(parts)
            return

        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value

    def _delete(self, parts: list[str]) -> None:
        trail = [self._root]
        node = self._root
        for part in parts[:-1]:
            node = node.get(part)
            if not isinstance(node, dict):
                return
            trail.append(node)
        node.pop(parts[-1], None)

        # Empty branches do not exist in the tree
        for depth in range(len(parts) - 1, 0, -1):
            if trail[depth]:
                break
            trail[depth - 1].pop(parts[depth - 1], None)

    def _notify(self, path: str) -> None:
        for subscription in list(self._subscriptions):
            if paths_overlap(subscription.path, path):
                subscription.notify(self.snapshot(subscription.path))

    def _detach(self, subscription: MemorySubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
