"""Coordination store contract.

The coordination store is a shared hierarchical key-value tree with push
semantics. Paths are slash-separated (``status/req_1``). Writing ``None``
to a path deletes it, and reading an absent path returns ``None``.

Subscriptions deliver the full value at the watched path every time
anything at, above, or below it changes. Deliveries for one subscription
are processed strictly in order, one callback at a time.
"""

import asyncio
import contextlib
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)

# on_change(value) - value is None when the path is absent
OnChange = Callable[[Any], Awaitable[None]]
OnError = Callable[[Exception], Awaitable[None]]


class StoreError(Exception):
    """Raised when the coordination store cannot be read, written or watched."""

    pass


def split_path(path: str) -> list[str]:
    """Split a store path into its non-empty segments."""
    return [part for part in path.strip("/").split("/") if part]


def join_path(*parts: str) -> str:
    """Join path fragments, collapsing redundant slashes."""
    segments: list[str] = []
    for part in parts:
        segments.extend(split_path(part))
    return "/".join(segments)


def paths_overlap(a: str, b: str) -> bool:
    """True if one path is an ancestor of (or equal to) the other."""
    sa, sb = split_path(a), split_path(b)
    shortest = min(len(sa), len(sb))
    return sa[:shortest] == sb[:shortest]


class Subscription(ABC):
    """Handle for a live watch on one store path.

    Each subscription owns a single background task; closing cancels it.
    A callback may close its own subscription, in which case the task
    exits as soon as the callback returns.
    """

    def __init__(
        self,
        path: str,
        on_change: OnChange,
        on_error: Optional[OnError] = None,
    ):
        self.path = path
        self._on_change = on_change
        self._on_error = on_error
        self._closed = False
        self._task: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> "Subscription":
        self._task = asyncio.create_task(self._run(), name=f"subscription:{self.path}")
        return self

    async def close(self) -> None:
        """Stop delivering changes. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._on_close()

        task = self._task
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def _on_close(self) -> None:
        """Hook for stores that track their live subscriptions."""

    async def _deliver(self, value: Any) -> None:
        if self._closed:
            return
        await self._on_change(value)

    async def _fail(self, error: Exception) -> None:
        if self._closed:
            return
        logger.warning("subscription_failed", path=self.path, error=str(error))
        if self._on_error is not None:
            await self._on_error(error)

    async def _run(self) -> None:
        try:
            await self._listen()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._fail(e)

    @abstractmethod
    async def _listen(self) -> None:
        """Deliver values until closed."""


class CoordinationStore(ABC):
    """Async read/write/subscribe access to the shared store."""

    @abstractmethod
    async def read(self, path: str) -> Any:
        """Return the value at path, or None if absent."""

    @abstractmethod
    async def write(self, path: str, value: Any) -> None:
        """Replace the value at path. Writing None deletes it."""

    @abstractmethod
    async def push(self, path: str, value: Any) -> str:
        """Append value under a new time-ordered child key; return the key."""

    async def remove(self, path: str) -> None:
        await self.write(path, None)

    @abstractmethod
    async def subscribe(
        self,
        path: str,
        on_change: OnChange,
        on_error: Optional[OnError] = None,
    ) -> Subscription:
        """Watch path; on_change fires with the current value, then on every change."""

    async def close(self) -> None:
        """Release any transport resources."""
