"""Status transports: how status changes reach the monitor.

Push uses the store's own subscription. Polling reads the path on a fixed
interval and reports only values that differ from the last one seen. Both
hand back a ``Subscription`` so the monitor treats them identically.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from typing import Any, Optional

from buildrelay.config import Settings
from buildrelay.store.base import CoordinationStore, OnChange, OnError, Subscription

_UNSET = object()


class StatusTransport(ABC):
    """Opens a watch on a status path."""

    @abstractmethod
    async def open(
        self,
        path: str,
        on_change: OnChange,
        on_error: Optional[OnError] = None,
    ) -> Subscription:
        ...


class PushTransport(StatusTransport):
    """Delegates to the store's push subscription."""

    def __init__(self, store: CoordinationStore):
        self.store = store

    async def open(
        self,
        path: str,
        on_change: OnChange,
        on_error: Optional[OnError] = None,
    ) -> Subscription:
        return await self.store.subscribe(path, on_change, on_error)


class PollingSubscription(Subscription):
    """Periodic reads of one path."""

    def __init__(
        self,
        store: CoordinationStore,
        path: str,
        interval_s: float,
        on_change: OnChange,
        on_error: Optional[OnError] = None,
    ):
        super().__init__(path, on_change, on_error)
        self._store = store
        self._interval_s = interval_s

    async def _listen(self) -> None:
        last: Any = _UNSET
        while not self._closed:
            value = await self._store.read(self.path)
            if value != last:
                last = copy.deepcopy(value)
                await self._deliver(value)
            if self._closed:
                return
            await asyncio.sleep(self._interval_s)


class PollingTransport(StatusTransport):
    """Reads the status path every ``interval_s`` seconds."""

    def __init__(self, store: CoordinationStore, interval_s: float = 3.0):
        self.store = store
        self.interval_s = interval_s

    async def open(
        self,
        path: str,
        on_change: OnChange,
        on_error: Optional[OnError] = None,
    ) -> Subscription:
        return PollingSubscription(
            self.store, path, self.interval_s, on_change, on_error
        ).start()


def build_transport(store: CoordinationStore, settings: Settings) -> StatusTransport:
    """Pick the transport named by settings.status_transport."""
    if settings.status_transport == "poll":
        return PollingTransport(store, settings.status_poll_interval_s)
    return PushTransport(store)
