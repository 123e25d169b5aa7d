"""Coordination store package."""

from typing import Optional

from buildrelay.config import Settings, get_settings
from buildrelay.store.base import CoordinationStore, StoreError, Subscription
from buildrelay.store.firebase import FirebaseStore
from buildrelay.store.memory import InMemoryStore
from buildrelay.store.transports import (
    PollingTransport,
    PushTransport,
    StatusTransport,
    build_transport,
)


def create_store(settings: Optional[Settings] = None) -> CoordinationStore:
    """Firebase store when store_url is configured, else an in-memory store."""
    settings = settings or get_settings()
    if settings.store_url:
        return FirebaseStore(
            settings.store_url,
            auth_token=settings.store_auth_token,
            timeout=settings.store_timeout_s,
        )
    return InMemoryStore()


__all__ = [
    "CoordinationStore",
    "StoreError",
    "Subscription",
    "FirebaseStore",
    "InMemoryStore",
    "StatusTransport",
    "PushTransport",
    "PollingTransport",
    "build_transport",
    "create_store",
]
