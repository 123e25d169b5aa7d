"""Client-side audit trail under logs/{logId}.

Events are only written once the agent has assigned a log id; there is
nothing to attach them to before that. Audit writes are a side channel:
a failed write is logged and does not affect the job.
"""

import time
from typing import Any, Callable, Optional

import structlog

from buildrelay.jobs.models import ClientLogEvent, to_millis
from buildrelay.store.base import CoordinationStore, StoreError

logger = structlog.get_logger(__name__)

LOGS_PATH = "logs"


class AuditLog:
    """Writes ClientLogEvents to the shared job log."""

    def __init__(
        self,
        store: CoordinationStore,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self._clock = clock

    async def write(
        self,
        log_id: Optional[str],
        event_type: str,
        message: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[ClientLogEvent]:
        """
        Append an event to logs/{logId}.

        Pushes to clientSide/events and timeline, then stamps updatedAt.

        Returns:
            The written event, or None if log_id is unknown or the write failed
        """
        if not log_id:
            logger.warning("audit_write_without_log_id", event_type=event_type)
            return None

        event = ClientLogEvent(
            log_id=log_id,
            event_type=event_type,
            message=message,
            metadata=metadata or {},
            timestamp=to_millis(self._clock()),
        )
        base = f"{LOGS_PATH}/{log_id}"

        try:
            await self.store.push(f"{base}/clientSide/events", event.to_event_record())
            await self.store.push(f"{base}/timeline", event.to_timeline_record())
            await self.store.write(f"{base}/updatedAt", event.timestamp)
        except StoreError as e:
            logger.warning(
                "audit_write_failed",
                log_id=log_id,
                event_type=event_type,
                error=str(e),
            )
            return None

        logger.debug("audit_event_written", log_id=log_id, event_type=event_type)
        return event
