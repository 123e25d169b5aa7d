"""Compilation request submission."""

import dataclasses
import time
from typing import Callable, Optional
from uuid import uuid4

import structlog

from buildrelay.jobs.errors import SubmissionError
from buildrelay.jobs.models import CompilationRequest, to_millis
from buildrelay.store.base import CoordinationStore, StoreError

logger = structlog.get_logger(__name__)

REQUESTS_PATH = "requests"


def generate_request_id(now: Optional[float] = None) -> str:
    """Generate a request id: req_<epoch ms>_<9 hex chars>."""
    now = time.time() if now is None else now
    return f"req_{to_millis(now)}_{uuid4().hex[:9]}"


class JobSubmitter:
    """Writes compilation requests into an agent's inbox.

    One store write per submission. Failures are reported, never retried
    here.
    """

    def __init__(
        self,
        store: CoordinationStore,
        user_id: str = "user_123",
        source: str = "web-app",
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.user_id = user_id
        self.source = source
        self._clock = clock

    async def submit(self, agent_id: str, request: CompilationRequest) -> str:
        """
        Submit a request to requests/{agentId}/{requestId}.

        Args:
            agent_id: Target agent
            request: Code, board and libraries to compile

        Returns:
            The new request id

        Raises:
            SubmissionError: If the store write fails
        """
        now = self._clock()
        request_id = generate_request_id(now)
        request = dataclasses.replace(
            request,
            id=request_id,
            submitted_at=now,
            origin=request.origin or {"userId": self.user_id, "source": self.source},
        )

        path = f"{REQUESTS_PATH}/{agent_id}/{request_id}"
        try:
            await self.store.write(path, request.to_record())
        except StoreError as e:
            logger.error(
                "request_submit_failed",
                agent_id=agent_id,
                request_id=request_id,
                error=str(e),
            )
            raise SubmissionError(
                f"Failed to submit compilation request: {e}"
            ) from e

        logger.info(
            "request_submitted",
            agent_id=agent_id,
            request_id=request_id,
            board=request.board,
            libraries=len(request.libraries),
        )
        return request_id
