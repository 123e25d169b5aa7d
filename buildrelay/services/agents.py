"""Compiler agent discovery."""

import time
from typing import Callable

import structlog

from buildrelay.jobs.errors import NoAgentError
from buildrelay.jobs.models import Agent, to_millis
from buildrelay.store.base import CoordinationStore, StoreError

logger = structlog.get_logger(__name__)

HEALTH_CHECK_PATH = "health_check"


class AgentDirectory:
    """
    Finds a live compiler agent in the store's agent registry.

    An agent is live when its status is ``online`` and its heartbeat is
    younger than the liveness window. Among live agents the first one in
    registry order wins; registry order is the key order the store
    returns (insertion order in memory, key order over REST).
    """

    def __init__(
        self,
        store: CoordinationStore,
        agents_path: str = "agents",
        liveness_window_s: float = 120.0,
        verify_connection: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.agents_path = agents_path
        self.liveness_window_s = liveness_window_s
        self.verify_connection = verify_connection
        self._clock = clock

    async def list_agents(self) -> list[Agent]:
        """Read the full registry. Raises StoreError on transport failure."""
        registry = await self.store.read(self.agents_path)
        if not isinstance(registry, dict):
            return []
        return [
            Agent.from_record(agent_id, record)
            for agent_id, record in registry.items()
            if isinstance(record, dict)
        ]

    async def find_live_agent(self) -> str:
        """
        Pick one live agent.

        Returns:
            The agent id

        Raises:
            NoAgentError: Store unreachable, registry empty, or nobody live
        """
        try:
            if self.verify_connection:
                await self._probe()
            agents = await self.list_agents()
        except StoreError as e:
            logger.warning("agent_discovery_store_error", error=str(e))
            raise NoAgentError(
                "Failed to reach the coordination store or validate permissions. "
                f"Details: {e}"
            ) from e

        if not agents:
            raise NoAgentError(
                "Connection to the coordination store is OK, but no compiler agents "
                "are registered. Please ensure the agent is running."
            )

        now = self._clock()
        live = [a for a in agents if a.is_live(now, self.liveness_window_s)]
        if not live:
            logger.info("no_live_agents", registered=len(agents))
            raise NoAgentError(
                "Connection to the coordination store is OK, but no active compiler "
                "agents were found. Check agent status."
            )

        logger.info("live_agent_selected", agent_id=live[0].id, live_count=len(live))
        return live[0].id

    async def _probe(self) -> None:
        """Write and remove a throwaway record to prove connectivity."""
        probe_path = f"{HEALTH_CHECK_PATH}/cloud-client_{to_millis(self._clock())}"
        try:
            await self.store.write(
                probe_path, {"timestamp": to_millis(self._clock()), "client": "cloud-client"}
            )
        finally:
            try:
                await self.store.remove(probe_path)
            except StoreError as e:
                logger.warning("health_check_cleanup_failed", path=probe_path, error=str(e))
