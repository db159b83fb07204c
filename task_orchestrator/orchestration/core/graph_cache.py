"""
Per-session cache of compiled task graphs.

Entries are keyed by (session id, task type) and expire after a TTL. A
background sweep removes expired entries; it is started and stopped
explicitly by the owner of the cache.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

from task_orchestrator.orchestration.core.engine import StateMachine
from task_orchestrator.orchestration.states.workflow_stages import TaskType
from task_orchestrator.utils.logging import get_logger

logger = get_logger(__name__)

GraphFactory = Callable[[TaskType], StateMachine]


@dataclass
class GraphInstance:
    """A compiled graph and when it was built."""

    machine: StateMachine
    created_at: float


class GraphCache:
    """TTL cache of state machines per session and task type."""

    def __init__(
        self,
        builder: GraphFactory,
        ttl_seconds: float = 1800,
        sweep_interval_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            builder: Builds a fresh machine for a task type
            ttl_seconds: Age after which an entry is rebuilt
            sweep_interval_seconds: Period of the background sweep
            clock: Monotonic time source
        """
        self.builder = builder
        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self.clock = clock
        self._entries: dict[tuple[str, TaskType], GraphInstance] = {}
        self._sweeper: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def _expired(self, entry: GraphInstance, now: float) -> bool:
        return now - entry.created_at > self.ttl_seconds

    def get(self, session_id: str, task_type: TaskType | str) -> StateMachine:
        """
        Get the machine for a session and task type, building it if absent
        or expired.
        """
        key = (session_id, TaskType(task_type))
        now = self.clock()
        entry = self._entries.get(key)
        if entry is not None and not self._expired(entry, now):
            return entry.machine

        if entry is not None:
            logger.debug(f"Graph for {session_id}/{key[1].value} expired, rebuilding")
        machine = self.builder(key[1])
        self._entries[key] = GraphInstance(machine=machine, created_at=now)
        return machine

    def evict(self, session_id: str, task_type: TaskType | str) -> bool:
        return self._entries.pop((session_id, TaskType(task_type)), None) is not None

    def drop_session(self, session_id: str) -> int:
        """Remove every entry of a session; returns how many were removed."""
        keys = [key for key in self._entries if key[0] == session_id]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def sweep(self) -> int:
        """Remove expired entries; returns how many were removed."""
        now = self.clock()
        expired = [
            key for key, entry in self._entries.items() if self._expired(entry, now)
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info(f"Swept {len(expired)} expired graphs")
        return len(expired)

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start(self) -> None:
        """Start the background sweep on the running event loop."""
        if self.running:
            return
        self._sweeper = asyncio.create_task(self._sweep_loop())
        logger.debug("Graph cache sweeper started")

    async def stop(self) -> None:
        """Cancel the background sweep and wait for it to finish."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.debug("Graph cache sweeper stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Graph cache sweep failed: {e!s}")
