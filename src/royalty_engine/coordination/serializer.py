"""Per-resource serialization of mutations."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Hashable

from royalty_engine.exceptions import ConflictingOperationError

logger = logging.getLogger(__name__)


class ResourceSerializer:
    """Serializes work per resource id.

    Work on different ids runs concurrently. A second caller for an id
    that is already in flight is rejected with ConflictingOperationError
    (policy "reject") or waits its turn (policy "queue").
    """

    def __init__(self, policy: str = "reject"):
        if policy not in {"reject", "queue"}:
            raise ValueError("policy must be 'reject' or 'queue'")
        self.policy = policy
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: dict[Hashable, int] = {}

    def in_flight(self, resource_id: Hashable) -> bool:
        lock = self._locks.get(resource_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def guard(
        self,
        resource_id: Hashable,
        operation: str | None = None,
        policy: str | None = None,
    ) -> AsyncGenerator[None, None]:
        """Hold exclusive access to ``resource_id`` for the block."""
        policy = policy or self.policy
        if policy == "reject" and self.in_flight(resource_id):
            raise ConflictingOperationError(resource_id, operation)

        lock = self._locks.setdefault(resource_id, asyncio.Lock())
        self._waiters[resource_id] = self._waiters.get(resource_id, 0) + 1
        try:
            if lock.locked():
                logger.debug("Queued %s behind in-flight work on %s", operation, resource_id)
            async with lock:
                yield
        finally:
            self._waiters[resource_id] -= 1
            if not self._waiters[resource_id]:
                del self._waiters[resource_id]
                self._locks.pop(resource_id, None)
