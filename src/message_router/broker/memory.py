"""In-process broker for development and tests."""

from __future__ import annotations

import asyncio
from collections import defaultdict

from message_router.broker.base import MessageBroker, WorkItem
from message_router.core.exceptions import BrokerError
from message_router.core.logging import get_logger

log = get_logger(__name__)


class InMemoryBroker(MessageBroker):
    """Broker keeping one asyncio.Queue per queue name.

    Also records every accepted submission in order, which makes it
    convenient to assert on in tests.
    """

    def __init__(self) -> None:
        self._queues: dict[str, asyncio.Queue[WorkItem]] = defaultdict(asyncio.Queue)
        self.submitted: list[tuple[str, WorkItem]] = []
        self.available = True

    async def submit(self, queue_name: str, item: WorkItem) -> None:
        if not self.available:
            raise BrokerError(
                "Broker unavailable",
                details={"queue": queue_name, "workItemId": item.id},
            )
        await self._queues[queue_name].put(item)
        self.submitted.append((queue_name, item))
        log.debug("Work item queued", queue=queue_name, workItemId=item.id, type=item.type)

    def pending(self, queue_name: str) -> int:
        """Number of items waiting on a queue."""
        return self._queues[queue_name].qsize()

    async def receive(self, queue_name: str) -> WorkItem:
        """Take the next item from a queue (waits if empty)."""
        return await self._queues[queue_name].get()

    def items(self, queue_name: str) -> list[WorkItem]:
        """All items ever submitted to a queue, in order."""
        return [item for name, item in self.submitted if name == queue_name]
