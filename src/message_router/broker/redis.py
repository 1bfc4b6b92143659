"""Redis-backed broker.

Work items are JSON-encoded and pushed onto one Redis list per queue
(key = prefix + queue name). Workers pop from the other end.
"""

from __future__ import annotations

import redis.asyncio as redis
from redis.exceptions import RedisError

from message_router.broker.base import MessageBroker, WorkItem
from message_router.core.exceptions import BrokerError
from message_router.core.logging import get_logger

log = get_logger(__name__)


class RedisBroker(MessageBroker):
    """Redis list broker.

    Usage:
        broker = RedisBroker.from_url("redis://localhost:6379/0")
        await broker.submit(Queues.WEBHOOK_DELIVERY, item)
    """

    def __init__(self, redis_client: redis.Redis, queue_prefix: str = "queue:"):
        """Initialize broker.

        Args:
            redis_client: Async Redis client
            queue_prefix: Prefix for queue list keys
        """
        self._redis = redis_client
        self._queue_prefix = queue_prefix

    @classmethod
    def from_url(cls, url: str, queue_prefix: str = "queue:") -> RedisBroker:
        """Create a broker from a redis:// URL."""
        return cls(redis.Redis.from_url(url), queue_prefix=queue_prefix)

    def queue_key(self, queue_name: str) -> str:
        """Redis key of a queue list."""
        return f"{self._queue_prefix}{queue_name}"

    async def submit(self, queue_name: str, item: WorkItem) -> None:
        key = self.queue_key(queue_name)
        try:
            await self._redis.lpush(key, item.to_json())
        except RedisError as e:
            raise BrokerError(
                "Failed to submit work item",
                details={"queue": queue_name, "workItemId": item.id},
                cause=e,
            ) from e
        log.debug("Work item queued", queue=queue_name, workItemId=item.id, type=item.type)

    async def close(self) -> None:
        await self._redis.aclose()
