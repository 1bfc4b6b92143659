"""Message broker adapters.

- MessageBroker: abstract producer interface
- InMemoryBroker: development and tests
- RedisBroker: Redis list queues
"""

from message_router.broker.base import DEFAULT_MAX_ATTEMPTS, MessageBroker, Queues, WorkItem
from message_router.broker.memory import InMemoryBroker
from message_router.broker.redis import RedisBroker

__all__ = [
    "DEFAULT_MAX_ATTEMPTS",
    "MessageBroker",
    "Queues",
    "WorkItem",
    "InMemoryBroker",
    "RedisBroker",
]
