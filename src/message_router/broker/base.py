"""Base Message Broker Interface.

Defines the work item format and the abstract broker the router
submits deferred work to. The router only produces; consumption,
retries and backoff belong to the broker and its workers.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


class Queues:
    """Logical queue names the router produces onto."""

    MESSAGE_ROUTING = "message.routing"
    WEBHOOK_DELIVERY = "webhook.delivery"
    MESSAGE_DELIVERY = "message.delivery"


DEFAULT_MAX_ATTEMPTS = 3


@dataclass
class WorkItem:
    """A unit of deferred work handed to the broker.

    Submission success does not mean the work completed.
    """

    id: str
    type: str
    payload: dict[str, Any]
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "type": self.type,
            "payload": self.payload,
            "attempts": self.attempts,
            "maxAttempts": self.max_attempts,
            "createdAt": self.created_at.isoformat(),
        }

    def to_json(self) -> str:
        """Serialize for transport."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkItem:
        """Rebuild a work item from to_dict() output."""
        created_at = data.get("createdAt")
        return cls(
            id=data["id"],
            type=data["type"],
            payload=data.get("payload") or {},
            attempts=data.get("attempts", 0),
            max_attempts=data.get("maxAttempts", DEFAULT_MAX_ATTEMPTS),
            created_at=(
                datetime.fromisoformat(created_at)
                if created_at
                else datetime.now(timezone.utc)
            ),
        )


class MessageBroker(ABC):
    """Abstract base class for message brokers.

    Implementations must be at-least-once: once submit() returns,
    the work item is durable as far as the broker guarantees.
    """

    @abstractmethod
    async def submit(self, queue_name: str, item: WorkItem) -> None:
        """Submit a work item to a queue.

        Args:
            queue_name: Logical queue name (see Queues)
            item: Work item to submit

        Raises:
            BrokerError: If the item was not accepted
        """

    async def close(self) -> None:
        """Release broker resources."""
