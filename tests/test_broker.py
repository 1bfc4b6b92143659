"""Tests for message broker adapters."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from message_router.broker import InMemoryBroker, Queues, RedisBroker, WorkItem
from message_router.core.exceptions import BrokerError


@pytest.fixture
def work_item():
    return WorkItem(
        id="webhook-msg-1-1700000000000",
        type="webhook.trigger",
        payload={"messageId": "msg-1", "webhookUrl": "https://hooks.example.com/x"},
    )


class TestWorkItem:
    """Tests for the work item format."""

    def test_to_dict(self, work_item):
        """Test camelCase transport keys."""
        data = work_item.to_dict()

        assert data["id"] == "webhook-msg-1-1700000000000"
        assert data["attempts"] == 0
        assert data["maxAttempts"] == 3
        assert "createdAt" in data

    def test_from_dict(self, work_item):
        """Test rebuilding from transport form."""
        restored = WorkItem.from_dict(json.loads(work_item.to_json()))

        assert restored == work_item


class TestInMemoryBroker:
    """Tests for the in-process broker."""

    @pytest.mark.asyncio
    async def test_submit_and_receive(self, work_item):
        """Test items are queued per queue name."""
        broker = InMemoryBroker()

        await broker.submit(Queues.WEBHOOK_DELIVERY, work_item)

        assert broker.pending(Queues.WEBHOOK_DELIVERY) == 1
        assert broker.pending(Queues.MESSAGE_DELIVERY) == 0
        assert await broker.receive(Queues.WEBHOOK_DELIVERY) is work_item
        assert broker.pending(Queues.WEBHOOK_DELIVERY) == 0
        assert broker.items(Queues.WEBHOOK_DELIVERY) == [work_item]

    @pytest.mark.asyncio
    async def test_unavailable(self, work_item):
        """Test an unavailable broker rejects submissions."""
        broker = InMemoryBroker()
        broker.available = False

        with pytest.raises(BrokerError) as exc_info:
            await broker.submit(Queues.WEBHOOK_DELIVERY, work_item)

        assert exc_info.value.details["queue"] == Queues.WEBHOOK_DELIVERY
        assert broker.submitted == []


class TestRedisBroker:
    """Tests for the Redis broker with a mocked client."""

    @pytest.fixture
    def redis_client(self):
        return AsyncMock()

    @pytest.mark.asyncio
    async def test_submit_pushes_json(self, redis_client, work_item):
        """Test items are pushed onto the prefixed list."""
        broker = RedisBroker(redis_client)

        await broker.submit(Queues.WEBHOOK_DELIVERY, work_item)

        key, payload = redis_client.lpush.await_args.args
        assert key == "queue:webhook.delivery"
        assert json.loads(payload)["id"] == work_item.id

    def test_queue_prefix(self, redis_client):
        """Test custom queue prefixes."""
        broker = RedisBroker(redis_client, queue_prefix="router:")

        assert broker.queue_key(Queues.MESSAGE_ROUTING) == "router:message.routing"

    @pytest.mark.asyncio
    async def test_redis_error_becomes_broker_error(self, redis_client, work_item):
        """Test Redis failures are wrapped."""
        redis_client.lpush.side_effect = RedisConnectionError("refused")
        broker = RedisBroker(redis_client)

        with pytest.raises(BrokerError) as exc_info:
            await broker.submit(Queues.WEBHOOK_DELIVERY, work_item)

        assert isinstance(exc_info.value.cause, RedisConnectionError)

    @pytest.mark.asyncio
    async def test_close(self, redis_client):
        """Test closing releases the client."""
        await RedisBroker(redis_client).close()

        redis_client.aclose.assert_awaited_once()
