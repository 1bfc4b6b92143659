"""Pytest configuration and fixtures for Message Router tests."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from structlog.testing import capture_logs

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

# Set test environment
os.environ["ROUTER_ENV"] = "test"


@pytest.fixture(autouse=True)
def captured_logs():
    """Capture structlog events instead of printing them."""
    with capture_logs() as logs:
        yield logs


class FakeClock:
    """Controllable clock returning seconds as a float."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def build_message(
    text: str = "Hello, I need help with my order",
    email: str | None = "Customer@Example.com",
    classification: dict[str, Any] | None = None,
    organization_id: str = "org-1",
    message_id: str = "msg-1",
    metadata: dict[str, Any] | None = None,
):
    """Build a classified message."""
    from message_router.routing.models import Message

    data: dict[str, Any] = {
        "id": message_id,
        "conversationId": "conv-1",
        "organizationId": organization_id,
        "content": {"text": text},
        "sender": {"email": email},
        "metadata": metadata or {},
    }
    if classification is not None:
        data["classification"] = classification
    return Message.model_validate(data)


def build_rule(
    rule_id: str = "rule-1",
    conditions: list[dict[str, Any]] | None = None,
    actions: list[dict[str, Any]] | None = None,
    organization_id: str = "org-1",
    priority: int = 100,
    is_active: bool = True,
    name: str | None = None,
):
    """Build a routing rule from plain documents."""
    from message_router.routing.models import RoutingRule

    return RoutingRule.model_validate(
        {
            "id": rule_id,
            "name": name or f"Rule {rule_id}",
            "organizationId": organization_id,
            "priority": priority,
            "conditions": conditions or [],
            "actions": actions or [],
            "isActive": is_active,
        }
    )


@pytest.fixture
def clock() -> FakeClock:
    """Shared fake clock for cache and TTL tests."""
    return FakeClock()


@pytest.fixture
def make_message():
    """Factory for Message instances."""
    return build_message


@pytest.fixture
def make_rule():
    """Factory for RoutingRule instances."""
    return build_rule


@pytest.fixture
def classified_message():
    """A message carrying a full classification block."""
    return build_message(
        text="This is an URGENT issue with my invoice",
        classification={
            "category": "billing",
            "intent": "refund_request",
            "sentiment": {"label": "negative", "score": -0.7},
            "urgency": "critical",
            "confidence": 0.92,
        },
        metadata={"channel": "email", "vip": True},
    )


@pytest.fixture
def rule_store():
    """Counting in-memory rule store."""
    from message_router.routing.store import InMemoryRuleStore

    class CountingRuleStore(InMemoryRuleStore):
        def __init__(self):
            super().__init__()
            self.load_calls: list[str] = []

        async def load_rules(self, organization_id: str):
            self.load_calls.append(organization_id)
            return await super().load_rules(organization_id)

    return CountingRuleStore()


@pytest.fixture
def cache_backend(clock):
    """In-memory cache backend driven by the fake clock."""
    from message_router.routing.cache import InMemoryCacheBackend

    return InMemoryCacheBackend(clock=clock)


@pytest.fixture
def rule_cache(rule_store, cache_backend, clock):
    """Rule cache over the counting store."""
    from message_router.routing.cache import RuleCache

    return RuleCache(rule_store, cache_backend, ttl_seconds=300, clock=clock)


@pytest.fixture
def broker():
    """In-memory broker."""
    from message_router.broker import InMemoryBroker

    return InMemoryBroker()


@pytest.fixture
def conversation_state():
    """Conversation state collaborator recording calls."""
    from message_router.routing.actions import ConversationStateService

    class RecordingConversationState(ConversationStateService):
        def __init__(self):
            self.priorities: list[tuple[str, Any]] = []
            self.tags: list[tuple[str, list[str]]] = []
            self.fail = False

        async def set_priority(self, conversation_id, priority):
            if self.fail:
                raise ConnectionError("conversation service down")
            self.priorities.append((conversation_id, priority))

        async def add_tags(self, conversation_id, tags):
            if self.fail:
                raise ConnectionError("conversation service down")
            self.tags.append((conversation_id, tags))

    return RecordingConversationState()


@pytest.fixture
def executor(broker, conversation_state):
    """Action executor over the in-memory broker."""
    from message_router.routing.actions import ActionExecutor

    return ActionExecutor(broker=broker, conversation_state=conversation_state)


@pytest.fixture
def engine(rule_cache, executor):
    """Rule engine evaluating in store order."""
    from message_router.routing.engine import RuleEngine

    return RuleEngine(rule_cache=rule_cache, executor=executor)


# ============================================================================
# Async Database Fixtures
# ============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine with in-memory SQLite.

    Creates a fresh database for each test function.
    """
    from sqlalchemy.ext.asyncio import create_async_engine
    from sqlalchemy.pool import StaticPool

    from message_router.db.session import init_db

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    await init_db(engine)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine):
    """Session factory bound to the test engine."""
    from message_router.db.session import create_session_factory

    return create_session_factory(db_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def rule_repository(db_session):
    """Create RoutingRuleRepository instance for testing."""
    from message_router.db.repositories.routing_rules import RoutingRuleRepository

    return RoutingRuleRepository(db_session)
