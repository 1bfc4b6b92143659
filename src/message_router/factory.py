"""Component factory.

Builds the cache backend, broker, rule store and rule engine from
configuration. Components are constructed explicitly and passed in;
there is no process-wide router instance.
"""

from __future__ import annotations

from message_router.broker import InMemoryBroker, MessageBroker, RedisBroker
from message_router.config import Settings, get_settings
from message_router.core.logging import get_logger
from message_router.routing.actions import ActionExecutor, ConversationStateService
from message_router.routing.cache import (
    CacheBackend,
    InMemoryCacheBackend,
    RedisCacheBackend,
    RuleCache,
)
from message_router.routing.conditions import ConditionEvaluator
from message_router.routing.engine import RuleEngine
from message_router.routing.processor import MessageRoutingProcessor
from message_router.routing.store import InMemoryRuleStore, RuleStore, SQLRuleStore

log = get_logger(__name__)


def create_cache_backend(settings: Settings | None = None) -> CacheBackend:
    """Create the configured cache backend."""
    settings = settings or get_settings()
    backend = settings.cache.backend.lower()

    if backend == "redis":
        log.info("Using Redis rule cache", url=settings.cache.redis_url)
        return RedisCacheBackend.from_url(settings.cache.redis_url)
    if backend != "memory":
        raise ValueError(f"Unknown cache backend: {settings.cache.backend}")
    return InMemoryCacheBackend()


def create_broker(settings: Settings | None = None) -> MessageBroker:
    """Create the configured message broker."""
    settings = settings or get_settings()
    backend = settings.broker.backend.lower()

    if backend == "redis":
        log.info("Using Redis broker", url=settings.broker.redis_url)
        return RedisBroker.from_url(
            settings.broker.redis_url,
            queue_prefix=settings.broker.queue_prefix,
        )
    if backend != "memory":
        raise ValueError(f"Unknown broker backend: {settings.broker.backend}")
    log.info("Broker disabled, using in-memory queues")
    return InMemoryBroker()


def create_rule_store(settings: Settings | None = None) -> RuleStore:
    """Create the configured rule store."""
    settings = settings or get_settings()
    backend = settings.rule_store.backend.lower()

    if backend == "sql":
        from message_router.db.session import get_session_factory

        return SQLRuleStore(get_session_factory(settings))
    if backend != "memory":
        raise ValueError(f"Unknown rule store backend: {settings.rule_store.backend}")
    return InMemoryRuleStore()


def create_rule_engine(
    settings: Settings | None = None,
    *,
    store: RuleStore | None = None,
    broker: MessageBroker | None = None,
    cache_backend: CacheBackend | None = None,
    conversation_state: ConversationStateService | None = None,
) -> RuleEngine:
    """Assemble a RuleEngine from settings.

    Any collaborator passed explicitly replaces the configured one.
    """
    settings = settings or get_settings()

    rule_cache = RuleCache(
        store=store or create_rule_store(settings),
        backend=cache_backend or create_cache_backend(settings),
        ttl_seconds=settings.cache.ttl_seconds,
        key_prefix=settings.cache.key_prefix,
        single_flight=settings.cache.single_flight,
    )
    executor = ActionExecutor(
        broker=broker or create_broker(settings),
        conversation_state=conversation_state,
        max_attempts=settings.broker.max_attempts,
        submit_timeout=settings.broker.submit_timeout_seconds,
        default_auto_response=settings.routing.default_auto_response,
    )
    return RuleEngine(
        rule_cache=rule_cache,
        executor=executor,
        evaluator=ConditionEvaluator(timezone=settings.routing.timezone),
        order_by_priority=settings.routing.order_by_priority,
    )


def create_processor(
    engine: RuleEngine,
    settings: Settings | None = None,
) -> MessageRoutingProcessor:
    """Create a processor recording results in the engine's cache backend."""
    settings = settings or get_settings()
    return MessageRoutingProcessor(
        engine=engine,
        result_cache=engine.rule_cache.backend,
        result_ttl_seconds=settings.cache.result_ttl_seconds,
    )
