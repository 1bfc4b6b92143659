"""Per-tenant rule cache.

Lookups are served from a cache backend while the entry is fresh and
reloaded from the rule store otherwise. Every entry carries its own
refresh marker, so freshness is always judged per tenant.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Callable

from pydantic import ValidationError as PydanticValidationError
import redis.asyncio as redis
from redis.exceptions import RedisError

from message_router.core.exceptions import CacheError, RuleLoadError
from message_router.core.logging import get_logger
from message_router.routing.models import RouterModel, RoutingRule
from message_router.routing.store import RuleStore

log = get_logger(__name__)

DEFAULT_TTL_SECONDS = 300
DEFAULT_KEY_PREFIX = "routing_rules"


# =============================================================================
# Cache Backends
# =============================================================================


class CacheBackend(ABC):
    """Key-value store with per-key TTL."""

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return the stored value or None if missing/expired.

        Raises:
            CacheError: If the backend cannot be read
        """

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        """Store a value for ttl_seconds.

        Raises:
            CacheError: If the backend cannot be written
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a key if present."""

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryCacheBackend(CacheBackend):
    """Process-local cache with per-key expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[bytes, float]] = {}

    async def get(self, key: str) -> bytes | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)


class RedisCacheBackend(CacheBackend):
    """Redis cache backend (shared between router processes)."""

    def __init__(self, redis_client: redis.Redis):
        """Initialize backend.

        Args:
            redis_client: Async Redis client
        """
        self._redis = redis_client

    @classmethod
    def from_url(cls, url: str) -> RedisCacheBackend:
        """Create a backend from a redis:// URL."""
        return cls(redis.Redis.from_url(url))

    async def get(self, key: str) -> bytes | None:
        try:
            value = await self._redis.get(key)
        except RedisError as e:
            raise CacheError("Cache read failed", details={"key": key}, cause=e) from e
        if isinstance(value, str):
            return value.encode()
        return value

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        try:
            await self._redis.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            raise CacheError("Cache write failed", details={"key": key}, cause=e) from e

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as e:
            raise CacheError("Cache delete failed", details={"key": key}, cause=e) from e

    async def close(self) -> None:
        await self._redis.aclose()


# =============================================================================
# Rule Cache
# =============================================================================


class CachedRuleSet(RouterModel):
    """Cache entry: a tenant's rules plus when they were loaded."""

    refreshed_at: float
    rules: list[RoutingRule]


class RuleCache:
    """TTL-bounded rule cache in front of a rule store.

    Returns exactly what the store provides; active filtering and
    ordering happen in the rule engine.

    Usage:
        cache = RuleCache(store, InMemoryCacheBackend())
        rules = await cache.get_rules("org-1")

        # After a rule edit
        await cache.invalidate("org-1")
    """

    def __init__(
        self,
        store: RuleStore,
        backend: CacheBackend,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        single_flight: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize rule cache.

        Args:
            store: Persistent rule store
            backend: Cache backend
            ttl_seconds: How long a loaded rule set is trusted
            key_prefix: Cache key prefix
            single_flight: Serialize reloads per tenant
            clock: Wall clock for refresh markers
        """
        self.store = store
        self.backend = backend
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self.single_flight = single_flight
        self._clock = clock
        # Reload locks exist only while some caller holds or awaits them
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def cache_key(self, organization_id: str) -> str:
        """Cache key for a tenant's rules."""
        return f"{self.key_prefix}:{organization_id}"

    async def get_rules(self, organization_id: str) -> list[RoutingRule]:
        """Get a tenant's rules, reloading on miss or staleness.

        Args:
            organization_id: Tenant identifier

        Returns:
            Rules in store order

        Raises:
            RuleLoadError: If the rules must be reloaded and the store fails
        """
        rules = await self._read(organization_id)
        if rules is not None:
            return rules

        if not self.single_flight:
            return await self._reload(organization_id)

        lock = self._locks.setdefault(organization_id, asyncio.Lock())
        self._lock_users[organization_id] = self._lock_users.get(organization_id, 0) + 1
        try:
            async with lock:
                # Another caller may have reloaded while we waited
                rules = await self._read(organization_id)
                if rules is not None:
                    return rules
                return await self._reload(organization_id)
        finally:
            self._release_lock(organization_id)

    def _release_lock(self, organization_id: str) -> None:
        users = self._lock_users[organization_id] - 1
        if users:
            self._lock_users[organization_id] = users
        else:
            del self._lock_users[organization_id]
            del self._locks[organization_id]

    async def refresh(self, organization_id: str) -> list[RoutingRule]:
        """Force a reload from the store."""
        return await self._reload(organization_id)

    async def invalidate(self, organization_id: str) -> None:
        """Drop a tenant's cached rules."""
        await self.backend.delete(self.cache_key(organization_id))
        log.info("Routing rules invalidated", organizationId=organization_id)

    def is_fresh(self, entry: CachedRuleSet) -> bool:
        """Whether a cache entry is inside its TTL window."""
        return self._clock() - entry.refreshed_at < self.ttl_seconds

    async def _read(self, organization_id: str) -> list[RoutingRule] | None:
        key = self.cache_key(organization_id)
        try:
            payload = await self.backend.get(key)
        except CacheError as e:
            log.warning("Rule cache read failed, loading from store", key=key, error=str(e))
            return None

        if payload is None:
            return None

        try:
            entry = CachedRuleSet.model_validate_json(payload)
        except PydanticValidationError as e:
            log.warning("Discarding unreadable rule cache entry", key=key, error=str(e))
            return None

        if not self.is_fresh(entry):
            return None
        return entry.rules

    async def _reload(self, organization_id: str) -> list[RoutingRule]:
        try:
            rules = await self.store.load_rules(organization_id)
        except RuleLoadError:
            raise
        except Exception as e:
            raise RuleLoadError(
                "Failed to load routing rules",
                details={"organizationId": organization_id},
                cause=e,
            ) from e

        entry = CachedRuleSet(refreshed_at=self._clock(), rules=rules)
        key = self.cache_key(organization_id)
        try:
            await self.backend.set(
                key,
                entry.model_dump_json(by_alias=True).encode(),
                self.ttl_seconds,
            )
        except CacheError as e:
            log.warning("Rule cache write failed", key=key, error=str(e))

        log.debug(
            "Routing rules loaded",
            organizationId=organization_id,
            ruleCount=len(rules),
        )
        return list(rules)
