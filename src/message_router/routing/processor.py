"""Routing entry points used by the message pipeline.

Routes messages once they are classified and records each routing
result for later lookup.
"""

from __future__ import annotations

import json
from typing import Any, Iterable

from message_router.core.exceptions import CacheError, RuleLoadError
from message_router.core.logging import get_logger
from message_router.routing.cache import CacheBackend
from message_router.routing.engine import RuleEngine
from message_router.routing.models import Message, RoutingResult

log = get_logger(__name__)

RESULT_KEY_PREFIX = "processing_result"
DEFAULT_RESULT_TTL_SECONDS = 3600


class MessageRoutingProcessor:
    """Routes messages and records the outcome.

    Usage:
        processor = MessageRoutingProcessor(engine, result_cache)
        result = await processor.process(message)
    """

    def __init__(
        self,
        engine: RuleEngine,
        result_cache: CacheBackend,
        result_ttl_seconds: int = DEFAULT_RESULT_TTL_SECONDS,
        reroute_urgencies: Iterable[str] = ("urgent",),
        reroute_categories: Iterable[str] = ("complaint",),
    ):
        """Initialize processor.

        Args:
            engine: Rule engine
            result_cache: Backend the results are recorded in
            result_ttl_seconds: How long results are kept
            reroute_urgencies: Urgencies that trigger re-routing after classification
            reroute_categories: Categories that trigger re-routing after classification
        """
        self.engine = engine
        self.result_cache = result_cache
        self.result_ttl_seconds = result_ttl_seconds
        self.reroute_urgencies = frozenset(reroute_urgencies)
        self.reroute_categories = frozenset(reroute_categories)

    @staticmethod
    def result_key(message_id: str) -> str:
        """Cache key of a recorded routing result."""
        return f"{RESULT_KEY_PREFIX}:{message_id}"

    async def process(self, message: Message) -> RoutingResult:
        """Route a message and record the result.

        Raises:
            RuleLoadError: Routing is deferred; the message is kept by the caller
        """
        try:
            result = await self.engine.route(message)
        except RuleLoadError as e:
            log.warning(
                "Routing deferred",
                messageId=message.id,
                organizationId=message.organization_id,
                error=str(e),
            )
            raise

        await self._record(result)
        return result

    async def on_classified(self, message: Message) -> RoutingResult | None:
        """Re-route after a new classification arrives, when it matters.

        Returns:
            RoutingResult, or None when the classification does not
            call for re-routing
        """
        if not self.needs_reroute(message):
            return None
        return await self.process(message)

    def needs_reroute(self, message: Message) -> bool:
        """Whether a message's classification calls for re-routing."""
        classification = message.classification
        if classification is None:
            return False
        return (
            classification.urgency in self.reroute_urgencies
            or classification.category in self.reroute_categories
        )

    async def get_result(self, message_id: str) -> dict[str, Any] | None:
        """Read back a recorded routing result."""
        payload = await self.result_cache.get(self.result_key(message_id))
        if payload is None:
            return None
        return json.loads(payload)

    async def _record(self, result: RoutingResult) -> None:
        key = self.result_key(result.message_id)
        try:
            await self.result_cache.set(
                key,
                json.dumps(result.to_dict()).encode(),
                self.result_ttl_seconds,
            )
        except CacheError as e:
            log.warning("Failed to record routing result", key=key, error=str(e))
