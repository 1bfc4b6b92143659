"""Rule-based message routing.

- ConditionEvaluator: evaluates one condition against a message
- RuleCache: per-tenant, TTL-bounded rule cache over a RuleStore
- RuleEngine: matches rules and accumulates their actions
- ActionExecutor: applies actions, isolating per-action failures
- MessageRoutingProcessor: pipeline entry point recording results
"""

from message_router.routing.models import (
    ConditionOperator,
    ConditionType,
    Classification,
    Message,
    RoutingAction,
    RoutingCondition,
    RoutingResult,
    RoutingRule,
    parse_rules,
)
from message_router.routing.conditions import ConditionEvaluator
from message_router.routing.store import InMemoryRuleStore, RuleStore, SQLRuleStore
from message_router.routing.cache import (
    CacheBackend,
    InMemoryCacheBackend,
    RedisCacheBackend,
    RuleCache,
)
from message_router.routing.actions import (
    ActionExecutor,
    ConversationStateService,
    LoggingConversationState,
)
from message_router.routing.engine import RuleEngine
from message_router.routing.processor import MessageRoutingProcessor

__all__ = [
    # Models
    "ConditionOperator",
    "ConditionType",
    "Classification",
    "Message",
    "RoutingAction",
    "RoutingCondition",
    "RoutingResult",
    "RoutingRule",
    "parse_rules",
    # Components
    "ConditionEvaluator",
    "RuleStore",
    "InMemoryRuleStore",
    "SQLRuleStore",
    "CacheBackend",
    "InMemoryCacheBackend",
    "RedisCacheBackend",
    "RuleCache",
    "ActionExecutor",
    "ConversationStateService",
    "LoggingConversationState",
    "RuleEngine",
    "MessageRoutingProcessor",
]
