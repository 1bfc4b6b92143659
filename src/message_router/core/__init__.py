"""Core building blocks shared by the router components."""

from message_router.core.exceptions import (
    MessageRouterError,
    RuleLoadError,
    RuleValidationError,
    ConditionEvaluationError,
    ActionDispatchError,
    BrokerError,
    CacheError,
    wrap_exception,
)
from message_router.core.logging import get_logger, routing_context, setup_logging

__all__ = [
    # Exceptions
    "MessageRouterError",
    "RuleLoadError",
    "RuleValidationError",
    "ConditionEvaluationError",
    "ActionDispatchError",
    "BrokerError",
    "CacheError",
    "wrap_exception",
    # Logging
    "get_logger",
    "routing_context",
    "setup_logging",
]
