"""Message Router Exception Hierarchy.

Provides structured error handling with context preservation.
Only RuleLoadError is meant to cross the routing boundary; the
other errors are recorded per action or absorbed into a result.
"""

from __future__ import annotations

from typing import Any


class MessageRouterError(Exception):
    """Base exception for all message router errors.

    Provides:
    - Structured error context
    - Stable error codes
    - Logging-friendly representation
    """

    error_code: str = "MESSAGE_ROUTER_ERROR"

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Additional context for debugging
            cause: Original exception if wrapping
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert to a serializable dictionary."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.cause:
            result["cause"] = str(self.cause)
        return result

    def __str__(self) -> str:
        """String representation for logging."""
        parts = [f"{self.error_code}: {self.message}"]
        if self.details:
            parts.append(f"details={self.details}")
        if self.cause:
            parts.append(f"cause={self.cause}")
        return " | ".join(parts)


# =============================================================================
# Routing Errors
# =============================================================================


class RuleLoadError(MessageRouterError):
    """Rule set for a tenant could not be loaded.

    Fatal to a single route() call. Callers should treat it as
    "routing deferred", the message itself is not lost.
    """

    error_code = "RULE_SET_UNAVAILABLE"


class RuleValidationError(MessageRouterError):
    """Rule document failed validation."""

    error_code = "RULE_VALIDATION_ERROR"


class ConditionEvaluationError(MessageRouterError):
    """Condition could not be evaluated.

    Never surfaced to callers, always normalized to "condition not met".
    """

    error_code = "CONDITION_EVALUATION_ERROR"


class ActionDispatchError(MessageRouterError):
    """A single routing action failed to apply or submit."""

    error_code = "ACTION_DISPATCH_ERROR"


# =============================================================================
# Infrastructure Errors
# =============================================================================


class BrokerError(MessageRouterError):
    """Work item could not be submitted to the broker."""

    error_code = "BROKER_ERROR"


class CacheError(MessageRouterError):
    """Cache backend read or write failed."""

    error_code = "CACHE_ERROR"


# =============================================================================
# Utility Functions
# =============================================================================


def wrap_exception(
    exc: Exception,
    wrapper_class: type[MessageRouterError] = MessageRouterError,
    message: str | None = None,
    **details: Any,
) -> MessageRouterError:
    """Wrap a generic exception in a MessageRouterError.

    Args:
        exc: Original exception to wrap
        wrapper_class: MessageRouterError subclass to use
        message: Override message (defaults to str(exc))
        **details: Additional context details

    Returns:
        Wrapped MessageRouterError instance
    """
    return wrapper_class(
        message=message or str(exc),
        details=details or None,
        cause=exc,
    )
