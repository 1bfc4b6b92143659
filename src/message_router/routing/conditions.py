"""Condition evaluation for routing rules.

Derives the actual value for a condition from the message and applies
the condition's operator to it. Evaluation never raises: malformed
patterns, failed coercions and missing values all mean "not met".
"""

from __future__ import annotations

import math
import re
from datetime import datetime, tzinfo
from typing import Any, Callable, Mapping, Sequence
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from message_router.core.exceptions import ConditionEvaluationError
from message_router.core.logging import get_logger
from message_router.routing.models import (
    ConditionOperator,
    ConditionType,
    Message,
    RoutingCondition,
)

log = get_logger(__name__)

DEFAULT_CLASSIFICATION_FIELD = "category"


def resolve_path(obj: Any, path: str) -> Any:
    """Follow a dotted path through models and mappings.

    Each segment may be a model attribute, one of its camelCase aliases,
    a mapping key or a list index. Missing segments resolve to None.

    Args:
        obj: Root object
        path: Dotted path, e.g. "metadata.channel"

    Returns:
        Value at the path or None
    """
    if not path:
        return None

    value = obj
    for part in path.split("."):
        if value is None:
            return None
        value = _get_part(value, part)
    return value


def _get_part(value: Any, part: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(part)

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        if not part.isdigit():
            return None
        index = int(part)
        return value[index] if index < len(value) else None

    if isinstance(value, BaseModel):
        fields = type(value).model_fields
        if part in fields:
            return getattr(value, part)
        for name, info in fields.items():
            if info.alias == part:
                return getattr(value, name)
        extra = value.model_extra or {}
        return extra.get(part)

    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def strict_equals(actual: Any, expected: Any) -> bool:
    """Equality without cross-type coercion.

    Booleans never equal numbers, ints and floats compare numerically,
    anything else must share a type.
    """
    if _is_number(actual) and _is_number(expected):
        return actual == expected
    if type(actual) is not type(expected):
        return False
    return actual == expected


def to_text(value: Any) -> str:
    """Render a value the way rule documents expect it as text.

    Booleans are "true"/"false", None is "null", whole floats drop
    their fractional part and lists are joined with commas, so a
    JSON literal in a rule compares against the same spelling.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return "[object Object]"
    if isinstance(value, Sequence) and not isinstance(value, bytes):
        # Missing list entries render as empty strings
        return ",".join("" if item is None else to_text(item) for item in value)
    return str(value)


def to_number(value: Any) -> float:
    """Coerce a value for greater_than / less_than.

    None, empty strings and whitespace are 0; booleans are 1 and 0.

    Raises:
        ConditionEvaluationError: If the value has no numeric reading
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        value = text
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ConditionEvaluationError(
            f"Cannot compare {value!r} as a number", cause=e
        ) from e
    if math.isnan(number):
        raise ConditionEvaluationError(f"Cannot compare {value!r} as a number")
    return number


class ConditionEvaluator:
    """Evaluates single routing conditions against a message.

    Field derivation:
        content_contains   message.content.text, lower-cased
        sender_email       message.sender.email, lower-cased
        ai_classification  message.classification[field or "category"]
        sentiment          message.classification.sentiment.label
        urgency            message.classification.urgency
        time_of_day        current hour (0-23)
        custom             dotted path into the message using field

    Only the message side is lower-cased. Rule authors write lowercase
    literals for case-insensitive matching.

    Usage:
        evaluator = ConditionEvaluator(timezone="Europe/Berlin")
        if evaluator.evaluate(condition, message):
            ...
    """

    def __init__(
        self,
        timezone: str | tzinfo | None = None,
        clock: Callable[[tzinfo | None], datetime] | None = None,
    ):
        """Initialize evaluator.

        Args:
            timezone: IANA name or tzinfo for time_of_day (None = local time)
            clock: Returns the current datetime for a tz, for tests
        """
        if isinstance(timezone, str):
            timezone = ZoneInfo(timezone)
        self._tz = timezone
        self._clock = clock or (lambda tz: datetime.now(tz))

    def evaluate(self, condition: RoutingCondition, message: Message) -> bool:
        """Check whether a condition holds for a message.

        Args:
            condition: Condition to test
            message: Classified message

        Returns:
            True if the condition is met, False otherwise (including errors)
        """
        try:
            actual = self.actual_value(condition, message)
            # Absent values never match, whatever the operator.
            if actual is None:
                return False
            return self.apply_operator(actual, condition.operator, condition.value)
        except ConditionEvaluationError as e:
            log.debug(
                "Condition evaluation failed",
                messageId=message.id,
                conditionType=str(condition.type.value),
                operator=str(condition.operator.value),
                error=str(e),
            )
            return False
        except Exception as e:
            log.warning(
                "Unexpected error evaluating condition",
                messageId=message.id,
                conditionType=str(condition.type.value),
                error=str(e),
            )
            return False

    def actual_value(self, condition: RoutingCondition, message: Message) -> Any:
        """Derive the value a condition is tested against."""
        classification = message.classification

        match condition.type:
            case ConditionType.CONTENT_CONTAINS:
                text = message.content.text
                return text.lower() if text is not None else None
            case ConditionType.SENDER_EMAIL:
                email = message.sender.email
                return email.lower() if email is not None else None
            case ConditionType.AI_CLASSIFICATION:
                if classification is None:
                    return None
                return resolve_path(
                    classification, condition.field or DEFAULT_CLASSIFICATION_FIELD
                )
            case ConditionType.SENTIMENT:
                if classification is None or classification.sentiment is None:
                    return None
                return classification.sentiment.label
            case ConditionType.URGENCY:
                if classification is None:
                    return None
                return classification.urgency
            case ConditionType.TIME_OF_DAY:
                return self._clock(self._tz).hour
            case ConditionType.CUSTOM:
                return resolve_path(message, condition.field or "")
            case _:
                return None

    def apply_operator(
        self,
        actual: Any,
        operator: ConditionOperator,
        expected: Any,
    ) -> bool:
        """Compare an actual value with the condition's literal.

        Raises:
            ConditionEvaluationError: If the comparison cannot be made
        """
        match operator:
            case ConditionOperator.EQUALS:
                return strict_equals(actual, expected)
            case ConditionOperator.CONTAINS:
                return to_text(expected) in to_text(actual)
            case ConditionOperator.STARTS_WITH:
                return to_text(actual).startswith(to_text(expected))
            case ConditionOperator.ENDS_WITH:
                return to_text(actual).endswith(to_text(expected))
            case ConditionOperator.REGEX:
                try:
                    pattern = re.compile(to_text(expected))
                except re.error as e:
                    raise ConditionEvaluationError(
                        f"Invalid pattern {expected!r}", cause=e
                    ) from e
                return pattern.search(to_text(actual)) is not None
            case ConditionOperator.GREATER_THAN:
                return to_number(actual) > to_number(expected)
            case ConditionOperator.LESS_THAN:
                return to_number(actual) < to_number(expected)
            case ConditionOperator.IN:
                if not isinstance(expected, list):
                    return False
                return any(strict_equals(actual, item) for item in expected)
            case ConditionOperator.NOT_IN:
                if not isinstance(expected, list):
                    return False
                return not any(strict_equals(actual, item) for item in expected)
            case _:
                return False
