"""Routing domain models.

Rules, conditions and messages are pydantic models so that documents
coming from the rule store, the cache or the upstream pipeline are
validated on the way in. Input accepts both snake_case names and their
camelCase aliases (organizationId, conversationId, agentId, ...).

Actions form a closed set: one model per action type, discriminated
on ``type``, each carrying its own typed parameters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    Field,
    TypeAdapter,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from message_router.core.exceptions import RuleValidationError


DEFAULT_RULE_PRIORITY = 100


class RouterModel(BaseModel):
    """Base model accepting snake_case names and camelCase aliases."""

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


# =============================================================================
# Conditions
# =============================================================================


class ConditionType(str, Enum):
    """Where the actual value of a condition is read from."""

    CONTENT_CONTAINS = "content_contains"
    SENDER_EMAIL = "sender_email"
    AI_CLASSIFICATION = "ai_classification"
    SENTIMENT = "sentiment"
    URGENCY = "urgency"
    TIME_OF_DAY = "time_of_day"
    CUSTOM = "custom"


class ConditionOperator(str, Enum):
    """Comparison applied between actual and expected value."""

    EQUALS = "equals"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    REGEX = "regex"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN = "in"
    NOT_IN = "not_in"


class RoutingCondition(RouterModel):
    """One atomic test a rule requires."""

    type: ConditionType
    operator: ConditionOperator
    value: Any = None
    field: str | None = None  # sub-path for ai_classification / custom


# =============================================================================
# Actions
# =============================================================================


class AssignToAgentParameters(RouterModel):
    agent_id: str


class AssignToTeamParameters(RouterModel):
    team_id: str


class SetPriorityParameters(RouterModel):
    priority: str | int


class AddTagsParameters(RouterModel):
    tags: list[str]


class TriggerWebhookParameters(RouterModel):
    url: str
    event: str = "message.routed"


class AutoRespondParameters(RouterModel):
    template: str | None = None


class EscalateParameters(RouterModel):
    level: int = 1
    reason: str | None = None


class AssignToAgentAction(RouterModel):
    """Queue an assignment of the message to one agent."""

    type: Literal["assign_to_agent"] = "assign_to_agent"
    parameters: AssignToAgentParameters


class AssignToTeamAction(RouterModel):
    """Assign to a team (logged only)."""

    type: Literal["assign_to_team"] = "assign_to_team"
    parameters: AssignToTeamParameters


class SetPriorityAction(RouterModel):
    """Set the conversation priority."""

    type: Literal["set_priority"] = "set_priority"
    parameters: SetPriorityParameters


class AddTagsAction(RouterModel):
    """Tag the conversation."""

    type: Literal["add_tags"] = "add_tags"
    parameters: AddTagsParameters


class TriggerWebhookAction(RouterModel):
    """Queue a webhook delivery."""

    type: Literal["trigger_webhook"] = "trigger_webhook"
    parameters: TriggerWebhookParameters


class AutoRespondAction(RouterModel):
    """Queue an outbound auto-response."""

    type: Literal["auto_respond"] = "auto_respond"
    parameters: AutoRespondParameters = Field(default_factory=AutoRespondParameters)


class EscalateAction(RouterModel):
    """Escalate the message (logged only)."""

    type: Literal["escalate"] = "escalate"
    parameters: EscalateParameters = Field(default_factory=EscalateParameters)


class InvalidAction(RouterModel):
    """Stored action document that failed validation.

    Only produced when rules are loaded from a store. The rest of the
    rule still applies; the executor reports this entry as a failed
    action.
    """

    type: Literal["invalid"] = "invalid"
    declared_type: str | None = None
    document: dict[str, Any] = Field(default_factory=dict)
    error: str = ""


RoutingAction = Annotated[
    Union[
        AssignToAgentAction,
        AssignToTeamAction,
        SetPriorityAction,
        AddTagsAction,
        TriggerWebhookAction,
        AutoRespondAction,
        EscalateAction,
        InvalidAction,
    ],
    Field(discriminator="type"),
]

ACTION_ADAPTER: TypeAdapter[RoutingAction] = TypeAdapter(RoutingAction)

# Validation context key: keep a rule whose actions are partly invalid
LENIENT_ACTIONS = "lenient_actions"


def _error_summary(error: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'action'}: {err['msg']}"
        for err in error.errors(include_url=False)
    )


def action_or_invalid(document: Any) -> RoutingAction:
    """Validate one action document, wrapping failures in InvalidAction."""
    try:
        return ACTION_ADAPTER.validate_python(document)
    except PydanticValidationError as e:
        is_dict = isinstance(document, dict)
        declared = document.get("type") if is_dict else None
        return InvalidAction(
            declared_type=declared if isinstance(declared, str) else None,
            document=document if is_dict else {},
            error=_error_summary(e),
        )


# =============================================================================
# Rules
# =============================================================================


class RoutingRule(RouterModel):
    """Tenant-scoped predicate plus the actions to apply when it holds.

    All conditions must match (AND). An empty condition list matches
    every message.
    """

    id: str
    name: str
    organization_id: str
    priority: int = DEFAULT_RULE_PRIORITY
    conditions: list[RoutingCondition] = Field(default_factory=list)
    actions: list[RoutingAction] = Field(default_factory=list)
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("actions", mode="wrap")
    @classmethod
    def validate_actions(
        cls,
        value: Any,
        handler: ValidatorFunctionWrapHandler,
        info: ValidationInfo,
    ) -> Any:
        # Store loads validate each action on its own
        if not (info.context or {}).get(LENIENT_ACTIONS) or not isinstance(value, list):
            return handler(value)
        return [action_or_invalid(item) for item in value]


RULE_LIST_ADAPTER: TypeAdapter[list[RoutingRule]] = TypeAdapter(list[RoutingRule])


def parse_rules(data: Any) -> list[RoutingRule]:
    """Validate a list of rule documents.

    Args:
        data: List of dicts (or RoutingRule instances)

    Returns:
        Validated rules, order preserved

    Raises:
        RuleValidationError: If any rule document is invalid
    """
    try:
        return RULE_LIST_ADAPTER.validate_python(data)
    except PydanticValidationError as e:
        raise RuleValidationError(
            "Invalid routing rule document",
            details={"errors": e.errors(include_url=False)},
            cause=e,
        ) from e


# =============================================================================
# Messages (read-only input)
# =============================================================================


class MessageContent(RouterModel):
    model_config = {"frozen": True}

    text: str = ""


class MessageSender(RouterModel):
    model_config = {"frozen": True}

    email: str | None = None
    name: str | None = None
    phone: str | None = None


class Sentiment(RouterModel):
    model_config = {"frozen": True}

    label: str | None = None
    score: float | None = None


class Classification(RouterModel):
    """Annotations attached by the upstream classifier.

    Unknown keys are kept so ai_classification conditions can
    address any field the classifier emits.
    """

    model_config = {"frozen": True, "extra": "allow"}

    category: str | None = None
    intent: str | None = None
    sentiment: Sentiment | None = None
    urgency: str | None = None
    confidence: float | None = None


class Message(RouterModel):
    """Classified customer message. The router only reads it."""

    model_config = {"frozen": True}

    id: str
    conversation_id: str
    organization_id: str
    content: MessageContent = Field(default_factory=MessageContent)
    sender: MessageSender = Field(default_factory=MessageSender)
    classification: Classification | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Results
# =============================================================================


def _action_to_dict(action: RoutingAction) -> dict[str, Any]:
    return action.model_dump(by_alias=True, mode="json")


@dataclass
class ActionFailure:
    """An action that raised while being applied."""

    action: RoutingAction
    error_code: str
    error: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "action": _action_to_dict(self.action),
            "errorCode": self.error_code,
            "error": self.error,
        }


@dataclass
class PartialRoutingResult:
    """Fields produced by the action executor."""

    executed: list[RoutingAction] = field(default_factory=list)
    failures: list[ActionFailure] = field(default_factory=list)
    assigned_to: str | None = None
    priority: str | int | None = None
    tags: list[str] | None = None
    auto_response: str | None = None
    webhook_triggered: bool = False


@dataclass
class RoutingResult:
    """Outcome of a single route() call.

    applied_rules and actions are append-only logs of this invocation.
    Actions that raised are listed in failed_actions, never dropped.
    """

    message_id: str
    applied_rules: list[str] = field(default_factory=list)
    actions: list[RoutingAction] = field(default_factory=list)
    failed_actions: list[ActionFailure] = field(default_factory=list)
    assigned_to: str | None = None
    priority: str | int | None = None
    tags: list[str] | None = None
    auto_response: str | None = None
    webhook_triggered: bool = False
    processing_time: float = 0.0  # milliseconds

    @classmethod
    def from_partial(
        cls,
        message_id: str,
        applied_rules: list[str],
        partial: PartialRoutingResult,
        processing_time: float = 0.0,
    ) -> RoutingResult:
        """Merge executor output into a full result."""
        return cls(
            message_id=message_id,
            applied_rules=list(applied_rules),
            actions=list(partial.executed),
            failed_actions=list(partial.failures),
            assigned_to=partial.assigned_to,
            priority=partial.priority,
            tags=partial.tags,
            auto_response=partial.auto_response,
            webhook_triggered=partial.webhook_triggered,
            processing_time=processing_time,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "messageId": self.message_id,
            "appliedRules": list(self.applied_rules),
            "actions": [_action_to_dict(a) for a in self.actions],
            "failedActions": [f.to_dict() for f in self.failed_actions],
            "assignedTo": self.assigned_to,
            "priority": self.priority,
            "tags": self.tags,
            "autoResponse": self.auto_response,
            "webhookTriggered": self.webhook_triggered,
            "processingTime": self.processing_time,
        }
