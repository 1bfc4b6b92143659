"""Action execution for matched routing rules.

Each action is applied independently and in order: a failing action
is logged and recorded, and execution moves on to the next one.
Broker-backed actions are submitted, not completed; the result only
reflects what was handed off.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from message_router.broker.base import DEFAULT_MAX_ATTEMPTS, MessageBroker, Queues, WorkItem
from message_router.core.exceptions import ActionDispatchError, wrap_exception
from message_router.core.logging import get_logger
from message_router.routing.models import (
    ActionFailure,
    AddTagsAction,
    AssignToAgentAction,
    AssignToTeamAction,
    AutoRespondAction,
    EscalateAction,
    InvalidAction,
    Message,
    PartialRoutingResult,
    RoutingAction,
    SetPriorityAction,
    TriggerWebhookAction,
)

log = get_logger(__name__)

DEFAULT_AUTO_RESPONSE = "Thank you for your message. We will get back to you soon."
DEFAULT_SUBMIT_TIMEOUT = 5.0


class ConversationStateService(ABC):
    """Owner of conversation state (priority, tags)."""

    @abstractmethod
    async def set_priority(self, conversation_id: str, priority: str | int) -> None:
        """Set a conversation's priority."""

    @abstractmethod
    async def add_tags(self, conversation_id: str, tags: list[str]) -> None:
        """Add tags to a conversation."""


class LoggingConversationState(ConversationStateService):
    """Conversation state collaborator that only logs the change."""

    async def set_priority(self, conversation_id: str, priority: str | int) -> None:
        log.info("Setting conversation priority", conversationId=conversation_id, priority=priority)

    async def add_tags(self, conversation_id: str, tags: list[str]) -> None:
        log.info("Adding tags to conversation", conversationId=conversation_id, tags=tags)


class ActionExecutor:
    """Applies routing actions for a message.

    | action          | effect                                   |
    |-----------------|------------------------------------------|
    | assign_to_agent | assignment work item -> message.routing  |
    | assign_to_team  | logged only                              |
    | set_priority    | conversation state notified              |
    | add_tags        | conversation state notified              |
    | trigger_webhook | webhook work item -> webhook.delivery    |
    | auto_respond    | outbound work item -> message.delivery   |
    | escalate        | logged only                              |

    When several actions write the same result field, the last one wins.

    Usage:
        executor = ActionExecutor(broker=InMemoryBroker())
        partial = await executor.execute(message, actions)
    """

    def __init__(
        self,
        broker: MessageBroker,
        conversation_state: ConversationStateService | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        submit_timeout: float | None = DEFAULT_SUBMIT_TIMEOUT,
        default_auto_response: str = DEFAULT_AUTO_RESPONSE,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize executor.

        Args:
            broker: Broker receiving deferred work
            conversation_state: Conversation state collaborator
            max_attempts: Delivery attempts granted to each work item
            submit_timeout: Bound in seconds for each external call (None = unbounded)
            default_auto_response: Text used when auto_respond has no template
            clock: Wall clock used for work item ids
        """
        self.broker = broker
        self.conversation_state = conversation_state or LoggingConversationState()
        self.max_attempts = max_attempts
        self.submit_timeout = submit_timeout
        self.default_auto_response = default_auto_response
        self._clock = clock

    async def execute(
        self,
        message: Message,
        actions: list[RoutingAction],
    ) -> PartialRoutingResult:
        """Apply actions in order.

        Never raises because of a single action: failures are logged
        and collected in the result.

        Args:
            message: Message being routed
            actions: Accumulated actions of all matched rules

        Returns:
            Partial routing result
        """
        result = PartialRoutingResult()

        for action in actions:
            try:
                await self._apply(message, action, result)
            except Exception as e:
                error = e if isinstance(e, ActionDispatchError) else wrap_exception(
                    e,
                    ActionDispatchError,
                    message=getattr(e, "message", None),
                    messageId=message.id,
                    actionType=_action_type(action),
                )
                log.error(
                    "Error executing routing action",
                    messageId=message.id,
                    actionType=_action_type(action),
                    error=str(error),
                )
                result.failures.append(
                    ActionFailure(action=action, error_code=error.error_code, error=error.message)
                )
            else:
                result.executed.append(action)

        return result

    async def _apply(
        self,
        message: Message,
        action: RoutingAction,
        result: PartialRoutingResult,
    ) -> None:
        match action:
            case AssignToAgentAction(parameters=params):
                # Recorded at submit time, not confirmed
                result.assigned_to = params.agent_id
                await self._submit(
                    Queues.MESSAGE_ROUTING,
                    self._work_item(
                        "assign",
                        "message.assign",
                        message,
                        {
                            "messageId": message.id,
                            "agentId": params.agent_id,
                            "assignedAt": _now_iso(),
                        },
                    ),
                    action,
                    message,
                )

            case AssignToTeamAction(parameters=params):
                log.info("Assigning message to team", messageId=message.id, teamId=params.team_id)

            case SetPriorityAction(parameters=params):
                result.priority = params.priority
                await self._bounded(
                    self.conversation_state.set_priority(message.conversation_id, params.priority),
                    action,
                    message,
                )

            case AddTagsAction(parameters=params):
                result.tags = list(params.tags)
                await self._bounded(
                    self.conversation_state.add_tags(message.conversation_id, list(params.tags)),
                    action,
                    message,
                )

            case TriggerWebhookAction(parameters=params):
                result.webhook_triggered = False
                await self._submit(
                    Queues.WEBHOOK_DELIVERY,
                    self._work_item(
                        "webhook",
                        "webhook.trigger",
                        message,
                        {
                            "messageId": message.id,
                            "webhookUrl": params.url,
                            "event": params.event,
                            "payload": {
                                "message": message.model_dump(mode="json", by_alias=True),
                                "timestamp": _now_iso(),
                            },
                        },
                    ),
                    action,
                    message,
                )
                result.webhook_triggered = True

            case AutoRespondAction(parameters=params):
                response_text = params.template or self.default_auto_response
                await self._submit(
                    Queues.MESSAGE_DELIVERY,
                    self._work_item(
                        "auto-response",
                        "message.auto_response",
                        message,
                        {
                            "conversationId": message.conversation_id,
                            "responseText": response_text,
                            "originalMessageId": message.id,
                        },
                    ),
                    action,
                    message,
                )
                result.auto_response = response_text

            case EscalateAction(parameters=params):
                log.info(
                    "Escalating message",
                    messageId=message.id,
                    escalationLevel=params.level,
                    reason=params.reason,
                )

            case InvalidAction():
                raise ActionDispatchError(
                    "Invalid action document",
                    details={"actionType": action.declared_type, "errors": action.error},
                )

            case _:
                raise ActionDispatchError(
                    "Unsupported action type",
                    details={"actionType": getattr(action, "type", None)},
                )

    def _work_item(
        self,
        id_prefix: str,
        item_type: str,
        message: Message,
        payload: dict[str, Any],
    ) -> WorkItem:
        return WorkItem(
            id=f"{id_prefix}-{message.id}-{int(self._clock() * 1000)}",
            type=item_type,
            payload=payload,
            attempts=0,
            max_attempts=self.max_attempts,
        )

    async def _submit(
        self,
        queue_name: str,
        item: WorkItem,
        action: RoutingAction,
        message: Message,
    ) -> None:
        await self._bounded(self.broker.submit(queue_name, item), action, message)
        log.debug(
            "Work item submitted",
            messageId=message.id,
            queue=queue_name,
            workItemId=item.id,
        )

    async def _bounded(
        self,
        call: Awaitable[None],
        action: RoutingAction,
        message: Message,
    ) -> None:
        try:
            await asyncio.wait_for(call, timeout=self.submit_timeout)
        except asyncio.TimeoutError as e:
            raise ActionDispatchError(
                "Action timed out",
                details={
                    "messageId": message.id,
                    "actionType": action.type,
                    "timeoutSeconds": self.submit_timeout,
                },
                cause=e,
            ) from e


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _action_type(action: RoutingAction) -> str | None:
    if isinstance(action, InvalidAction):
        return action.declared_type
    return action.type
