"""Tests for routing domain models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from message_router.core.exceptions import RuleValidationError
from message_router.routing.models import (
    ActionFailure,
    AutoRespondAction,
    EscalateAction,
    InvalidAction,
    LENIENT_ACTIONS,
    RoutingResult,
    RoutingRule,
    SetPriorityAction,
    TriggerWebhookAction,
    parse_rules,
)


class TestParseRules:
    """Tests for rule document validation."""

    def test_camel_case_documents(self):
        """Test documents using camelCase keys."""
        rules = parse_rules([
            {
                "id": "r1",
                "name": "VIP",
                "organizationId": "org-1",
                "isActive": False,
                "conditions": [
                    {"type": "custom", "operator": "equals", "field": "metadata.vip", "value": True}
                ],
                "actions": [
                    {"type": "assign_to_agent", "parameters": {"agentId": "agent-7"}},
                    {"type": "set_priority", "parameters": {"priority": "high"}},
                ],
            }
        ])

        rule = rules[0]
        assert rule.organization_id == "org-1"
        assert rule.is_active is False
        assert rule.priority == 100
        assert rule.actions[0].parameters.agent_id == "agent-7"
        assert isinstance(rule.actions[1], SetPriorityAction)

    def test_snake_case_documents(self):
        """Test documents using field names."""
        rules = parse_rules([
            {
                "id": "r1",
                "name": "Webhook",
                "organization_id": "org-1",
                "actions": [
                    {"type": "trigger_webhook", "parameters": {"url": "https://hooks.example.com/x"}},
                ],
            }
        ])

        action = rules[0].actions[0]
        assert isinstance(action, TriggerWebhookAction)
        assert action.parameters.event == "message.routed"

    def test_optional_parameters_default(self):
        """Test actions whose parameters may be omitted."""
        rules = parse_rules([
            {
                "id": "r1",
                "name": "Escalate",
                "organizationId": "org-1",
                "actions": [{"type": "escalate"}, {"type": "auto_respond"}],
            }
        ])

        escalate, respond = rules[0].actions
        assert isinstance(escalate, EscalateAction)
        assert escalate.parameters.level == 1
        assert isinstance(respond, AutoRespondAction)
        assert respond.parameters.template is None

    @pytest.mark.parametrize("document", [
        {"id": "r1", "name": "x", "organizationId": "org-1",
         "actions": [{"type": "delete_everything", "parameters": {}}]},
        {"id": "r1", "name": "x", "organizationId": "org-1",
         "actions": [{"type": "assign_to_agent", "parameters": {}}]},
        {"id": "r1", "name": "x", "organizationId": "org-1",
         "conditions": [{"type": "weather", "operator": "equals", "value": "rain"}]},
        {"id": "r1", "name": "x", "organizationId": "org-1",
         "conditions": [{"type": "urgency", "operator": "approximately", "value": "high"}]},
        {"id": "r1", "name": "x"},
    ])
    def test_invalid_documents(self, document):
        """Test invalid documents raise RuleValidationError."""
        with pytest.raises(RuleValidationError) as exc_info:
            parse_rules([document])

        assert exc_info.value.details["errors"]
        assert exc_info.value.error_code == "RULE_VALIDATION_ERROR"


class TestLenientActions:
    """Tests for per-action validation of stored rules."""

    DOCUMENT = {
        "id": "r1",
        "name": "x",
        "organizationId": "org-1",
        "actions": [
            {"type": "set_priority", "parameters": {"priority": "high"}},
            {"type": "trigger_webhook", "parameters": {}},
            {"type": "teleport"},
        ],
    }

    def test_invalid_actions_kept_in_place(self):
        """Test only the broken actions are replaced."""
        rule = RoutingRule.model_validate(self.DOCUMENT, context={LENIENT_ACTIONS: True})

        priority, webhook, unknown = rule.actions
        assert isinstance(priority, SetPriorityAction)
        assert isinstance(webhook, InvalidAction)
        assert webhook.declared_type == "trigger_webhook"
        assert webhook.document == {"type": "trigger_webhook", "parameters": {}}
        assert "url" in webhook.error
        assert isinstance(unknown, InvalidAction)
        assert unknown.declared_type == "teleport"

    def test_strict_by_default(self):
        """Test authoring validation still rejects the whole rule."""
        with pytest.raises(RuleValidationError):
            parse_rules([self.DOCUMENT])

    def test_invalid_action_survives_json_round_trip(self):
        """Test cached rules keep their invalid actions."""
        rule = RoutingRule.model_validate(self.DOCUMENT, context={LENIENT_ACTIONS: True})

        restored = RoutingRule.model_validate_json(rule.model_dump_json())

        assert restored.actions == rule.actions


class TestMessage:
    """Tests for the read-only message model."""

    def test_message_is_frozen(self, make_message):
        """Test messages cannot be modified."""
        message = make_message()

        with pytest.raises(ValidationError):
            message.organization_id = "org-2"

    def test_classification_keeps_extra_fields(self, make_message):
        """Test unknown classifier fields are preserved."""
        message = make_message(classification={"category": "sales", "language": "de"})

        assert message.classification.category == "sales"
        assert message.classification.model_extra == {"language": "de"}


class TestRoutingResult:
    """Tests for result serialization."""

    def test_to_dict(self):
        """Test result dictionary uses camelCase keys."""
        action = SetPriorityAction.model_validate({"parameters": {"priority": "high"}})
        failed = EscalateAction()
        result = RoutingResult(
            message_id="msg-1",
            applied_rules=["r1"],
            actions=[action],
            failed_actions=[
                ActionFailure(action=failed, error_code="ACTION_DISPATCH_ERROR", error="boom")
            ],
            priority="high",
            processing_time=1.5,
        )

        data = result.to_dict()

        assert data["messageId"] == "msg-1"
        assert data["appliedRules"] == ["r1"]
        assert data["actions"] == [{"type": "set_priority", "parameters": {"priority": "high"}}]
        assert data["failedActions"][0]["errorCode"] == "ACTION_DISPATCH_ERROR"
        assert data["failedActions"][0]["action"]["type"] == "escalate"
        assert data["webhookTriggered"] is False
        assert data["assignedTo"] is None
        assert data["processingTime"] == 1.5
