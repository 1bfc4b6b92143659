"""Tests for the routing rule repository and SQL rule store."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from message_router.broker import InMemoryBroker
from message_router.core.exceptions import RuleLoadError
from message_router.db.models.routing import RoutingRuleModel
from message_router.db.session import create_session_factory
from message_router.routing.actions import ActionExecutor
from message_router.routing.cache import InMemoryCacheBackend, RuleCache
from message_router.routing.engine import RuleEngine
from message_router.routing.models import AssignToAgentAction, InvalidAction, SetPriorityAction
from message_router.routing.store import SQLRuleStore


def rule_row(rule_id, organization_id="org-1", **kwargs):
    return RoutingRuleModel(
        id=rule_id,
        organization_id=organization_id,
        name=kwargs.pop("name", f"Rule {rule_id}"),
        conditions=kwargs.pop("conditions", []),
        actions=kwargs.pop("actions", [{"type": "escalate", "parameters": {"level": 1}}]),
        **kwargs,
    )


class TestRoutingRuleRepository:
    """Tests for RoutingRuleRepository."""

    @pytest.mark.asyncio
    async def test_append_assigns_positions(self, rule_repository):
        """Test rules are appended at the end of their tenant's list."""
        first = await rule_repository.append(rule_row("r1"))
        second = await rule_repository.append(rule_row("r2"))
        other = await rule_repository.append(rule_row("r3", organization_id="org-2"))

        assert (first.position, second.position, other.position) == (0, 1, 0)

    @pytest.mark.asyncio
    async def test_get_by_organization(self, rule_repository):
        """Test tenant filtering and store order."""
        await rule_repository.append(rule_row("b"))
        await rule_repository.append(rule_row("a", is_active=False))
        await rule_repository.append(rule_row("c", organization_id="org-2"))

        all_rules = await rule_repository.get_by_organization("org-1")
        active = await rule_repository.get_by_organization("org-1", include_inactive=False)

        assert [r.id for r in all_rules] == ["b", "a"]
        assert [r.id for r in active] == ["b"]

    @pytest.mark.asyncio
    async def test_set_active_and_priority(self, rule_repository):
        """Test updating state and priority."""
        await rule_repository.append(rule_row("r1"))

        updated = await rule_repository.set_active("r1", False)
        updated = await rule_repository.update_priority("r1", 5)

        assert updated.is_active is False
        assert updated.priority == 5
        assert await rule_repository.update_priority("missing", 1) is None

    @pytest.mark.asyncio
    async def test_get(self, rule_repository):
        """Test lookup by id."""
        await rule_repository.append(rule_row("r1"))

        assert (await rule_repository.get("r1")).name == "Rule r1"
        assert await rule_repository.get("missing") is None

    @pytest.mark.asyncio
    async def test_from_rule(self, rule_repository, make_rule):
        """Test storing a validated rule."""
        rule = make_rule(
            "r1",
            conditions=[{"type": "urgency", "operator": "equals", "value": "critical"}],
            actions=[{"type": "assign_to_agent", "parameters": {"agentId": "agent-7"}}],
        )

        row = await rule_repository.append(RoutingRuleModel.from_rule(rule))

        assert row.actions == [{"type": "assign_to_agent", "parameters": {"agent_id": "agent-7"}}]
        assert row.to_rule().actions == rule.actions
        assert row.to_dict()["position"] == 0


class TestSQLRuleStore:
    """Tests for SQLRuleStore."""

    @pytest.mark.asyncio
    async def test_load_rules(self, session_factory):
        """Test rules are validated and returned in store order."""
        async with session_factory() as session:
            session.add_all([
                rule_row("second", position=1, is_active=False),
                rule_row("first", position=0, actions=[
                    {"type": "assign_to_agent", "parameters": {"agentId": "agent-7"}}
                ]),
                rule_row("foreign", organization_id="org-2"),
            ])
            await session.commit()

        rules = await SQLRuleStore(session_factory).load_rules("org-1")

        assert [r.id for r in rules] == ["first", "second"]
        assert isinstance(rules[0].actions[0], AssignToAgentAction)
        assert rules[1].is_active is False
        assert rules[0].created_at is not None

    @pytest.mark.asyncio
    async def test_invalid_rows_skipped(self, session_factory, captured_logs):
        """Test rows whose conditions fail validation are left out."""
        async with session_factory() as session:
            session.add_all([
                rule_row("broken", position=0, conditions=[
                    {"type": "weather", "operator": "equals", "value": "rain"}
                ]),
                rule_row("fine", position=1),
            ])
            await session.commit()

        rules = await SQLRuleStore(session_factory).load_rules("org-1")

        assert [r.id for r in rules] == ["fine"]
        assert any(
            entry["event"] == "Skipping invalid routing rule" and entry["ruleId"] == "broken"
            for entry in captured_logs
        )

    @pytest.mark.asyncio
    async def test_invalid_action_keeps_rule(self, session_factory):
        """Test one malformed action does not drop the rest of the rule."""
        async with session_factory() as session:
            session.add(rule_row("r1", actions=[
                {"type": "set_priority", "parameters": {"priority": "high"}},
                {"type": "trigger_webhook", "parameters": {}},
            ]))
            await session.commit()

        [rule] = await SQLRuleStore(session_factory).load_rules("org-1")

        assert rule.id == "r1"
        assert isinstance(rule.actions[0], SetPriorityAction)
        assert isinstance(rule.actions[1], InvalidAction)
        assert RoutingRuleModel.from_rule(rule).actions[1] == {
            "type": "trigger_webhook", "parameters": {},
        }

    @pytest.mark.asyncio
    async def test_invalid_action_reported_when_routed(self, session_factory, make_message):
        """Test a stored rule with a malformed action still routes."""
        async with session_factory() as session:
            session.add(rule_row("r1", actions=[
                {"type": "set_priority", "parameters": {"priority": "high"}},
                {"type": "trigger_webhook", "parameters": {}},
            ]))
            await session.commit()
        broker = InMemoryBroker()
        engine = RuleEngine(
            rule_cache=RuleCache(SQLRuleStore(session_factory), InMemoryCacheBackend()),
            executor=ActionExecutor(broker=broker),
        )

        result = await engine.route(make_message())

        assert result.applied_rules == ["r1"]
        assert result.priority == "high"
        assert [a.type for a in result.actions] == ["set_priority"]
        [failure] = result.failed_actions
        assert failure.action.declared_type == "trigger_webhook"
        assert failure.error_code == "ACTION_DISPATCH_ERROR"
        assert failure.error == "Invalid action document"
        assert broker.submitted == []

    @pytest.mark.asyncio
    async def test_database_error_raises_rule_load_error(self):
        """Test an unusable database surfaces as RuleLoadError."""
        engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
        try:
            store = SQLRuleStore(create_session_factory(engine))

            with pytest.raises(RuleLoadError) as exc_info:
                await store.load_rules("org-1")

            assert exc_info.value.error_code == "RULE_SET_UNAVAILABLE"
        finally:
            await engine.dispose()
