"""Rule Engine for multi-tenant message routing.

Three-stage, single-pass pipeline per message:
1. Load   - the tenant's rules from the rule cache
2. Match  - every active rule whose conditions all hold
3. Execute - the matched rules' actions, concatenated in rule order

Rules are evaluated in the order the cache returns them. The declared
rule priority is only used for ordering when order_by_priority is set.
"""

from __future__ import annotations

import time

from message_router.core.exceptions import RuleLoadError
from message_router.core.logging import get_logger, routing_context
from message_router.routing.actions import ActionExecutor
from message_router.routing.cache import RuleCache
from message_router.routing.conditions import ConditionEvaluator
from message_router.routing.models import (
    Message,
    RoutingAction,
    RoutingResult,
    RoutingRule,
)

log = get_logger(__name__)


class RuleEngine:
    """Matches tenant rules against messages and dispatches their actions.

    Usage:
        engine = RuleEngine(
            rule_cache=RuleCache(store, InMemoryCacheBackend()),
            executor=ActionExecutor(broker),
        )

        result = await engine.route(message)
    """

    def __init__(
        self,
        rule_cache: RuleCache,
        executor: ActionExecutor,
        evaluator: ConditionEvaluator | None = None,
        order_by_priority: bool = False,
    ):
        """Initialize rule engine.

        Args:
            rule_cache: Per-tenant rule cache
            executor: Action executor
            evaluator: Condition evaluator (default: server local time)
            order_by_priority: Sort rules by ascending priority before matching
        """
        self.rule_cache = rule_cache
        self.executor = executor
        self.evaluator = evaluator or ConditionEvaluator()
        self.order_by_priority = order_by_priority

    async def route(self, message: Message) -> RoutingResult:
        """Route a classified message.

        Args:
            message: Message to route

        Returns:
            RoutingResult for this invocation

        Raises:
            RuleLoadError: If the tenant's rule set is unavailable
        """
        with routing_context(message.id, message.organization_id):
            return await self._route(message)

    async def _route(self, message: Message) -> RoutingResult:
        start = time.perf_counter()
        organization_id = message.organization_id

        log.info(
            "Starting message routing",
            messageId=message.id,
            organizationId=organization_id,
        )

        try:
            rules = await self.rule_cache.get_rules(organization_id)
        except RuleLoadError as e:
            log.error(
                "Message routing failed",
                messageId=message.id,
                organizationId=organization_id,
                error=str(e),
                processingTime=_elapsed_ms(start),
            )
            raise
        except Exception as e:
            log.error(
                "Message routing failed",
                messageId=message.id,
                organizationId=organization_id,
                error=str(e),
                processingTime=_elapsed_ms(start),
            )
            raise RuleLoadError(
                "Routing rule set unavailable",
                details={"organizationId": organization_id, "messageId": message.id},
                cause=e,
            ) from e

        applied_rules, actions = self.match(message, rules)
        partial = await self.executor.execute(message, actions)

        result = RoutingResult.from_partial(
            message_id=message.id,
            applied_rules=applied_rules,
            partial=partial,
            processing_time=_elapsed_ms(start),
        )

        log.info(
            "Message routing completed",
            messageId=message.id,
            appliedRules=len(result.applied_rules),
            actions=len(result.actions),
            failedActions=len(result.failed_actions),
            processingTime=result.processing_time,
        )
        return result

    def match(
        self,
        message: Message,
        rules: list[RoutingRule],
    ) -> tuple[list[str], list[RoutingAction]]:
        """Find matching rules and accumulate their actions.

        Args:
            message: Message to match
            rules: Tenant rules in store order

        Returns:
            (ids of matched rules, their actions concatenated in rule order)
        """
        applied_rules: list[str] = []
        actions: list[RoutingAction] = []

        for rule in self.order_rules(rules):
            if rule.organization_id != message.organization_id:
                log.warning(
                    "Skipping rule of another tenant",
                    ruleId=rule.id,
                    ruleOrganizationId=rule.organization_id,
                    organizationId=message.organization_id,
                )
                continue

            if not self.rule_matches(rule, message):
                continue

            applied_rules.append(rule.id)
            actions.extend(rule.actions)

            log.info(
                "Routing rule applied",
                messageId=message.id,
                ruleId=rule.id,
                ruleName=rule.name,
            )

        return applied_rules, actions

    def rule_matches(self, rule: RoutingRule, message: Message) -> bool:
        """Whether a rule is active and all its conditions hold."""
        if not rule.is_active:
            return False
        return all(
            self.evaluator.evaluate(condition, message)
            for condition in rule.conditions
        )

    def order_rules(self, rules: list[RoutingRule]) -> list[RoutingRule]:
        """Evaluation order: store order, or stable ascending priority."""
        if self.order_by_priority:
            return sorted(rules, key=lambda rule: rule.priority)
        return list(rules)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 3)
