"""Rule stores.

The persistent rule store owns rule authoring and versioning; the
router only loads a tenant's rules through load_rules(). Stores return
every rule they hold for the tenant, active or not, in their own order.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import defaultdict

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from message_router.core.exceptions import RuleLoadError
from message_router.core.logging import get_logger
from message_router.db.repositories.routing_rules import RoutingRuleRepository
from message_router.routing.models import RoutingRule

log = get_logger(__name__)


class RuleStore(ABC):
    """Source of truth for tenant routing rules."""

    @abstractmethod
    async def load_rules(self, organization_id: str) -> list[RoutingRule]:
        """Load all rules of a tenant.

        Args:
            organization_id: Tenant identifier

        Returns:
            Rules in store order

        Raises:
            RuleLoadError: If the store cannot be read
        """


class InMemoryRuleStore(RuleStore):
    """Process-local rule store for development and tests.

    Rules are returned in insertion order.
    """

    def __init__(self, rules: list[RoutingRule] | None = None):
        self._rules: dict[str, list[RoutingRule]] = defaultdict(list)
        for rule in rules or []:
            self.add_rule(rule)

    def add_rule(self, rule: RoutingRule) -> None:
        """Append a rule to its tenant's list."""
        self._rules[rule.organization_id].append(rule)

    def set_rules(self, organization_id: str, rules: list[RoutingRule]) -> None:
        """Replace a tenant's rules."""
        self._rules[organization_id] = list(rules)

    async def load_rules(self, organization_id: str) -> list[RoutingRule]:
        return list(self._rules.get(organization_id, []))


class SQLRuleStore(RuleStore):
    """Rule store backed by the routing_rules table.

    Usage:
        store = SQLRuleStore(get_session_factory())
        rules = await store.load_rules("org-1")
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize store.

        Args:
            session_factory: Async session factory
        """
        self._session_factory = session_factory

    async def load_rules(self, organization_id: str) -> list[RoutingRule]:
        try:
            async with self._session_factory() as session:
                repo = RoutingRuleRepository(session)
                models = await repo.get_by_organization(
                    organization_id, include_inactive=True
                )
        except SQLAlchemyError as e:
            raise RuleLoadError(
                "Rule store unavailable",
                details={"organizationId": organization_id},
                cause=e,
            ) from e

        rules: list[RoutingRule] = []
        for model in models:
            try:
                rules.append(model.to_rule())
            except PydanticValidationError as e:
                log.warning(
                    "Skipping invalid routing rule",
                    organizationId=organization_id,
                    ruleId=str(model.id),
                    error=str(e),
                )
        return rules
