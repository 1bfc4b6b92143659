"""Routing rule repository.

Tenant rules are kept in store order via the position column; the
router reads them through get_by_organization().
"""
from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from message_router.db.models.routing import RoutingRuleModel


class RoutingRuleRepository:
    """Repository for routing rules.

    Usage:
        async with session_factory() as session:
            repo = RoutingRuleRepository(session)
            await repo.append(RoutingRuleModel.from_rule(rule))
            await session.commit()
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with a session."""
        self._session = session

    async def get(self, rule_id: str) -> RoutingRuleModel | None:
        """Get a single rule by ID."""
        return await self._session.get(RoutingRuleModel, rule_id)

    async def get_by_organization(
        self,
        organization_id: str,
        include_inactive: bool = True,
    ) -> Sequence[RoutingRuleModel]:
        """Get routing rules for a tenant in store order.

        Args:
            organization_id: Tenant identifier
            include_inactive: Include inactive rules

        Returns:
            Rules ordered by position, then creation time
        """
        stmt = select(RoutingRuleModel).where(
            RoutingRuleModel.organization_id == organization_id
        )

        if not include_inactive:
            stmt = stmt.where(RoutingRuleModel.is_active == True)  # noqa: E712

        stmt = stmt.order_by(RoutingRuleModel.position, RoutingRuleModel.created_at)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def next_position(self, organization_id: str) -> int:
        """Position for a rule appended to a tenant's list."""
        stmt = select(func.max(RoutingRuleModel.position)).where(
            RoutingRuleModel.organization_id == organization_id
        )
        result = await self._session.execute(stmt)
        current = result.scalar()
        return 0 if current is None else current + 1

    async def append(self, rule: RoutingRuleModel) -> RoutingRuleModel:
        """Add a rule at the end of its tenant's list."""
        rule.position = await self.next_position(rule.organization_id)
        self._session.add(rule)
        await self._session.flush()
        await self._session.refresh(rule)
        return rule

    async def set_active(
        self,
        rule_id: str,
        is_active: bool,
    ) -> RoutingRuleModel | None:
        """Activate or deactivate a rule.

        Returns:
            Updated RoutingRuleModel or None if the rule does not exist
        """
        return await self._change(rule_id, is_active=is_active)

    async def update_priority(
        self,
        rule_id: str,
        new_priority: int,
    ) -> RoutingRuleModel | None:
        """Update the declared priority of a rule.

        Returns:
            Updated RoutingRuleModel or None if the rule does not exist
        """
        return await self._change(rule_id, priority=new_priority)

    async def _change(self, rule_id: str, **values: Any) -> RoutingRuleModel | None:
        rule = await self.get(rule_id)
        if rule is None:
            return None

        for name, value in values.items():
            setattr(rule, name, value)

        await self._session.flush()
        await self._session.refresh(rule)
        return rule
