"""Routing rule ORM model."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import Mapped, mapped_column

from message_router.db.base import Base, StringIDMixin, TimestampMixin

if TYPE_CHECKING:
    from message_router.routing.models import RoutingAction, RoutingRule


def _action_document(action: RoutingAction) -> dict[str, Any]:
    from message_router.routing.models import InvalidAction

    # Invalid actions are written back as they were read
    if isinstance(action, InvalidAction):
        return dict(action.document)
    return action.model_dump(mode="json")


class RoutingRuleModel(Base, StringIDMixin, TimestampMixin):
    """Routing Rule ORM model.

    Rules defined by each tenant. Conditions and actions are stored as
    JSON documents in the same shape the router validates on load.

    Example: "If urgency equals critical, escalate to level 1"
    """

    __tablename__ = "routing_rules"

    organization_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Human-readable rule name",
    )
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Declared priority; evaluation follows position unless the engine sorts
    priority: Mapped[int] = mapped_column(
        Integer,
        default=100,
        nullable=False,
    )

    # Store order within the tenant
    position: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Insertion order within the tenant",
    )

    conditions: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment='[{"type": "urgency", "operator": "equals", "value": "critical"}]',
    )
    actions: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment='[{"type": "escalate", "parameters": {"level": 1}}]',
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_routing_rules_org_position", "organization_id", "position"),
    )

    def to_rule(self) -> RoutingRule:
        """Validate the stored row into a RoutingRule.

        Actions are validated one by one; an invalid action document is
        kept as an InvalidAction instead of rejecting the rule.

        Raises:
            pydantic.ValidationError: If the rule itself or a condition is malformed
        """
        from message_router.routing.models import LENIENT_ACTIONS, RoutingRule

        return RoutingRule.model_validate(
            {
                "id": self.id,
                "name": self.name,
                "organization_id": self.organization_id,
                "priority": self.priority,
                "conditions": self.conditions or [],
                "actions": self.actions or [],
                "is_active": self.is_active,
                "created_at": self.created_at,
                "updated_at": self.updated_at,
            },
            context={LENIENT_ACTIONS: True},
        )

    @classmethod
    def from_rule(cls, rule: RoutingRule, position: int = 0) -> RoutingRuleModel:
        """Build a row from a validated rule."""
        return cls(
            id=rule.id,
            organization_id=rule.organization_id,
            name=rule.name,
            priority=rule.priority,
            position=position,
            conditions=[c.model_dump(mode="json") for c in rule.conditions],
            actions=[_action_document(a) for a in rule.actions],
            is_active=rule.is_active,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "description": self.description,
            "priority": self.priority,
            "position": self.position,
            "conditions": self.conditions,
            "actions": self.actions,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
