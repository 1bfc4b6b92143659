"""Repositories for database access."""
from message_router.db.repositories.routing_rules import RoutingRuleRepository

__all__ = [
    "RoutingRuleRepository",
]
