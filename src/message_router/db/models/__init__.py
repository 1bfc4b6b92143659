"""Database Models for the Message Router.

- RoutingRuleModel: Tenant routing rules
"""
from message_router.db.models.routing import RoutingRuleModel

__all__ = [
    "RoutingRuleModel",
]
