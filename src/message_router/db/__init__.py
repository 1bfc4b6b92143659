"""Database module for the Message Router.

Provides:
- SQLAlchemy ORM model for routing rules
- Async session management
- Repository pattern for data access
"""
from message_router.db.base import (
    Base,
    StringIDMixin,
    TimestampMixin,
    generate_uuid,
)
from message_router.db.session import (
    create_engine,
    create_session_factory,
    get_engine,
    get_session_factory,
    init_db,
)

__all__ = [
    # Base and mixins
    "Base",
    "StringIDMixin",
    "TimestampMixin",
    "generate_uuid",
    # Session management
    "create_engine",
    "create_session_factory",
    "get_engine",
    "get_session_factory",
    "init_db",
]
