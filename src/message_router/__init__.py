"""Message Router - rule-based routing and action dispatch for classified messages."""

__version__ = "0.1.0"
