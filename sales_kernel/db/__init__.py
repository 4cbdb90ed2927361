"""Database layer - engine, base classes, and column types."""

from sales_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from sales_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from sales_kernel.db.types import JSONBody, Money, Quantity, ShortCode

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Quantity",
    "ShortCode",
    "JSONBody",
]
