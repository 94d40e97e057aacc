"""Database layer - engine, session factory and declarative base."""

from ledger_kernel.db.base import Base
from ledger_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)

__all__ = [
    "Base",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
]
