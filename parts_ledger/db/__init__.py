"""Database infrastructure: declarative base, engine, immutability listeners."""

from parts_ledger.db.base import Base, UUIDString
from parts_ledger.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "Base",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
]
