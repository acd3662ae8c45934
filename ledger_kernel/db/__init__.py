"""
SQLAlchemy persistence for the ledger ports.

Import ``ledger_kernel.db.repositories`` for the port adapters and
``ledger_kernel.db.engine`` for engine/session management.
"""

from ledger_kernel.db.base import Base, UTCDateTime
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "Base",
    "UTCDateTime",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
]
