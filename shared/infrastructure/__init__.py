"""
Infrastructure module: database engine and sessions.
"""

from shared.infrastructure.db import (
    get_engine,
    get_session_factory,
    get_db_context,
    safe_commit,
)

__all__ = [
    "get_engine",
    "get_session_factory",
    "get_db_context",
    "safe_commit",
]
