"""Database helpers."""

from .errors import is_unique_violation
from .session import create_engine, create_session_maker, get_db, init_models

__all__ = [
    "create_engine",
    "create_session_maker",
    "get_db",
    "init_models",
    "is_unique_violation",
]
