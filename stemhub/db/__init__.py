"""
Database module for StemHub.

Async SQLAlchemy on PostgreSQL (asyncpg) or SQLite (aiosqlite).
"""
from __future__ import annotations

from stemhub.db.database import close_db, get_db, init_db
from stemhub.db import review_models as review_models  # noqa: F401 register tables with Base

__all__ = [
    "get_db",
    "init_db",
    "close_db",
]
