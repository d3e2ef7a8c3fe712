"""
Tests for database initialization and the get_db dependency.

Ensures get_db fails fast before init_db and that a SQLite engine comes up
with foreign keys enforced.
"""
from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from sqlalchemy import text

from stemhub.db import database, review_models


@pytest.mark.anyio
async def test_get_db_raises_when_not_initialized() -> None:
    """get_db raises RuntimeError when init_db has not been called."""
    with patch("stemhub.db.database._async_session_factory", None):
        gen = database.get_db()
        with pytest.raises(RuntimeError, match="Database not initialized"):
            await gen.__anext__()


@pytest.mark.anyio
async def test_init_db_sqlite_enables_foreign_keys(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(
        database.settings, "database_url", f"sqlite+aiosqlite:///{tmp_path / 'init.db'}"
    )
    monkeypatch.setattr(database, "_engine", None)
    monkeypatch.setattr(database, "_async_session_factory", None)

    await database.init_db()
    try:
        gen = database.get_db()
        session = await gen.__anext__()
        enabled = (await session.execute(text("PRAGMA foreign_keys"))).scalar_one()
        assert enabled == 1
        await gen.aclose()
    finally:
        await database.close_db()

    assert database._engine is None
    assert database._async_session_factory is None


def test_default_url_is_local_sqlite(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(database.settings, "database_url", None)
    assert database.get_database_url() == "sqlite+aiosqlite:///./stemhub.db"


def test_review_tables_shape() -> None:
    """Stems carry no upstream link; upstreams carry the fan-out marker."""
    stems = review_models.StemhubStem.__table__.columns
    upstreams = review_models.StemhubUpstream.__table__.columns
    assert "upstream_id" not in stems
    assert upstreams["reviews_fanned_out_at"].nullable
