"""Pytest configuration and fixtures."""
from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass, field

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from stemhub.db import database
from stemhub.db import review_models as db
from stemhub.db.database import Base, get_db
from stemhub.main import app
from stemhub.services.review_events import (
    RecordingEventSink,
    reset_event_sink,
    set_event_sink,
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture
async def db_session() -> AsyncIterator[AsyncSession]:
    """Create an in-memory test database session."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    old_engine = database._engine
    old_factory = database._async_session_factory
    database._engine = engine
    database._async_session_factory = async_session_factory
    try:
        async with async_session_factory() as session:
            async def override_get_db():
                yield session
            app.dependency_overrides[get_db] = override_get_db
            yield session
            app.dependency_overrides.clear()
    finally:
        database._engine = old_engine
        database._async_session_factory = old_factory
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncIterator[AsyncClient]:
    """Create an async test client bound to the test database."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def event_sink() -> RecordingEventSink:
    """Capture review events emitted during a test."""
    sink = RecordingEventSink()
    set_event_sink(sink)
    yield sink
    reset_event_sink()


# -----------------------------------------------------------------------------
# Seed data
# -----------------------------------------------------------------------------


@dataclass
class SeededStage:
    """Identifiers of a seeded track/stage.  Plain strings, safe after rollback."""

    track_id: str
    stage_id: str
    owner_user_id: str
    version: int
    reviewer_user_ids: list[str]
    category_ids: list[str] = field(default_factory=list)
    stem_ids: list[str] = field(default_factory=list)


StageSeeder = Callable[..., Awaitable[SeededStage]]


async def seed_stage(
    session: AsyncSession,
    *,
    reviewers: Sequence[str] = ("alice", "bob", "carol"),
    stems: int = 2,
    version: int = 2,
    status: str = db.StageStatus.ACTIVE.value,
    guide_path: str | None = None,
    owner_user_id: str = "track-owner",
    track_id: str | None = None,
) -> SeededStage:
    """Insert a track (unless ``track_id`` is given), a stage, reviewers and stems."""
    if track_id is None:
        track = db.StemhubTrack(owner_user_id=owner_user_id, title="Night Drive")
        session.add(track)
        await session.flush()
        track_id = track.track_id

    stage = db.StemhubStage(
        track_id=track_id,
        user_id=owner_user_id,
        title=f"Stage v{version}",
        version=version,
        status=status,
        guide_path=guide_path,
    )
    session.add(stage)
    await session.flush()

    for user_id in reviewers:
        session.add(db.StemhubStageReviewer(stage_id=stage.stage_id, user_id=user_id))

    seeded = SeededStage(
        track_id=track_id,
        stage_id=stage.stage_id,
        owner_user_id=owner_user_id,
        version=version,
        reviewer_user_ids=list(reviewers),
    )
    for i in range(stems):
        category = db.StemhubCategory(track_id=track_id, name=f"cat-{version}-{i}", instrument="kit")
        session.add(category)
        await session.flush()
        stem = db.StemhubStem(
            track_id=track_id,
            category_id=category.category_id,
            file_name=f"stem-{i}.wav",
            stem_hash=f"hash-{version}-{i}",
            file_path=f"tracks/{track_id}/stem-{i}.wav",
            key="A minor",
            bpm="92",
            audio_wave_path=f"waves/{track_id}/stem-{i}.json",
        )
        session.add(stem)
        await session.flush()
        seeded.category_ids.append(category.category_id)
        seeded.stem_ids.append(stem.stem_id)

    await session.commit()
    return seeded


@pytest.fixture
def stage_seeder(db_session: AsyncSession) -> StageSeeder:
    """Factory fixture: ``await stage_seeder(reviewers=[...], stems=3)``."""

    async def _seed(**kwargs: object) -> SeededStage:
        return await seed_stage(db_session, **kwargs)  # type: ignore[arg-type]

    return _seed


@pytest.fixture
def seed_into() -> Callable[..., Awaitable[SeededStage]]:
    """Unbound seeder for tests that manage their own sessions: ``await seed_into(session, ...)``."""
    return seed_stage
