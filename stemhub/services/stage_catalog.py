"""Catalog lookups consumed by the review engine — single point of catalog DB access.

The track/stage/stem catalog is owned by another component; the review engine
reads (and, during promotion, writes) only the fields it needs.  Every link
that the engine follows (upstream → stage → track → stems) is resolved here
with an explicit query so a missing link surfaces as a typed ``NotFoundError``
instead of a lazy-loaded ``None``.

Boundary rules:
- Must NOT commit or roll back; the caller owns the transaction.
- May import ORM models from stemhub.db.review_models.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TypedDict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stemhub.db import review_models as db
from stemhub.errors import StageNotFoundError, TrackNotFoundError, UpstreamNotFoundError

logger = logging.getLogger(__name__)


class VersionStemFields(TypedDict):
    """Column values for one ``stemhub_version_stems`` row."""

    version: int
    stem_hash: str
    file_path: str
    file_name: str
    key: str | None
    bpm: str | None
    audio_wave_path: str | None
    user_id: str
    category_id: str | None
    stage_id: str
    track_id: str


async def get_upstream(
    session: AsyncSession, upstream_id: str, *, for_update: bool = False
) -> db.StemhubUpstream:
    """Return the upstream row or raise ``UpstreamNotFoundError``.

    ``for_update`` takes a row lock (``SELECT … FOR UPDATE``) on backends that
    support it; SQLite ignores the clause and relies on its writer lock.
    """
    stmt = select(db.StemhubUpstream).where(db.StemhubUpstream.upstream_id == upstream_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    upstream = (await session.execute(stmt)).scalar_one_or_none()
    if upstream is None:
        raise UpstreamNotFoundError(upstream_id)
    return upstream


async def get_stage(session: AsyncSession, stage_id: str) -> db.StemhubStage:
    """Return the stage row or raise ``StageNotFoundError``."""
    stmt = select(db.StemhubStage).where(db.StemhubStage.stage_id == stage_id)
    stage = (await session.execute(stmt)).scalar_one_or_none()
    if stage is None:
        raise StageNotFoundError(stage_id)
    return stage


async def get_track(session: AsyncSession, track_id: str) -> db.StemhubTrack:
    """Return the track row or raise ``TrackNotFoundError``."""
    stmt = select(db.StemhubTrack).where(db.StemhubTrack.track_id == track_id)
    track = (await session.execute(stmt)).scalar_one_or_none()
    if track is None:
        raise TrackNotFoundError(track_id)
    return track


async def find_reviewer_assignments(
    session: AsyncSession, stage_id: str
) -> Sequence[db.StemhubStageReviewer]:
    """Return every reviewer assigned to a stage, oldest assignment first."""
    stmt = (
        select(db.StemhubStageReviewer)
        .where(db.StemhubStageReviewer.stage_id == stage_id)
        .order_by(db.StemhubStageReviewer.created_at, db.StemhubStageReviewer.stage_reviewer_id)
    )
    return (await session.execute(stmt)).scalars().all()


async def find_assignment(
    session: AsyncSession, stage_id: str, user_id: str
) -> db.StemhubStageReviewer | None:
    """Return the user's reviewer assignment on a stage, or None."""
    stmt = select(db.StemhubStageReviewer).where(
        db.StemhubStageReviewer.stage_id == stage_id,
        db.StemhubStageReviewer.user_id == user_id,
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def find_stems_by_track(session: AsyncSession, track_id: str) -> Sequence[db.StemhubStem]:
    """Return the track's current stems in upload order."""
    stmt = (
        select(db.StemhubStem)
        .where(db.StemhubStem.track_id == track_id)
        .order_by(db.StemhubStem.created_at, db.StemhubStem.stem_id)
    )
    return (await session.execute(stmt)).scalars().all()


async def persist_version_stem(
    session: AsyncSession, fields: VersionStemFields
) -> db.StemhubVersionStem:
    """Insert one immutable version-stem snapshot and flush it."""
    row = db.StemhubVersionStem(**fields)
    session.add(row)
    await session.flush()
    return row
