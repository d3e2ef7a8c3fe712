"""Read access to promoted version history (``stemhub_version_stems``).

Rows are written only by ``stemhub.services.promotion``; everything here is
read-only.  Empty results raise ``VersionStemsNotFoundError`` rather than
returning an empty list.
"""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stemhub.db import review_models as db
from stemhub.errors import VersionStemsNotFoundError
from stemhub.models.reviews import CategoryVersionStem, VersionStemResponse

logger = logging.getLogger(__name__)


def _to_version_stem_response(row: db.StemhubVersionStem) -> VersionStemResponse:
    return VersionStemResponse(
        version_stem_id=row.version_stem_id,
        version=row.version,
        stem_hash=row.stem_hash,
        file_path=row.file_path,
        file_name=row.file_name,
        key=row.key,
        bpm=row.bpm,
        audio_wave_path=row.audio_wave_path,
        user_id=row.user_id,
        category_id=row.category_id,
        stage_id=row.stage_id,
        track_id=row.track_id,
        uploaded_at=row.uploaded_at,
    )


async def list_version_stems_for_stage(
    session: AsyncSession, stage_id: str
) -> list[VersionStemResponse]:
    """Return every snapshot row written for a stage, in upload order."""
    stmt = (
        select(db.StemhubVersionStem)
        .where(db.StemhubVersionStem.stage_id == stage_id)
        .order_by(db.StemhubVersionStem.uploaded_at, db.StemhubVersionStem.version_stem_id)
    )
    rows = (await session.execute(stmt)).scalars().all()
    if not rows:
        raise VersionStemsNotFoundError(f"No version stems found for stage: {stage_id}")
    return [_to_version_stem_response(r) for r in rows]


async def list_version_stem_paths_for_stage(session: AsyncSession, stage_id: str) -> list[str]:
    """Return the storage paths of a stage's snapshot, e.g. to request a mixdown."""
    stmt = select(db.StemhubVersionStem.file_path).where(
        db.StemhubVersionStem.stage_id == stage_id
    )
    paths = list((await session.execute(stmt)).scalars().all())
    if not paths:
        raise VersionStemsNotFoundError(f"No version stems found for stage: {stage_id}")
    return paths


async def latest_stems_per_category(
    session: AsyncSession, track_id: str, version: int
) -> list[CategoryVersionStem]:
    """Return, per category of the track, the newest snapshot at or below ``version``.

    Ties on version are broken by the most recent ``uploaded_at``.  Categories
    with no snapshot at or below ``version`` are skipped.
    """
    categories = (
        await session.execute(
            select(db.StemhubCategory)
            .where(db.StemhubCategory.track_id == track_id)
            .order_by(db.StemhubCategory.name)
        )
    ).scalars().all()

    results: list[CategoryVersionStem] = []
    for category in categories:
        stmt = (
            select(db.StemhubVersionStem)
            .where(
                db.StemhubVersionStem.track_id == track_id,
                db.StemhubVersionStem.category_id == category.category_id,
                db.StemhubVersionStem.version <= version,
            )
            .order_by(
                db.StemhubVersionStem.version.desc(),
                db.StemhubVersionStem.uploaded_at.desc(),
            )
            .limit(1)
        )
        latest = (await session.execute(stmt)).scalar_one_or_none()
        if latest is not None:
            results.append(
                CategoryVersionStem(
                    category_id=category.category_id,
                    category=category.name,
                    stem=_to_version_stem_response(latest),
                )
            )

    if not results:
        raise VersionStemsNotFoundError(
            f"No stems found for track {track_id} at version {version}"
        )
    logger.debug("Resolved %d category stems for track %s v%d", len(results), track_id, version)
    return results
