"""Version promotion — snapshot an approved upstream into version history.

Called exactly once per upstream by the consensus evaluator, inside the same
transaction that recorded the deciding vote and claimed the upstream as
``approved``.  This module never commits or rolls back: when any step raises,
``stemhub.services.upstream_reviews.submit_decision`` rolls the whole
transaction back so no partial snapshot, stage change, or upstream status is
ever visible.

Steps
-----
1. Resolve upstream → stage → track with explicit lookups (each may raise a
   ``NotFoundError``).
2. Apply the upstream's guide path to the stage and set the stage status to
   ``approve``.
3. Load the track's current stems; zero stems is an error, not a no-op.
4. Insert one ``stemhub_version_stems`` row per stem at the stage's version.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from stemhub.db.review_models import StageStatus
from stemhub.errors import StemsNotFoundError
from stemhub.services import stage_catalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromotionSummary:
    """Outcome of a completed promotion.

    Attributes:
        upstream_id:        The promoted upstream.
        stage_id:           Stage that moved to ``approve``.
        version:            Stage version stamped on every snapshot row.
        version_stem_count: Number of ``VersionStem`` rows written.
    """

    upstream_id: str
    stage_id: str
    version: int
    version_stem_count: int


async def promote_upstream(session: AsyncSession, upstream_id: str) -> PromotionSummary:
    """Promote an approved upstream into an immutable version snapshot.

    The caller must already have claimed the upstream as ``approved`` in the
    current transaction.

    Raises:
        UpstreamNotFoundError: The upstream row is missing.
        StageNotFoundError:    The upstream's stage link is dangling.
        TrackNotFoundError:    The stage's track link is dangling.
        StemsNotFoundError:    The track has no current stems to snapshot.
    """
    upstream = await stage_catalog.get_upstream(session, upstream_id)
    stage = await stage_catalog.get_stage(session, upstream.stage_id)
    track = await stage_catalog.get_track(session, stage.track_id)

    if upstream.guide_path is not None:
        stage.guide_path = upstream.guide_path
    stage.status = StageStatus.APPROVE.value
    await session.flush()

    stems = await stage_catalog.find_stems_by_track(session, track.track_id)
    if not stems:
        raise StemsNotFoundError(track.track_id)

    for stem in stems:
        await stage_catalog.persist_version_stem(
            session,
            {
                "version": stage.version,
                "stem_hash": stem.stem_hash,
                "file_path": stem.file_path,
                "file_name": stem.file_name,
                "key": stem.key,
                "bpm": stem.bpm,
                "audio_wave_path": stem.audio_wave_path,
                "user_id": track.owner_user_id,
                "category_id": stem.category_id,
                "stage_id": stage.stage_id,
                "track_id": track.track_id,
            },
        )

    logger.info(
        "✅ Promoted upstream %s → stage %s v%d (%d version stems)",
        upstream_id,
        stage.stage_id,
        stage.version,
        len(stems),
    )
    return PromotionSummary(
        upstream_id=upstream_id,
        stage_id=stage.stage_id,
        version=stage.version,
        version_stem_count=len(stems),
    )
