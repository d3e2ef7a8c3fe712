"""Upstream and reviewer intake — opening proposals and assigning reviewers.

Boundary rules:
- Must NOT commit; route handlers commit after the call returns.
- Ballots are created only through ``upstream_reviews.create_review_set``.
"""
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from stemhub.db import review_models as db
from stemhub.db.review_models import ReviewStatus, StageStatus
from stemhub.errors import StageNotActiveError
from stemhub.models.reviews import (
    StageReviewerResponse,
    UpstreamWithReviewsResponse,
)
from stemhub.services import stage_catalog, upstream_reviews

logger = logging.getLogger(__name__)


def _to_reviewer_response(row: db.StemhubStageReviewer) -> StageReviewerResponse:
    return StageReviewerResponse(
        stage_reviewer_id=row.stage_reviewer_id,
        stage_id=row.stage_id,
        user_id=row.user_id,
        created_at=row.created_at,
    )


async def assign_reviewer(
    session: AsyncSession,
    *,
    stage_id: str,
    user_id: str,
) -> StageReviewerResponse:
    """Assign ``user_id`` as a reviewer on a stage.

    Idempotent: assigning an existing reviewer returns the existing row.
    Upstreams already open on the stage are unaffected: a late reviewer only
    votes on upstreams opened after the assignment.

    Raises ``StageNotFoundError`` if the stage does not exist.
    """
    await stage_catalog.get_stage(session, stage_id)

    existing = await stage_catalog.find_assignment(session, stage_id, user_id)
    if existing is not None:
        return _to_reviewer_response(existing)

    reviewer = db.StemhubStageReviewer(stage_id=stage_id, user_id=user_id)
    session.add(reviewer)
    await session.flush()
    await session.refresh(reviewer)
    logger.info("✅ Assigned reviewer %s to stage %s", user_id, stage_id)
    return _to_reviewer_response(reviewer)


async def list_stage_reviewers(
    session: AsyncSession, stage_id: str
) -> list[StageReviewerResponse]:
    """Return the reviewers assigned to a stage (possibly empty).

    Raises ``StageNotFoundError`` if the stage does not exist.
    """
    await stage_catalog.get_stage(session, stage_id)
    rows = await stage_catalog.find_reviewer_assignments(session, stage_id)
    return [_to_reviewer_response(r) for r in rows]


async def open_upstream(
    session: AsyncSession,
    *,
    stage_id: str,
    user_id: str,
    title: str,
    description: str = "",
    guide_path: str | None = None,
) -> UpstreamWithReviewsResponse:
    """Persist a new ``pending`` upstream and fan it out to the stage's reviewers.

    Both writes happen in the caller's transaction, so the reviewer set is
    fixed at the same instant the upstream becomes visible.

    Raises:
        StageNotFoundError:  The stage does not exist.
        StageNotActiveError: The stage is approved or closed.
    """
    stage = await stage_catalog.get_stage(session, stage_id)
    if stage.status != StageStatus.ACTIVE.value:
        raise StageNotActiveError(stage_id, stage.status)

    upstream = db.StemhubUpstream(
        stage_id=stage_id,
        user_id=user_id,
        title=title,
        description=description,
        guide_path=guide_path,
        status=ReviewStatus.PENDING.value,
    )
    session.add(upstream)
    await session.flush()
    await session.refresh(upstream)
    logger.info("✅ Opened upstream '%s' (%s) on stage %s", title, upstream.upstream_id, stage_id)

    reviews = await upstream_reviews.create_review_set(
        session, stage_id=stage_id, upstream_id=upstream.upstream_id
    )
    return UpstreamWithReviewsResponse(
        upstream=upstream_reviews.to_upstream_response(upstream),
        reviews=reviews,
    )
