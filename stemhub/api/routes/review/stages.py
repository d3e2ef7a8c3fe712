"""StemHub stage routes — reviewer assignment and upstream intake.

Endpoint summary:
  POST /stemhub/stages/{stage_id}/reviewers  — assign a reviewer (idempotent)
  GET  /stemhub/stages/{stage_id}/reviewers  — list assigned reviewers
  POST /stemhub/stages/{stage_id}/upstreams  — open an upstream and fan out ballots

Opening an upstream fixes its reviewer set: one ``pending`` ballot is created
per reviewer assigned at that moment, in the same transaction as the upstream.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from stemhub.api.routes.review.errors import http_error
from stemhub.auth.dependencies import require_user_id
from stemhub.db import get_db
from stemhub.errors import ReviewEngineError
from stemhub.models.reviews import (
    StageReviewerCreate,
    StageReviewerListResponse,
    StageReviewerResponse,
    UpstreamCreate,
    UpstreamWithReviewsResponse,
)
from stemhub.services import upstreams
from stemhub.services.review_events import emit_event_background

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/stages/{stage_id}/reviewers",
    response_model=StageReviewerResponse,
    status_code=status.HTTP_201_CREATED,
    operation_id="assignStageReviewer",
    summary="Assign a reviewer to a stage",
)
async def assign_stage_reviewer(
    stage_id: str,
    body: StageReviewerCreate,
    db: AsyncSession = Depends(get_db),
    _user_id: str = Depends(require_user_id),
) -> StageReviewerResponse:
    """Assign a user as a reviewer on the stage.

    The reviewer votes on upstreams opened from now on; upstreams already
    under review keep their original ballot set.
    """
    try:
        reviewer = await upstreams.assign_reviewer(db, stage_id=stage_id, user_id=body.user_id)
    except ReviewEngineError as exc:
        raise http_error(exc)
    await db.commit()
    return reviewer


@router.get(
    "/stages/{stage_id}/reviewers",
    response_model=StageReviewerListResponse,
    operation_id="listStageReviewers",
    summary="List reviewers assigned to a stage",
)
async def list_stage_reviewers(
    stage_id: str,
    db: AsyncSession = Depends(get_db),
) -> StageReviewerListResponse:
    try:
        reviewers = await upstreams.list_stage_reviewers(db, stage_id)
    except ReviewEngineError as exc:
        raise http_error(exc)
    return StageReviewerListResponse(stage_id=stage_id, reviewers=reviewers)


@router.post(
    "/stages/{stage_id}/upstreams",
    response_model=UpstreamWithReviewsResponse,
    status_code=status.HTTP_201_CREATED,
    operation_id="openUpstream",
    summary="Open an upstream proposal on a stage",
)
async def open_upstream(
    stage_id: str,
    body: UpstreamCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(require_user_id),
) -> UpstreamWithReviewsResponse:
    """Open an upstream authored by the caller and create its ballots.

    Returns 409 if the stage is no longer active.
    """
    try:
        opened = await upstreams.open_upstream(
            db,
            stage_id=stage_id,
            user_id=user_id,
            title=body.title,
            description=body.description,
            guide_path=body.guide_path,
        )
    except ReviewEngineError as exc:
        raise http_error(exc)
    await db.commit()

    background_tasks.add_task(
        emit_event_background,
        "upstream_created",
        {
            "stageId": stage_id,
            "upstreamId": opened.upstream.upstream_id,
            "userId": user_id,
            "reviewerUserIds": [r.reviewer_user_id for r in opened.reviews],
        },
    )
    return opened
