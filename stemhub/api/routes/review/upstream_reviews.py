"""StemHub upstream review routes — ballots, decisions and review queries.

Endpoint summary:
  POST /stemhub/upstream-reviews                                  — fan out a review set
  GET  /stemhub/upstream-reviews/{upstream_id}                    — ballots for one upstream
  GET  /stemhub/stages/{stage_id}/upstream-reviews                — ballots for a stage
  PUT  /stemhub/upstream-reviews/{stage_id}/{upstream_id}/approve — approve as the caller
  PUT  /stemhub/upstream-reviews/{stage_id}/{upstream_id}/reject  — reject as the caller

Decisions are submitted for the caller's own ballot only.  A caller with no
ballot on the upstream gets HTTP 403 with a ``NoStandingResponse`` body and
nothing is written.  The decision endpoints own their transaction (the
service commits or rolls back), and events are scheduled only afterwards.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from stemhub.api.routes.review.errors import http_error
from stemhub.auth.dependencies import require_user_id
from stemhub.db import get_db
from stemhub.db.review_models import ReviewStatus
from stemhub.errors import ReviewEngineError
from stemhub.models.reviews import (
    DecisionResponse,
    NoStandingResponse,
    PromotionSummaryResponse,
    ReviewSetCreate,
    ReviewSetResponse,
    StageReviewsResponse,
    UpstreamWithReviewsResponse,
)
from stemhub.services import upstream_reviews
from stemhub.services.review_events import emit_event_background
from stemhub.services.upstream_reviews import NoStanding

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/upstream-reviews",
    response_model=ReviewSetResponse,
    status_code=status.HTTP_201_CREATED,
    operation_id="createUpstreamReviewSet",
    summary="Create ballots for an upstream from the stage's reviewers",
)
async def create_review_set(
    body: ReviewSetCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
) -> ReviewSetResponse:
    """Fan an existing upstream out to every reviewer currently on its stage.

    Returns 404 if the upstream is not on the given stage and 409 if its
    ballots already exist.
    """
    try:
        reviews = await upstream_reviews.create_review_set(
            db, stage_id=body.stage_id, upstream_id=body.upstream_id
        )
    except ReviewEngineError as exc:
        raise http_error(exc)
    await db.commit()

    background_tasks.add_task(
        emit_event_background,
        "upstream_created",
        {
            "stageId": body.stage_id,
            "upstreamId": body.upstream_id,
            "reviewerUserIds": [r.reviewer_user_id for r in reviews],
        },
    )
    return ReviewSetResponse(upstream_id=body.upstream_id, stage_id=body.stage_id, reviews=reviews)


@router.get(
    "/upstream-reviews/{upstream_id}",
    response_model=UpstreamWithReviewsResponse,
    operation_id="getUpstreamReviews",
    summary="Get an upstream with all of its ballots",
)
async def get_upstream_reviews(
    upstream_id: str,
    db: AsyncSession = Depends(get_db),
) -> UpstreamWithReviewsResponse:
    try:
        return await upstream_reviews.get_ballots_for_upstream(db, upstream_id)
    except ReviewEngineError as exc:
        raise http_error(exc)


@router.get(
    "/stages/{stage_id}/upstream-reviews",
    response_model=StageReviewsResponse,
    operation_id="listStageUpstreamReviews",
    summary="List every reviewed upstream on a stage, newest first",
)
async def list_stage_upstream_reviews(
    stage_id: str,
    db: AsyncSession = Depends(get_db),
) -> StageReviewsResponse:
    try:
        return await upstream_reviews.list_reviews_for_stage(db, stage_id)
    except ReviewEngineError as exc:
        raise http_error(exc)


async def _decide(
    *,
    stage_id: str,
    upstream_id: str,
    user_id: str,
    decision: str,
    db: AsyncSession,
    background_tasks: BackgroundTasks,
) -> DecisionResponse | JSONResponse:
    try:
        result = await upstream_reviews.submit_decision(
            db,
            stage_id=stage_id,
            upstream_id=upstream_id,
            user_id=user_id,
            decision=decision,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    except ReviewEngineError as exc:
        raise http_error(exc)

    if isinstance(result, NoStanding):
        body = NoStandingResponse(message=result.message, reason=result.reason)
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content=body.model_dump(by_alias=True),
        )

    if result.recorded:
        background_tasks.add_task(
            emit_event_background,
            "upstream_reviewed",
            {
                "stageId": stage_id,
                "upstreamId": upstream_id,
                "userId": user_id,
                "decision": decision,
                "aggregate": result.aggregate,
            },
        )
    if result.finalized:
        background_tasks.add_task(
            emit_event_background,
            "upstream_finalized",
            {
                "stageId": stage_id,
                "upstreamId": upstream_id,
                "status": result.aggregate,
                "versionStemCount": (
                    result.promotion.version_stem_count if result.promotion else 0
                ),
            },
        )

    promotion = None
    if result.promotion is not None:
        promotion = PromotionSummaryResponse(
            upstream_id=result.promotion.upstream_id,
            stage_id=result.promotion.stage_id,
            version=result.promotion.version,
            version_stem_count=result.promotion.version_stem_count,
        )
    return DecisionResponse(
        message=f"Upstream {decision}; aggregate is {result.aggregate}",
        upstream_id=result.upstream_id,
        review_id=result.review_id,
        decision=result.decision,
        aggregate=result.aggregate,
        promotion=promotion,
    )


@router.put(
    "/upstream-reviews/{stage_id}/{upstream_id}/approve",
    response_model=DecisionResponse,
    responses={403: {"model": NoStandingResponse}},
    operation_id="approveUpstream",
    summary="Approve an upstream with the caller's ballot",
)
async def approve_upstream(
    stage_id: str,
    upstream_id: str,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(require_user_id),
) -> DecisionResponse | JSONResponse:
    """Approve the upstream.

    If this is the last outstanding approval, the upstream is promoted into
    the stage's version history in the same transaction.
    """
    return await _decide(
        stage_id=stage_id,
        upstream_id=upstream_id,
        user_id=user_id,
        decision=ReviewStatus.APPROVED.value,
        db=db,
        background_tasks=background_tasks,
    )


@router.put(
    "/upstream-reviews/{stage_id}/{upstream_id}/reject",
    response_model=DecisionResponse,
    responses={403: {"model": NoStandingResponse}},
    operation_id="rejectUpstream",
    summary="Reject an upstream with the caller's ballot",
)
async def reject_upstream(
    stage_id: str,
    upstream_id: str,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(require_user_id),
) -> DecisionResponse | JSONResponse:
    """Reject the caller's ballot.

    The upstream becomes ``rejected`` once every ballot is cast and at least
    one of them is a rejection.
    """
    return await _decide(
        stage_id=stage_id,
        upstream_id=upstream_id,
        user_id=user_id,
        decision=ReviewStatus.REJECTED.value,
        db=db,
        background_tasks=background_tasks,
    )
