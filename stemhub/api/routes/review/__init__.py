"""StemHub review route package.

Composes sub-routers for reviewer assignment, upstream intake, ballots and
version history under the shared ``/stemhub`` prefix. Registered in
``stemhub.main`` as:

    app.include_router(review.router, prefix="/api/v1")

Every route under this router requires the gateway-supplied ``X-User-ID``
header; ``require_user_id`` is wired as a router-level dependency.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from stemhub.api.routes.review import stages, upstream_reviews, version_stems
from stemhub.auth.dependencies import require_user_id

router = APIRouter(
    prefix="/stemhub",
    tags=["stemhub"],
    dependencies=[Depends(require_user_id)],
)

router.include_router(stages.router)
router.include_router(upstream_reviews.router)
router.include_router(version_stems.router)

__all__ = ["router"]
