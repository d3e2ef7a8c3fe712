"""StemHub version history routes (read-only).

  GET /stemhub/stages/{stage_id}/version-stems            — snapshot rows of a stage
  GET /stemhub/tracks/{track_id}/version-stems?version=N  — newest stem per category at ≤ N
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from stemhub.api.routes.review.errors import http_error
from stemhub.db import get_db
from stemhub.errors import ReviewEngineError
from stemhub.models.reviews import TrackVersionResponse, VersionStemListResponse
from stemhub.services import version_stems

router = APIRouter()


@router.get(
    "/stages/{stage_id}/version-stems",
    response_model=VersionStemListResponse,
    operation_id="listStageVersionStems",
    summary="List the version stems promoted into a stage",
)
async def list_stage_version_stems(
    stage_id: str,
    db: AsyncSession = Depends(get_db),
) -> VersionStemListResponse:
    try:
        rows = await version_stems.list_version_stems_for_stage(db, stage_id)
    except ReviewEngineError as exc:
        raise http_error(exc)
    return VersionStemListResponse(stage_id=stage_id, version_stems=rows)


@router.get(
    "/tracks/{track_id}/version-stems",
    response_model=TrackVersionResponse,
    operation_id="getTrackVersionStems",
    summary="Resolve the newest stem per category at or below a version",
)
async def get_track_version_stems(
    track_id: str,
    version: int = Query(..., ge=0, description="Highest stage version to include"),
    db: AsyncSession = Depends(get_db),
) -> TrackVersionResponse:
    try:
        stems = await version_stems.latest_stems_per_category(db, track_id, version)
    except ReviewEngineError as exc:
        raise http_error(exc)
    return TrackVersionResponse(track_id=track_id, version=version, stems=stems)
