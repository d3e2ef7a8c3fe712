"""Pydantic v2 request/response models for the StemHub review API.

All wire-format fields use camelCase via CamelModel.  Python code uses
snake_case throughout; only serialisation to JSON uses camelCase.
"""
from __future__ import annotations

from datetime import datetime

from pydantic import Field

from stemhub.models.base import CamelModel


# ── Reviewer assignment ───────────────────────────────────────────────────────


class StageReviewerCreate(CamelModel):
    """Body for POST /stemhub/stages/{stage_id}/reviewers."""

    user_id: str = Field(..., min_length=1, description="User to assign as a reviewer")


class StageReviewerResponse(CamelModel):
    """Wire representation of a reviewer assignment."""

    stage_reviewer_id: str
    stage_id: str
    user_id: str
    created_at: datetime


class StageReviewerListResponse(CamelModel):
    stage_id: str
    reviewers: list[StageReviewerResponse]


# ── Upstreams and ballots ─────────────────────────────────────────────────────


class UpstreamCreate(CamelModel):
    """Body for POST /stemhub/stages/{stage_id}/upstreams."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    guide_path: str | None = Field(
        None, description="Storage path of the guide mix to apply on promotion"
    )


class UpstreamResponse(CamelModel):
    """Wire representation of an upstream proposal."""

    upstream_id: str
    stage_id: str
    user_id: str
    title: str
    description: str
    status: str
    guide_path: str | None = None
    created_at: datetime


class UpstreamReviewResponse(CamelModel):
    """One reviewer's ballot on an upstream."""

    review_id: str
    upstream_id: str
    stage_reviewer_id: str
    reviewer_user_id: str
    status: str
    decided_at: datetime | None = None
    created_at: datetime


class ReviewSetCreate(CamelModel):
    """Body for POST /stemhub/upstream-reviews."""

    upstream_id: str = Field(..., min_length=1)
    stage_id: str = Field(..., min_length=1)


class ReviewSetResponse(CamelModel):
    """Ballots created by fanning an upstream out to its stage's reviewers."""

    upstream_id: str
    stage_id: str
    reviews: list[UpstreamReviewResponse]


class UpstreamWithReviewsResponse(CamelModel):
    """An upstream together with every ballot cast (or pending) on it."""

    upstream: UpstreamResponse
    reviews: list[UpstreamReviewResponse]


class StageReviewsResponse(CamelModel):
    """Every upstream on a stage with its ballots, newest upstream first."""

    stage_id: str
    upstreams: list[UpstreamWithReviewsResponse]


# ── Decisions and promotion ───────────────────────────────────────────────────


class PromotionSummaryResponse(CamelModel):
    """Summary of the snapshot written when an upstream was promoted."""

    upstream_id: str
    stage_id: str
    version: int
    version_stem_count: int


class DecisionResponse(CamelModel):
    """Response for PUT /stemhub/upstream-reviews/{stage_id}/{upstream_id}/{approve|reject}."""

    success: bool = True
    message: str
    upstream_id: str
    review_id: str
    decision: str
    aggregate: str
    promotion: PromotionSummaryResponse | None = None


class NoStandingResponse(CamelModel):
    """Body returned with HTTP 403 when the caller has no ballot to cast."""

    success: bool = False
    message: str
    reason: str


# ── Version history ───────────────────────────────────────────────────────────


class VersionStemResponse(CamelModel):
    """Wire representation of an immutable version-stem snapshot."""

    version_stem_id: str
    version: int
    stem_hash: str
    file_path: str
    file_name: str
    key: str | None = None
    bpm: str | None = None
    audio_wave_path: str | None = None
    user_id: str
    category_id: str | None = None
    stage_id: str
    track_id: str
    uploaded_at: datetime


class VersionStemListResponse(CamelModel):
    stage_id: str
    version_stems: list[VersionStemResponse]


class CategoryVersionStem(CamelModel):
    """Latest snapshot for one category at or below a requested version."""

    category_id: str
    category: str
    stem: VersionStemResponse


class TrackVersionResponse(CamelModel):
    """Response for GET /stemhub/tracks/{track_id}/version-stems?version=N."""

    track_id: str
    version: int
    stems: list[CategoryVersionStem]
