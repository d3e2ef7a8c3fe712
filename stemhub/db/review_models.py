"""SQLAlchemy ORM models for the StemHub review and promotion engine.

Tables:
- stemhub_tracks: Catalog tracks (owner context read during promotion)
- stemhub_categories: Per-track stem categories (drums, bass, vox, ...)
- stemhub_stages: Versioned working sessions on a track
- stemhub_stage_reviewers: Users assigned to review a stage
- stemhub_upstreams: Proposed stem-set changes awaiting consensus
- stemhub_upstream_reviews: One reviewer's ballot on one upstream
- stemhub_stems: Current working stems attached to a track
- stemhub_version_stems: Append-only stem snapshots written on promotion

Status columns are plain strings; the accepted values live in the
``StageStatus`` and ``ReviewStatus`` enums below.  Relationship attributes
are declared for schema readability only; service code resolves every link
with an explicit query through ``stemhub.services.stage_catalog``.
"""
from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stemhub.db.database import Base


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _new_uuid() -> str:
    return str(uuid.uuid4())


class StageStatus(str, enum.Enum):
    """Lifecycle of a stage.  Only the promotion engine writes ``APPROVE``."""

    ACTIVE = "active"
    APPROVE = "approve"
    CLOSED = "closed"


class ReviewStatus(str, enum.Enum):
    """Shared vocabulary for ballot decisions and upstream aggregates."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class StemhubTrack(Base):
    """A catalog track.  Owned by the catalog service; read-only here."""

    __tablename__ = "stemhub_tracks"

    track_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_uuid)
    owner_user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now
    )

    stages: Mapped[list[StemhubStage]] = relationship(
        "StemhubStage", back_populates="track", cascade="all, delete-orphan"
    )


class StemhubCategory(Base):
    """A stem category on a track, e.g. name="Drums", instrument="kit"."""

    __tablename__ = "stemhub_categories"

    category_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_uuid)
    track_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("stemhub_tracks.track_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    instrument: Mapped[str] = mapped_column(String(255), nullable=False, default="")


class StemhubStage(Base):
    """A versioned working session on a track.

    ``version`` increases monotonically per track.  ``guide_path`` is set from
    the approved upstream when it is promoted.
    """

    __tablename__ = "stemhub_stages"

    stage_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_uuid)
    track_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("stemhub_tracks.track_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Stage owner (the musician who opened the session)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=StageStatus.ACTIVE.value, index=True
    )
    guide_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now
    )

    track: Mapped[StemhubTrack] = relationship("StemhubTrack", back_populates="stages")


class StemhubStageReviewer(Base):
    """Assignment of a user as a reviewer on a stage."""

    __tablename__ = "stemhub_stage_reviewers"
    __table_args__ = (
        UniqueConstraint("stage_id", "user_id", name="uq_stemhub_stage_reviewers_stage_user"),
    )

    stage_reviewer_id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_new_uuid
    )
    stage_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("stemhub_stages.stage_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now
    )


class StemhubUpstream(Base):
    """A proposed stem-set change targeting exactly one stage.

    ``status`` is derived from the upstream's ballots and is written only by
    the consensus evaluator: ``pending`` until every ballot is cast, then
    ``approved`` or ``rejected`` exactly once.
    """

    __tablename__ = "stemhub_upstreams"

    upstream_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_uuid)
    stage_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("stemhub_stages.stage_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # User who opened the upstream
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReviewStatus.PENDING.value, index=True
    )
    guide_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    # Stamped once by the fan-out; the ballot set is frozen from then on
    reviews_fanned_out_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now
    )

    reviews: Mapped[list[StemhubUpstreamReview]] = relationship(
        "StemhubUpstreamReview", back_populates="upstream", cascade="all, delete-orphan"
    )


class StemhubUpstreamReview(Base):
    """One reviewer's ballot on one upstream.

    Exactly one row per (upstream, stage reviewer), created ``pending`` when the
    review set is fanned out.  ``decided_at`` is stamped when the ballot moves
    to a terminal decision; it never moves again.
    """

    __tablename__ = "stemhub_upstream_reviews"
    __table_args__ = (
        UniqueConstraint(
            "upstream_id",
            "stage_reviewer_id",
            name="uq_stemhub_upstream_reviews_upstream_reviewer",
        ),
        Index("ix_stemhub_upstream_reviews_upstream_status", "upstream_id", "status"),
    )

    review_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_uuid)
    upstream_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("stemhub_upstreams.upstream_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stage_reviewer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("stemhub_stage_reviewers.stage_reviewer_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReviewStatus.PENDING.value
    )
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now
    )

    upstream: Mapped[StemhubUpstream] = relationship(
        "StemhubUpstream", back_populates="reviews"
    )


class StemhubStem(Base):
    """A stem currently attached to a track (mutable working state)."""

    __tablename__ = "stemhub_stems"

    stem_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_uuid)
    track_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("stemhub_tracks.track_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("stemhub_categories.category_id", ondelete="SET NULL"),
        nullable=True,
    )
    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    stem_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    key: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bpm: Mapped[str | None] = mapped_column(String(20), nullable=True)
    audio_wave_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now
    )


class StemhubVersionStem(Base):
    """Immutable snapshot of a stem at a stage version.

    Written only by the promotion engine, once per stem per successful
    promotion.  Never updated or deleted by the engine.
    """

    __tablename__ = "stemhub_version_stems"
    __table_args__ = (
        Index("ix_stemhub_version_stems_track_category_version", "track_id", "category_id", "version"),
    )

    version_stem_id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_new_uuid
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    stem_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    key: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bpm: Mapped[str | None] = mapped_column(String(20), nullable=True)
    audio_wave_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    # Track owner at promotion time
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    category_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("stemhub_categories.category_id", ondelete="SET NULL"),
        nullable=True,
    )
    stage_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("stemhub_stages.stage_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    track_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("stemhub_tracks.track_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now
    )
