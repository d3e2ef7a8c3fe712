"""Create StemHub review and promotion tables.

Revision ID: 0001_stemhub_review_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

Ballots (stemhub_upstream_reviews) hold one row per (upstream, stage reviewer):
  pending   — fanned out, not yet cast
  approved  — reviewer accepted the upstream
  rejected  — reviewer refused the upstream

A unique constraint on (upstream_id, stage_reviewer_id) enforces one ballot
per reviewer per upstream.  stemhub_upstreams.reviews_fanned_out_at marks
the one fan-out an upstream may have, even when it produced no ballots.
stemhub_version_stems is append-only and is written only when an upstream
is promoted.
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_stemhub_review_schema"
down_revision = None
branch_labels = None
depends_on = None


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    op.create_table(
        "stemhub_tracks",
        sa.Column("track_id", sa.String(36), nullable=False),
        sa.Column("owner_user_id", sa.String(36), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("track_id"),
    )
    op.create_index("ix_stemhub_tracks_owner_user_id", "stemhub_tracks", ["owner_user_id"])

    op.create_table(
        "stemhub_categories",
        sa.Column("category_id", sa.String(36), nullable=False),
        sa.Column("track_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("instrument", sa.String(255), nullable=False, server_default=""),
        sa.ForeignKeyConstraint(["track_id"], ["stemhub_tracks.track_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("category_id"),
    )
    op.create_index("ix_stemhub_categories_track_id", "stemhub_categories", ["track_id"])

    op.create_table(
        "stemhub_stages",
        sa.Column("stage_id", sa.String(36), nullable=False),
        sa.Column("track_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("title", sa.String(255), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("guide_path", sa.String(1024), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["track_id"], ["stemhub_tracks.track_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("stage_id"),
    )
    op.create_index("ix_stemhub_stages_track_id", "stemhub_stages", ["track_id"])
    op.create_index("ix_stemhub_stages_status", "stemhub_stages", ["status"])

    op.create_table(
        "stemhub_stage_reviewers",
        sa.Column("stage_reviewer_id", sa.String(36), nullable=False),
        sa.Column("stage_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["stage_id"], ["stemhub_stages.stage_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("stage_reviewer_id"),
        sa.UniqueConstraint("stage_id", "user_id", name="uq_stemhub_stage_reviewers_stage_user"),
    )
    op.create_index("ix_stemhub_stage_reviewers_stage_id", "stemhub_stage_reviewers", ["stage_id"])
    op.create_index("ix_stemhub_stage_reviewers_user_id", "stemhub_stage_reviewers", ["user_id"])

    op.create_table(
        "stemhub_upstreams",
        sa.Column("upstream_id", sa.String(36), nullable=False),
        sa.Column("stage_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("title", sa.String(255), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("guide_path", sa.String(1024), nullable=True),
        sa.Column("reviews_fanned_out_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["stage_id"], ["stemhub_stages.stage_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("upstream_id"),
    )
    op.create_index("ix_stemhub_upstreams_stage_id", "stemhub_upstreams", ["stage_id"])
    op.create_index("ix_stemhub_upstreams_status", "stemhub_upstreams", ["status"])

    op.create_table(
        "stemhub_upstream_reviews",
        sa.Column("review_id", sa.String(36), nullable=False),
        sa.Column("upstream_id", sa.String(36), nullable=False),
        sa.Column("stage_reviewer_id", sa.String(36), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(
            ["upstream_id"], ["stemhub_upstreams.upstream_id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["stage_reviewer_id"],
            ["stemhub_stage_reviewers.stage_reviewer_id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("review_id"),
        sa.UniqueConstraint(
            "upstream_id",
            "stage_reviewer_id",
            name="uq_stemhub_upstream_reviews_upstream_reviewer",
        ),
    )
    op.create_index(
        "ix_stemhub_upstream_reviews_upstream_id", "stemhub_upstream_reviews", ["upstream_id"]
    )
    op.create_index(
        "ix_stemhub_upstream_reviews_stage_reviewer_id",
        "stemhub_upstream_reviews",
        ["stage_reviewer_id"],
    )
    op.create_index(
        "ix_stemhub_upstream_reviews_upstream_status",
        "stemhub_upstream_reviews",
        ["upstream_id", "status"],
    )

    op.create_table(
        "stemhub_stems",
        sa.Column("stem_id", sa.String(36), nullable=False),
        sa.Column("track_id", sa.String(36), nullable=False),
        sa.Column("category_id", sa.String(36), nullable=True),
        sa.Column("file_name", sa.String(512), nullable=False),
        sa.Column("stem_hash", sa.String(128), nullable=False),
        sa.Column("file_path", sa.String(1024), nullable=False),
        sa.Column("key", sa.String(50), nullable=True),
        sa.Column("bpm", sa.String(20), nullable=True),
        sa.Column("audio_wave_path", sa.String(1024), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["track_id"], ["stemhub_tracks.track_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["category_id"], ["stemhub_categories.category_id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("stem_id"),
    )
    op.create_index("ix_stemhub_stems_track_id", "stemhub_stems", ["track_id"])

    op.create_table(
        "stemhub_version_stems",
        sa.Column("version_stem_id", sa.String(36), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("stem_hash", sa.String(128), nullable=False),
        sa.Column("file_path", sa.String(1024), nullable=False),
        sa.Column("file_name", sa.String(512), nullable=False),
        sa.Column("key", sa.String(50), nullable=True),
        sa.Column("bpm", sa.String(20), nullable=True),
        sa.Column("audio_wave_path", sa.String(1024), nullable=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("category_id", sa.String(36), nullable=True),
        sa.Column("stage_id", sa.String(36), nullable=False),
        sa.Column("track_id", sa.String(36), nullable=False),
        _created_at("uploaded_at"),
        sa.ForeignKeyConstraint(
            ["category_id"], ["stemhub_categories.category_id"], ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(["stage_id"], ["stemhub_stages.stage_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["track_id"], ["stemhub_tracks.track_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("version_stem_id"),
    )
    op.create_index("ix_stemhub_version_stems_stage_id", "stemhub_version_stems", ["stage_id"])
    op.create_index("ix_stemhub_version_stems_track_id", "stemhub_version_stems", ["track_id"])
    op.create_index(
        "ix_stemhub_version_stems_track_category_version",
        "stemhub_version_stems",
        ["track_id", "category_id", "version"],
    )


def downgrade() -> None:
    op.drop_table("stemhub_version_stems")
    op.drop_table("stemhub_stems")
    op.drop_table("stemhub_upstream_reviews")
    op.drop_table("stemhub_upstreams")
    op.drop_table("stemhub_stage_reviewers")
    op.drop_table("stemhub_stages")
    op.drop_table("stemhub_categories")
    op.drop_table("stemhub_tracks")
