"""Initial migration

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Staging: raw mixes (FK to mixes added once mixes exists)
    op.create_table(
        "raw_mixes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("provider", sa.String(20), nullable=False),
        sa.Column("source_url", sa.String(500), nullable=False),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("raw_title", sa.String(500), nullable=True),
        sa.Column("raw_description", sa.Text(), nullable=True),
        sa.Column("raw_artist", sa.String(255), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("artwork_url", sa.String(500), nullable=True),
        sa.Column("raw_metadata", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("canonicalized_mix_id", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source_url"),
    )
    op.create_index(op.f("ix_raw_mixes_provider"), "raw_mixes", ["provider"])
    op.create_index(op.f("ix_raw_mixes_external_id"), "raw_mixes", ["external_id"])
    op.create_index(op.f("ix_raw_mixes_status"), "raw_mixes", ["status"])
    op.create_index(op.f("ix_raw_mixes_created_at"), "raw_mixes", ["created_at"])

    op.create_table(
        "raw_tracks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("raw_mix_id", sa.Integer(), nullable=False),
        sa.Column("line_text", sa.Text(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=True),
        sa.Column("timestamp_seconds", sa.Integer(), nullable=True),
        sa.Column("raw_artist", sa.String(255), nullable=True),
        sa.Column("raw_title", sa.String(500), nullable=True),
        sa.Column("source", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["raw_mix_id"], ["raw_mixes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_raw_tracks_raw_mix_id"), "raw_tracks", ["raw_mix_id"])

    # Venues and contexts
    op.create_table(
        "venues",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("city", sa.String(255), nullable=True),
        sa.Column("country", sa.String(255), nullable=True),
        sa.Column("lat", sa.Float(), nullable=True),
        sa.Column("lng", sa.Float(), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("website", sa.String(500), nullable=True),
        sa.Column("external_ids", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_venues_name"), "venues", ["name"])

    op.create_table(
        "contexts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("parent_id", sa.Integer(), nullable=True),
        sa.Column("website", sa.String(500), nullable=True),
        sa.Column("external_ids", sa.JSON(), nullable=True),
        sa.Column("venue_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["parent_id"], ["contexts.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["venue_id"], ["venues.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_contexts_name"), "contexts", ["name"])
    op.create_index(op.f("ix_contexts_type"), "contexts", ["type"])

    # Canonical catalog
    op.create_table(
        "mixes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("audio_url", sa.String(500), nullable=True),
        sa.Column("cover_url", sa.String(500), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("published_date", sa.DateTime(), nullable=True),
        sa.Column("external_ids", sa.JSON(), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("verified_by", sa.String(64), nullable=True),
        sa.Column("verified_at", sa.DateTime(), nullable=True),
        sa.Column("ingestion_source", sa.String(20), nullable=True),
        sa.Column("raw_mix_id", sa.Integer(), nullable=True),
        sa.Column("venue_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["raw_mix_id"], ["raw_mixes.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["venue_id"], ["venues.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_mixes_is_verified"), "mixes", ["is_verified"])
    op.create_index(op.f("ix_mixes_venue_id"), "mixes", ["venue_id"])
    op.create_foreign_key(
        "fk_raw_mixes_canonicalized_mix_id",
        "raw_mixes",
        "mixes",
        ["canonicalized_mix_id"],
        ["id"],
        ondelete="SET NULL",
    )

    for table, name_column, length in (("tracks", "title", 500), ("artists", "name", 255)):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column(name_column, sa.String(length), nullable=False),
            sa.Column(f"{name_column}_key", sa.String(length), nullable=False),
            sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("verified_by", sa.String(64), nullable=True),
            sa.Column("verified_at", sa.DateTime(), nullable=True),
            sa.Column("ingestion_source", sa.String(20), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f(f"ix_{table}_{name_column}"), table, [name_column])
        op.create_index(
            op.f(f"ix_{table}_{name_column}_key"), table, [f"{name_column}_key"]
        )
        op.create_index(op.f(f"ix_{table}_is_verified"), table, ["is_verified"])

    op.create_table(
        "mix_tracks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("mix_id", sa.Integer(), nullable=False),
        sa.Column("track_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["mix_id"], ["mixes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["track_id"], ["tracks.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("mix_id", "position", name="uq_mix_tracks_mix_position"),
    )
    op.create_index(op.f("ix_mix_tracks_mix_id"), "mix_tracks", ["mix_id"])
    op.create_index(op.f("ix_mix_tracks_track_id"), "mix_tracks", ["track_id"])

    op.create_table(
        "track_artists",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("track_id", sa.Integer(), nullable=False),
        sa.Column("artist_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="primary"),
        sa.Column("position", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["track_id"], ["tracks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["artist_id"], ["artists.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("track_id", "artist_id", "role", name="uq_track_artists_link"),
    )
    op.create_index(op.f("ix_track_artists_track_id"), "track_artists", ["track_id"])
    op.create_index(op.f("ix_track_artists_artist_id"), "track_artists", ["artist_id"])

    op.create_table(
        "mix_artists",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("mix_id", sa.Integer(), nullable=False),
        sa.Column("artist_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="dj"),
        sa.ForeignKeyConstraint(["mix_id"], ["mixes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["artist_id"], ["artists.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("mix_id", "artist_id", "role", name="uq_mix_artists_link"),
    )
    op.create_index(op.f("ix_mix_artists_mix_id"), "mix_artists", ["mix_id"])
    op.create_index(op.f("ix_mix_artists_artist_id"), "mix_artists", ["artist_id"])

    op.create_table(
        "track_aliases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("track_id", sa.Integer(), nullable=False),
        sa.Column("alias", sa.String(1000), nullable=False),
        sa.Column("alias_key", sa.String(1000), nullable=False),
        sa.Column("source_type", sa.String(20), nullable=False, server_default="ingestion"),
        sa.Column("mix_id", sa.Integer(), nullable=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["track_id"], ["tracks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["mix_id"], ["mixes.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("track_id", "alias", name="uq_track_aliases_track_alias"),
    )
    op.create_index(op.f("ix_track_aliases_track_id"), "track_aliases", ["track_id"])
    op.create_index(op.f("ix_track_aliases_alias_key"), "track_aliases", ["alias_key"])

    op.create_table(
        "mix_contexts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("mix_id", sa.Integer(), nullable=False),
        sa.Column("context_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["mix_id"], ["mixes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["context_id"], ["contexts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("mix_id", "context_id", "role", name="uq_mix_contexts_link"),
    )
    op.create_index(op.f("ix_mix_contexts_mix_id"), "mix_contexts", ["mix_id"])
    op.create_index(op.f("ix_mix_contexts_context_id"), "mix_contexts", ["context_id"])

    # Processing log
    op.create_table(
        "ingestion_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.String(64), nullable=True),
        sa.Column("raw_mix_id", sa.Integer(), nullable=True),
        sa.Column("worker_type", sa.String(30), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("level", sa.String(10), nullable=False, server_default="info"),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_ingestion_logs_job_id"), "ingestion_logs", ["job_id"])
    op.create_index(op.f("ix_ingestion_logs_raw_mix_id"), "ingestion_logs", ["raw_mix_id"])
    op.create_index(op.f("ix_ingestion_logs_level"), "ingestion_logs", ["level"])
    op.create_index(op.f("ix_ingestion_logs_created_at"), "ingestion_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("ingestion_logs")
    op.drop_table("mix_contexts")
    op.drop_table("track_aliases")
    op.drop_table("mix_artists")
    op.drop_table("track_artists")
    op.drop_table("mix_tracks")
    op.drop_table("artists")
    op.drop_table("tracks")
    op.drop_constraint("fk_raw_mixes_canonicalized_mix_id", "raw_mixes", type_="foreignkey")
    op.drop_table("mixes")
    op.drop_table("contexts")
    op.drop_table("venues")
    op.drop_table("raw_tracks")
    op.drop_table("raw_mixes")
