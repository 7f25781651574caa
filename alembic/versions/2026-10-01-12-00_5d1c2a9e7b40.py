"""Initial AniSync schema

Revision ID: 5d1c2a9e7b40
Revises:
Create Date: 2026-10-01 12:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5d1c2a9e7b40"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

mapping_source = sa.Enum("IMPORTED", "MANUAL", "CONFIRMED", name="mappingsource")
import_state = sa.Enum("SUCCESS", "FAILED", "IN_PROGRESS", name="importstate")
watch_status = sa.Enum(
    "WATCHING",
    "COMPLETED",
    "ON_HOLD",
    "DROPPED",
    "PLAN_TO_WATCH",
    name="watchstatus",
)
sync_source = sa.Enum("LIST", "LIBRARY", "MAPPINGS", name="syncsource")
sync_outcome = sa.Enum("ADDED", "UPDATED", "SKIPPED", "ERROR", name="syncoutcome")


def upgrade() -> None:
    op.create_table(
        "anime_mapping",
        sa.Column("mal_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("anidb_id", sa.Integer, nullable=False),
        sa.Column("title", sa.String, nullable=False),
        sa.Column("source", mapping_source, nullable=False),
        sa.Column("confirmed_by", sa.String, nullable=True),
        sa.Column("confidence", sa.Float, nullable=True),
        sa.Column("metadata", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_anime_mapping_anidb_id", "anime_mapping", ["anidb_id"])
    op.create_index("ix_anime_mapping_title", "anime_mapping", ["title"])
    op.create_index("ix_anime_mapping_source", "anime_mapping", ["source"])
    op.create_index("ix_anime_mapping_updated_at", "anime_mapping", ["updated_at"])

    op.create_table(
        "import_status",
        sa.Column("dataset_id", sa.String, primary_key=True),
        sa.Column("status", import_state, nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.String, nullable=True),
        sa.Column("statistics", sa.JSON, nullable=True),
        sa.Column("total_entries", sa.Integer, nullable=True),
        sa.Column("schema_version", sa.String, nullable=True),
        sa.Column("source_url", sa.String, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "anime",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("identity_key", sa.String, nullable=False, unique=True),
        sa.Column("mal_id", sa.Integer, nullable=True, unique=True),
        sa.Column("anidb_id", sa.Integer, nullable=True),
        sa.Column("tvdb_id", sa.Integer, nullable=True),
        sa.Column("tmdb_id", sa.Integer, nullable=True),
        sa.Column("imdb_id", sa.String, nullable=True),
        sa.Column("title", sa.String, nullable=False),
        sa.Column("alternative_titles", sa.JSON, nullable=False),
        sa.Column("genres", sa.JSON, nullable=False),
        sa.Column("studios", sa.JSON, nullable=False),
        sa.Column("media_type", sa.String, nullable=True),
        sa.Column("airing_status", sa.String, nullable=True),
        sa.Column("num_episodes", sa.Integer, nullable=True),
        sa.Column("start_year", sa.Integer, nullable=True),
        sa.Column("last_synced_from_list", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_updated_on_list", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "last_synced_from_library", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column("library_id", sa.String, nullable=True),
        sa.Column("sync_version", sa.Integer, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    for column in (
        "anidb_id",
        "tvdb_id",
        "tmdb_id",
        "imdb_id",
        "title",
        "last_synced_from_list",
        "library_id",
        "is_active",
    ):
        op.create_index(f"ix_anime_{column}", "anime", [column])

    op.create_table(
        "user_list_status",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "anime_id",
            sa.Integer,
            sa.ForeignKey("anime.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String, nullable=False),
        sa.Column("status", watch_status, nullable=True),
        sa.Column("score", sa.Integer, nullable=True),
        sa.Column("num_episodes_watched", sa.Integer, nullable=True),
        sa.Column("is_rewatching", sa.Boolean, nullable=True),
        sa.Column("start_date", sa.Date, nullable=True),
        sa.Column("finish_date", sa.Date, nullable=True),
        sa.Column("priority", sa.Integer, nullable=True),
        sa.Column("num_times_rewatched", sa.Integer, nullable=True),
        sa.Column("rewatch_value", sa.Integer, nullable=True),
        sa.Column("tags", sa.JSON, nullable=True),
        sa.Column("comments", sa.String, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "anime_id", "user_id", name="uq_user_list_status_anime_user"
        ),
    )
    for column in ("anime_id", "user_id", "status"):
        op.create_index(f"ix_user_list_status_{column}", "user_list_status", [column])

    op.create_table(
        "sync_history",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("session_id", sa.String, nullable=True),
        sa.Column("user_id", sa.String, nullable=False),
        sa.Column("source", sync_source, nullable=False),
        sa.Column("title", sa.String, nullable=False),
        sa.Column(
            "anime_id",
            sa.Integer,
            sa.ForeignKey("anime.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("mal_id", sa.Integer, nullable=True),
        sa.Column("library_id", sa.String, nullable=True),
        sa.Column("outcome", sync_outcome, nullable=False),
        sa.Column("match_method", sa.String, nullable=True),
        sa.Column("confidence", sa.Float, nullable=True),
        sa.Column("error_message", sa.String, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    for column in (
        "session_id",
        "user_id",
        "source",
        "anime_id",
        "mal_id",
        "outcome",
        "timestamp",
    ):
        op.create_index(f"ix_sync_history_{column}", "sync_history", [column])

    op.create_table(
        "house_keeping",
        sa.Column("key", sa.String, primary_key=True),
        sa.Column("value", sa.String, nullable=True),
    )


def downgrade() -> None:
    op.drop_table("house_keeping")
    op.drop_table("sync_history")
    op.drop_table("user_list_status")
    op.drop_table("anime")
    op.drop_table("import_status")
    op.drop_table("anime_mapping")
