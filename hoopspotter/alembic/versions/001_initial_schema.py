"""initial_schema

Revision ID: 001
Revises:
Create Date: 2026-09-01

Create the base court directory tables:
- profiles (one row per Supabase auth user)
- courts
- reviews (1-5 star rating + optional comment)
- court_photos (metadata for objects in the court-photos bucket)
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create profiles, courts, reviews and court_photos."""
    user_role = postgresql.ENUM("user", "admin", name="user_role", create_type=False)
    user_role.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("role", user_role, nullable=False, server_default="user"),
        sa.Column("avatar_url", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "courts",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("address", sa.String(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("is_free", sa.Boolean(), nullable=False),
        sa.Column("hoop_count", sa.Integer(), nullable=True),
        sa.Column("surface", sa.String(64), nullable=True),
        sa.Column("opening_hours", sa.String(120), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "facility_tags",
            postgresql.ARRAY(sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::text[]"),
        ),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["created_by"], ["profiles.id"]),
        sa.CheckConstraint("latitude >= -90 AND latitude <= 90", name="ck_courts_latitude_range"),
        sa.CheckConstraint(
            "longitude >= -180 AND longitude <= 180", name="ck_courts_longitude_range"
        ),
        sa.CheckConstraint(
            "hoop_count IS NULL OR hoop_count >= 0", name="ck_courts_hoop_count_non_negative"
        ),
    )
    op.create_index("idx_courts_created_at", "courts", ["created_at"])
    op.create_index("idx_courts_is_free", "courts", ["is_free"])
    op.create_index("idx_courts_lat_lng", "courts", ["latitude", "longitude"])
    op.create_index(
        "idx_courts_facility_tags", "courts", ["facility_tags"], postgresql_using="gin"
    )

    op.create_table(
        "reviews",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("court_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("author_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["court_id"], ["courts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["author_id"], ["profiles.id"]),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
    )
    op.create_index("idx_reviews_court", "reviews", ["court_id"])
    op.create_index("idx_reviews_author", "reviews", ["author_id"])
    op.create_index("idx_reviews_created", "reviews", ["created_at"])

    op.create_table(
        "court_photos",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("court_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("storage_path", sa.String(500), nullable=False),
        sa.Column("uploaded_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["court_id"], ["courts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["uploaded_by"], ["profiles.id"]),
    )
    op.create_index("idx_court_photos_court", "court_photos", ["court_id"])


def downgrade() -> None:
    """Drop the base tables."""
    op.drop_index("idx_court_photos_court", table_name="court_photos")
    op.drop_table("court_photos")
    op.drop_index("idx_reviews_created", table_name="reviews")
    op.drop_index("idx_reviews_author", table_name="reviews")
    op.drop_index("idx_reviews_court", table_name="reviews")
    op.drop_table("reviews")
    op.drop_index("idx_courts_facility_tags", table_name="courts")
    op.drop_index("idx_courts_lat_lng", table_name="courts")
    op.drop_index("idx_courts_is_free", table_name="courts")
    op.drop_index("idx_courts_created_at", table_name="courts")
    op.drop_table("courts")
    op.drop_table("profiles")
    sa.Enum(name="user_role").drop(op.get_bind(), checkfirst=True)
