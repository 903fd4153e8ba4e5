"""
SQLAlchemy ORM models for the HoopSpotter court directory.

Also declares the read-only ``court_with_stats`` view and the SQL for the
``courts_nearby`` function. Both live outside ``Base.metadata`` so that
``create_all`` never tries to create them as tables; they are provisioned
by migrations.
"""

import enum
import uuid

from sqlalchemy import (
    Column,
    Integer,
    Numeric,
    String,
    Text,
    Boolean,
    Float,
    DateTime,
    Enum,
    ForeignKey,
    CheckConstraint,
    Index,
    MetaData,
    Table,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from hoopspotter.database.db import Base


class UserRole(str, enum.Enum):
    """Profile role enum."""

    USER = "user"
    ADMIN = "admin"


class Profile(Base):
    """Public profile row for an authenticated Supabase user (same id as auth.users)."""

    __tablename__ = "profiles"

    id = Column(UUID(as_uuid=True), primary_key=True)
    display_name = Column(String, nullable=True)
    role = Column(
        Enum(UserRole, name="user_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        server_default=UserRole.USER.value,
    )
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    courts = relationship("Court", back_populates="creator")
    reviews = relationship("Review", back_populates="author")


class Court(Base):
    """Outdoor basketball court submitted by a user."""

    __tablename__ = "courts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    address = Column(String, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    is_free = Column(Boolean, nullable=False)
    hoop_count = Column(Integer, nullable=True)
    surface = Column(String(64), nullable=True)  # e.g. asphalt, rubber, urethane
    opening_hours = Column(String(120), nullable=True)
    notes = Column(Text, nullable=True)
    facility_tags = Column(
        ARRAY(Text), nullable=False, server_default=text("'{}'::text[]")
    )
    created_by = Column(UUID(as_uuid=True), ForeignKey("profiles.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    creator = relationship("Profile", back_populates="courts")
    reviews = relationship("Review", back_populates="court", cascade="all, delete-orphan")
    photos = relationship("CourtPhoto", back_populates="court", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("latitude >= -90 AND latitude <= 90", name="ck_courts_latitude_range"),
        CheckConstraint(
            "longitude >= -180 AND longitude <= 180", name="ck_courts_longitude_range"
        ),
        CheckConstraint(
            "hoop_count IS NULL OR hoop_count >= 0", name="ck_courts_hoop_count_non_negative"
        ),
        Index("idx_courts_created_at", "created_at"),
        Index("idx_courts_is_free", "is_free"),
        Index("idx_courts_lat_lng", "latitude", "longitude"),
        Index("idx_courts_facility_tags", "facility_tags", postgresql_using="gin"),
    )


class Review(Base):
    """User review for a court: one 1-5 star rating plus an optional comment."""

    __tablename__ = "reviews"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    court_id = Column(
        UUID(as_uuid=True), ForeignKey("courts.id", ondelete="CASCADE"), nullable=False
    )
    author_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id"), nullable=False)
    rating = Column(Integer, nullable=False)  # 1-5 stars
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    court = relationship("Court", back_populates="reviews")
    author = relationship("Profile", back_populates="reviews")

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
        Index("idx_reviews_court", "court_id"),
        Index("idx_reviews_author", "author_id"),
        Index("idx_reviews_created", "created_at"),
    )


class CourtPhoto(Base):
    """Photo metadata; the object itself lives in the court-photos storage bucket."""

    __tablename__ = "court_photos"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    court_id = Column(
        UUID(as_uuid=True), ForeignKey("courts.id", ondelete="CASCADE"), nullable=False
    )
    storage_path = Column(String(500), nullable=False)
    uploaded_by = Column(UUID(as_uuid=True), ForeignKey("profiles.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    court = relationship("Court", back_populates="photos")

    __table_args__ = (
        Index("idx_court_photos_court", "court_id"),
    )


# ---------------------------------------------------------------------------
# Backend-side read objects (provisioned by migrations, not by create_all)
# ---------------------------------------------------------------------------

view_metadata = MetaData()

court_with_stats = Table(
    "court_with_stats",
    view_metadata,
    Column("id", UUID(as_uuid=True), primary_key=True),
    Column("name", String),
    Column("address", String),
    Column("latitude", Float),
    Column("longitude", Float),
    Column("is_free", Boolean),
    Column("hoop_count", Integer),
    Column("surface", String),
    Column("opening_hours", String),
    Column("notes", Text),
    Column("facility_tags", ARRAY(Text)),
    Column("created_by", UUID(as_uuid=True)),
    Column("created_at", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
    Column("review_count", Integer),
    Column("average_rating", Numeric),
)

COURT_WITH_STATS_VIEW_SQL = """
CREATE OR REPLACE VIEW court_with_stats AS
SELECT
    c.id,
    c.name,
    c.address,
    c.latitude,
    c.longitude,
    c.is_free,
    c.hoop_count,
    c.surface,
    c.opening_hours,
    c.notes,
    c.facility_tags,
    c.created_by,
    c.created_at,
    c.updated_at,
    COUNT(r.id)::integer AS review_count,
    ROUND(AVG(r.rating)::numeric, 1) AS average_rating
FROM courts c
LEFT JOIN reviews r ON r.court_id = c.id
GROUP BY c.id
"""

DROP_COURT_WITH_STATS_VIEW_SQL = "DROP VIEW IF EXISTS court_with_stats"

# Great-circle distance in metres; 6371008.8 is the mean earth radius.
COURTS_NEARBY_FUNCTION_SQL = """
CREATE OR REPLACE FUNCTION courts_nearby(
    lat double precision,
    lng double precision,
    radius_m double precision,
    limit_count integer
)
RETURNS TABLE (
    id uuid,
    name text,
    address text,
    latitude double precision,
    longitude double precision,
    is_free boolean,
    hoop_count integer,
    surface text,
    opening_hours text,
    notes text,
    facility_tags text[],
    created_by uuid,
    created_at timestamptz,
    updated_at timestamptz,
    distance_m double precision,
    average_rating numeric,
    review_count integer
)
LANGUAGE sql STABLE
AS $$
    SELECT * FROM (
        SELECT
            s.id,
            s.name::text,
            s.address::text,
            s.latitude,
            s.longitude,
            s.is_free,
            s.hoop_count,
            s.surface::text,
            s.opening_hours::text,
            s.notes,
            s.facility_tags,
            s.created_by,
            s.created_at,
            s.updated_at,
            2 * 6371008.8 * asin(sqrt(least(1.0,
                power(sin(radians(s.latitude - lat) / 2), 2)
                + cos(radians(lat)) * cos(radians(s.latitude))
                * power(sin(radians(s.longitude - lng) / 2), 2)
            ))) AS distance_m,
            s.average_rating,
            s.review_count
        FROM court_with_stats s
    ) nearby
    WHERE nearby.distance_m <= radius_m
    ORDER BY nearby.distance_m ASC
    LIMIT limit_count
$$
"""

DROP_COURTS_NEARBY_FUNCTION_SQL = (
    "DROP FUNCTION IF EXISTS courts_nearby("
    "double precision, double precision, double precision, integer)"
)
