"""
Pydantic models for API request/response validation.
"""

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 50
MAX_PAGE = 10_000
DEFAULT_RADIUS_METERS = 5000
MAX_FACILITY_TAGS = 20
MAX_FACILITY_TAG_LENGTH = 32


def _blank_to_none(value):
    """Treat empty / whitespace-only optional strings as missing."""
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


# ---------------------------------------------------------------------------
# Court search
# ---------------------------------------------------------------------------


class LocationFilter(BaseModel):
    """Centre point and radius for a nearby search."""

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    radius_meters: Optional[float] = Field(default=None, gt=0)


class CourtSearchFilters(BaseModel):
    """Filter criteria accepted by the court query service."""

    is_free: Optional[bool] = None
    facility_tag: Optional[str] = None
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)
    offset: int = Field(default=0, ge=0)
    use_location: Optional[LocationFilter] = None

    @field_validator("facility_tag", mode="before")
    @classmethod
    def _strip_tag(cls, value):
        return _blank_to_none(value)


class CourtSummary(BaseModel):
    """Court row plus computed review aggregates (and distance for nearby searches)."""

    id: UUID
    name: str
    address: str
    latitude: float
    longitude: float
    is_free: bool
    hoop_count: Optional[int] = None
    surface: Optional[str] = None
    opening_hours: Optional[str] = None
    notes: Optional[str] = None
    facility_tags: List[str] = []
    created_by: Optional[UUID] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    review_count: int = 0
    average_rating: Optional[float] = None
    distance_meters: Optional[float] = None


class CourtSearchResponse(BaseModel):
    """Page of court summaries; ``error`` carries a user-facing message on backend failure."""

    items: List[CourtSummary]
    mode: str  # 'listing' | 'nearby'
    page: int
    limit: int
    has_next_page: bool
    error: Optional[str] = None
    error_code: Optional[str] = None


# ---------------------------------------------------------------------------
# Court detail / reviews / ranking
# ---------------------------------------------------------------------------


class CourtPhotoResponse(BaseModel):
    """Photo attached to a court."""

    id: UUID
    storage_path: str
    url: str
    uploaded_by: Optional[UUID] = None
    created_at: Optional[str] = None


class CourtDetailResponse(CourtSummary):
    """Full court detail with photos."""

    photos: List[CourtPhotoResponse] = []


class ReviewAuthor(BaseModel):
    id: UUID
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


class ReviewResponse(BaseModel):
    """Review with its author profile."""

    id: UUID
    court_id: UUID
    author_id: UUID
    rating: int
    comment: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    author: Optional[ReviewAuthor] = None


class RankingEntry(BaseModel):
    rank: int
    id: UUID
    name: str
    address: str
    average_rating: Optional[float] = None
    review_count: int = 0
    facility_tags: List[str] = []


class RankingResponse(BaseModel):
    """Top-rated courts. ``error`` is set when the stats view is unavailable."""

    items: List[RankingEntry]
    error: Optional[str] = None
    error_code: Optional[str] = None


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------


class CreateCourtRequest(BaseModel):
    """Court submission form (the optional photo is validated separately)."""

    name: str = Field(min_length=2)
    address: str = Field(min_length=5)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    is_free: bool
    hoop_count: Optional[int] = Field(default=None, ge=0)
    surface: Optional[str] = Field(default=None, max_length=64)
    opening_hours: Optional[str] = Field(default=None, max_length=120)
    notes: Optional[str] = Field(default=None, max_length=2000)
    facility_tags: List[str] = []

    @field_validator("name", "address", mode="before")
    @classmethod
    def _strip_required(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("surface", "opening_hours", "notes", "hoop_count", mode="before")
    @classmethod
    def _optional_blank(cls, value):
        return _blank_to_none(value)

    @field_validator("facility_tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        tags: List[str] = []
        for raw in value:
            tag = raw.strip() if isinstance(raw, str) else raw
            if not tag or tag in tags:
                continue
            if isinstance(tag, str) and len(tag) > MAX_FACILITY_TAG_LENGTH:
                raise ValueError(
                    f"Facility tags must be {MAX_FACILITY_TAG_LENGTH} characters or fewer"
                )
            tags.append(tag)
        if len(tags) > MAX_FACILITY_TAGS:
            raise ValueError(f"At most {MAX_FACILITY_TAGS} facility tags are allowed")
        return tags


class CreateCourtResponse(BaseModel):
    success: bool
    court_id: UUID


class CreateReviewRequest(BaseModel):
    """Request to review a court."""

    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("comment", mode="before")
    @classmethod
    def _optional_blank(cls, value):
        return _blank_to_none(value)


class ReviewActionResponse(BaseModel):
    """Result of creating a review, including the court's refreshed aggregates."""

    review_id: UUID
    court_id: UUID
    review_count: int
    average_rating: Optional[float] = None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class ProfileResponse(BaseModel):
    id: UUID
    display_name: Optional[str] = None
    role: str
    avatar_url: Optional[str] = None
