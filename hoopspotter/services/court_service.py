"""
Court service: detail, reviews, ranking and user submissions.

Reads reuse the rating aggregation of the court query service. Court
submission with a photo is a two-step write (row, then object + metadata);
a failed photo step deletes the freshly created court so no orphan is left.
"""

import asyncio
import logging
import uuid
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hoopspotter.database.models import Court, CourtPhoto, Review, court_with_stats
from hoopspotter.models.schemas import CreateCourtRequest
from hoopspotter.services import storage_service
from hoopspotter.services.court_query_service import (
    calculate_rating_summary,
    serialize_court_row,
)
from hoopspotter.services.errors import (
    BACKEND_EXCEPTIONS,
    CourtNotFoundError,
    PhotoUploadError,
    classify_backend_error,
)
from hoopspotter.utils.datetime_utils import epoch_millis

logger = logging.getLogger(__name__)

RANKING_SIZE = 20
MIN_RATING = 1
MAX_RATING = 5


def _court_to_row(court: Court) -> Dict:
    return {column.name: getattr(court, column.name) for column in Court.__table__.columns}


async def _get_ratings(session: AsyncSession, court_id: UUID) -> List[int]:
    result = await session.execute(select(Review.rating).where(Review.court_id == court_id))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Court detail
# ---------------------------------------------------------------------------


async def get_court_detail(session: AsyncSession, court_id: UUID) -> Optional[Dict]:
    """
    Fetch a court with its photos and review aggregates.

    Returns None if the court does not exist.
    """
    q = select(Court).options(selectinload(Court.photos)).where(Court.id == court_id)
    court = (await session.execute(q)).scalar_one_or_none()
    if not court:
        return None

    review_count, average_rating = calculate_rating_summary(
        await _get_ratings(session, court_id)
    )

    photos = [
        {
            "id": p.id,
            "storage_path": p.storage_path,
            "url": storage_service.get_public_url(p.storage_path),
            "uploaded_by": p.uploaded_by,
            "created_at": p.created_at.isoformat() if p.created_at else None,
        }
        for p in sorted(court.photos, key=lambda x: (x.created_at is None, x.created_at))
    ]

    item = serialize_court_row(_court_to_row(court))
    item.update(
        {
            "review_count": review_count,
            "average_rating": average_rating,
            "distance_meters": None,
            "photos": photos,
        }
    )
    return item


async def list_court_reviews(session: AsyncSession, court_id: UUID) -> List[Dict]:
    """Reviews for a court with author profiles, newest first."""
    q = (
        select(Review)
        .options(selectinload(Review.author))
        .where(Review.court_id == court_id)
        .order_by(Review.created_at.desc())
    )
    rows = (await session.execute(q)).scalars().all()

    return [
        {
            "id": r.id,
            "court_id": r.court_id,
            "author_id": r.author_id,
            "rating": r.rating,
            "comment": r.comment,
            "created_at": r.created_at.isoformat() if r.created_at else None,
            "updated_at": r.updated_at.isoformat() if r.updated_at else None,
            "author": (
                {
                    "id": r.author.id,
                    "display_name": r.author.display_name,
                    "avatar_url": r.author.avatar_url,
                }
                if r.author
                else None
            ),
        }
        for r in rows
    ]


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------


async def get_ranking(session: AsyncSession, limit: int = RANKING_SIZE) -> Dict:
    """
    Top courts by average rating, then review count (nulls last).

    Reads the court_with_stats view. Backend failures (including the view
    not being provisioned) are reported through ``error``/``error_code``.
    """
    c = court_with_stats.c
    q = (
        select(c.id, c.name, c.address, c.average_rating, c.review_count, c.facility_tags)
        .order_by(c.average_rating.desc().nulls_last(), c.review_count.desc().nulls_last())
        .limit(limit)
    )
    try:
        rows = (await session.execute(q)).mappings().all()
    except BACKEND_EXCEPTIONS as e:
        error = classify_backend_error(e)
        logger.error("Failed to fetch court ranking (%s): %s", error.code, e, exc_info=True)
        return {"items": [], "error": error.message, "error_code": error.code}

    items = [
        {
            "rank": rank,
            "id": row["id"],
            "name": row["name"],
            "address": row["address"],
            "average_rating": float(row["average_rating"]) if row["average_rating"] is not None else None,
            "review_count": int(row["review_count"] or 0),
            "facility_tags": list(row["facility_tags"] or []),
        }
        for rank, row in enumerate(rows, start=1)
    ]
    return {"items": items, "error": None, "error_code": None}


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------


async def _delete_court(session: AsyncSession, court_id: UUID) -> None:
    """Compensating delete for a court whose photo step failed."""
    await session.execute(delete(Court).where(Court.id == court_id))
    await session.commit()
    logger.info("Removed court %s after failed photo upload", court_id)


async def create_court(
    session: AsyncSession,
    *,
    payload: CreateCourtRequest,
    author_id: UUID,
    photo: Optional[bytes] = None,
) -> Dict:
    """
    Create a court and, optionally, attach one processed JPEG photo.

    Args:
        session: Database session
        payload: Validated court fields
        author_id: Profile id of the submitting user
        photo: Processed JPEG bytes, or None

    Returns:
        Dict with ``success`` and ``court_id``

    Raises:
        PhotoUploadError: If the photo could not be stored; the court row has
            been deleted again by then
    """
    court_id = uuid.uuid4()
    court = Court(
        id=court_id,
        name=payload.name,
        address=payload.address,
        latitude=payload.latitude,
        longitude=payload.longitude,
        is_free=payload.is_free,
        hoop_count=payload.hoop_count,
        surface=payload.surface,
        opening_hours=payload.opening_hours,
        notes=payload.notes,
        facility_tags=payload.facility_tags,
        created_by=author_id,
    )
    session.add(court)
    await session.commit()
    logger.info("Created court %s (%s)", court_id, payload.name)

    if photo is None:
        return {"success": True, "court_id": court_id}

    storage_path = f"{court_id}/{epoch_millis()}-{uuid.uuid4()}.jpg"
    try:
        await asyncio.to_thread(storage_service.upload_file, photo, storage_path, "image/jpeg")
    except Exception as e:
        logger.error("Failed to upload court photo: %s", e, exc_info=True)
        await _delete_court(session, court_id)
        raise PhotoUploadError("Failed to upload the photo") from e

    try:
        session.add(
            CourtPhoto(
                id=uuid.uuid4(),
                court_id=court_id,
                storage_path=storage_path,
                uploaded_by=author_id,
            )
        )
        await session.commit()
    except BACKEND_EXCEPTIONS as e:
        logger.error("Failed to register court photo: %s", e, exc_info=True)
        await session.rollback()
        await asyncio.to_thread(storage_service.remove_files, [storage_path])
        await _delete_court(session, court_id)
        raise PhotoUploadError("Failed to save the photo") from e

    return {"success": True, "court_id": court_id}


async def create_review(
    session: AsyncSession,
    *,
    court_id: UUID,
    author_id: UUID,
    rating: int,
    comment: Optional[str] = None,
) -> Dict:
    """
    Add a review and return the court's refreshed aggregates.

    Raises:
        ValueError: If the rating is not an integer 1-5
        CourtNotFoundError: If the court does not exist

    Nothing is written in either case.
    """
    if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        raise ValueError(f"Rating must be an integer between {MIN_RATING} and {MAX_RATING}")

    court = await session.get(Court, court_id)
    if not court:
        raise CourtNotFoundError("Court not found")

    review = Review(
        id=uuid.uuid4(),
        court_id=court_id,
        author_id=author_id,
        rating=rating,
        comment=comment,
    )
    session.add(review)
    await session.commit()

    review_count, average_rating = calculate_rating_summary(await _get_ratings(session, court_id))
    return {
        "review_id": review.id,
        "court_id": court_id,
        "review_count": review_count,
        "average_rating": average_rating,
    }
