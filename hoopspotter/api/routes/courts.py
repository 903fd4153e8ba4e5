"""Court route handlers (discovery, detail, ranking and submissions)."""

import logging
import math
from typing import List, Optional
from uuid import UUID

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    UploadFile,
)
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from hoopspotter.api.auth_dependencies import RequestContext, require_user
from hoopspotter.api.routes import limiter
from hoopspotter.database.db import get_db_session
from hoopspotter.models.schemas import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE,
    MAX_PAGE_SIZE,
    CourtDetailResponse,
    CourtSearchFilters,
    CourtSearchResponse,
    CreateCourtRequest,
    CreateCourtResponse,
    CreateReviewRequest,
    LocationFilter,
    RankingResponse,
    ReviewActionResponse,
    ReviewResponse,
)
from hoopspotter.services import auth_service, court_photo_service, court_query_service, court_service
from hoopspotter.services.errors import CourtNotFoundError, PhotoUploadError

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# Query parameter parsing
# ---------------------------------------------------------------------------


def parse_boolean_param(value: Optional[str]) -> Optional[bool]:
    """'true'/'1' -> True, 'false'/'0' -> False, anything else -> None."""
    if value in ("true", "1"):
        return True
    if value in ("false", "0"):
        return False
    return None


def parse_number_param(value: Optional[str]) -> Optional[float]:
    """Parse a finite number; blank, malformed, NaN and infinite values give None."""
    if value is None or not value.strip():
        return None
    try:
        parsed = float(value)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def parse_page_param(value: Optional[str]) -> int:
    """
    1-based page number capped at MAX_PAGE.

    Anything that is not a positive integer means page 1. Pages past the
    cap read as the (empty) last page instead of an offset the database
    cannot represent.
    """
    try:
        page = int(value)
    except (TypeError, ValueError):
        return 1
    return min(max(page, 1), MAX_PAGE)


def parse_limit_param(value: Optional[str]) -> int:
    """Page size clamped to 1..MAX_PAGE_SIZE (default DEFAULT_PAGE_SIZE)."""
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return DEFAULT_PAGE_SIZE
    return min(max(limit, 1), MAX_PAGE_SIZE)


def build_search_filters(
    is_free: Optional[str] = None,
    lat: Optional[str] = None,
    lng: Optional[str] = None,
    radius: Optional[str] = None,
    tag: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
) -> CourtSearchFilters:
    """
    Turn raw URL query values into search filters.

    Location mode is used only when both coordinates parse and are in range.
    A non-positive radius falls back to the default radius.
    """
    page_number = parse_page_param(page)
    page_size = parse_limit_param(limit)

    lat_value = parse_number_param(lat)
    lng_value = parse_number_param(lng)
    radius_value = parse_number_param(radius)

    location = None
    if lat_value is not None and lng_value is not None:
        try:
            location = LocationFilter(
                lat=lat_value,
                lng=lng_value,
                radius_meters=radius_value if radius_value and radius_value > 0 else None,
            )
        except ValidationError:
            logger.debug("Ignoring out-of-range coordinates lat=%s lng=%s", lat, lng)

    return CourtSearchFilters(
        is_free=parse_boolean_param(is_free),
        facility_tag=tag,
        limit=page_size,
        offset=(page_number - 1) * page_size,
        use_location=location,
    )


def _validation_error(e: ValidationError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail=jsonable_encoder(e.errors(include_url=False, include_context=False)),
    )


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


@router.get("/api/courts", response_model=CourtSearchResponse)
async def list_courts(
    is_free: Optional[str] = Query(None, alias="isFree"),
    free: Optional[str] = None,
    lat: Optional[str] = None,
    lng: Optional[str] = None,
    radius: Optional[str] = None,
    tag: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Search courts (public).

    With ``lat`` and ``lng`` this is a nearby search ordered by distance;
    otherwise a newest-first listing paged by ``page``/``limit``. Backend
    failures come back as ``error``/``error_code`` with an empty page.
    """
    try:
        filters = build_search_filters(
            is_free=is_free if is_free is not None else free,
            lat=lat,
            lng=lng,
            radius=radius,
            tag=tag,
            page=page,
            limit=limit,
        )
        result = await court_query_service.search_courts(session, filters)
        return {
            "items": result["items"],
            "mode": result["mode"],
            "page": filters.offset // filters.limit + 1 if result["mode"] == "listing" else 1,
            "limit": result["limit"],
            "has_next_page": result["has_next_page"],
            "error": result["error"],
            "error_code": result["error_code"],
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error searching courts: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Error searching courts")


@router.get("/api/ranking", response_model=RankingResponse)
async def get_ranking(session: AsyncSession = Depends(get_db_session)):
    """Top 20 courts by rating (public)."""
    try:
        return await court_service.get_ranking(session)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error getting ranking: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Error getting ranking")


@router.get("/api/courts/{court_id}", response_model=CourtDetailResponse)
async def get_court(court_id: UUID, session: AsyncSession = Depends(get_db_session)):
    """Get court detail with photos and rating aggregates (public)."""
    try:
        court = await court_service.get_court_detail(session, court_id)
        if not court:
            raise HTTPException(status_code=404, detail="Court not found")
        return court
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error getting court %s: %s", court_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="Error getting court")


@router.get("/api/courts/{court_id}/reviews", response_model=List[ReviewResponse])
async def get_court_reviews(court_id: UUID, session: AsyncSession = Depends(get_db_session)):
    """List reviews for a court, newest first (public)."""
    try:
        return await court_service.list_court_reviews(session, court_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error getting reviews for court %s: %s", court_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="Error getting reviews")


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------


@router.post("/api/courts", response_model=CreateCourtResponse, status_code=201)
@limiter.limit("10/minute")
async def submit_court(
    request: Request,
    name: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    latitude: Optional[str] = Form(None),
    longitude: Optional[str] = Form(None),
    is_free: Optional[str] = Form(None, alias="isFree"),
    hoop_count: Optional[str] = Form(None, alias="hoopCount"),
    surface: Optional[str] = Form(None),
    opening_hours: Optional[str] = Form(None, alias="openingHours"),
    notes: Optional[str] = Form(None),
    facility_tags: Optional[str] = Form(None, alias="facilityTags"),
    photo: Optional[UploadFile] = File(None),
    context: RequestContext = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Submit a new court (authenticated).

    Multipart form with the court fields and an optional ``photo``. All
    fields and the photo are validated before anything is written.
    """
    try:
        try:
            payload = CreateCourtRequest(
                name=name,
                address=address,
                latitude=latitude,
                longitude=longitude,
                is_free=is_free,
                hoop_count=hoop_count,
                surface=surface,
                opening_hours=opening_hours,
                notes=notes,
                facility_tags=facility_tags,
            )
        except ValidationError as e:
            raise _validation_error(e)

        processed = None
        if photo is not None and photo.filename:
            try:
                processed = await court_photo_service.process_court_photo(photo)
            except ValueError as e:
                raise HTTPException(status_code=422, detail=str(e))

        await auth_service.ensure_profile(session, context.user_id, context.email)
        return await court_service.create_court(
            session,
            payload=payload,
            author_id=context.user_id,
            photo=processed,
        )
    except PhotoUploadError as e:
        raise HTTPException(
            status_code=502,
            detail=f"{e} The court was not saved. Please try again.",
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error submitting court: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Error submitting court")


@router.post(
    "/api/courts/{court_id}/reviews", response_model=ReviewActionResponse, status_code=201
)
@limiter.limit("10/minute")
async def submit_review(
    request: Request,
    court_id: UUID,
    payload: CreateReviewRequest,
    context: RequestContext = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Review a court (authenticated)."""
    try:
        await auth_service.ensure_profile(session, context.user_id, context.email)
        return await court_service.create_review(
            session,
            court_id=court_id,
            author_id=context.user_id,
            rating=payload.rating,
            comment=payload.comment,
        )
    except CourtNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error submitting review for court %s: %s", court_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="Error submitting review")
