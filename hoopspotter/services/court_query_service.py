"""
Court query service: filtered listing and nearby search.

Translates UI-level filters into one of two backend strategies:

* nearby mode: the ``courts_nearby`` database function, which already
  annotates rows with distance and rating aggregates;
* listing mode: the ``court_with_stats`` view, falling back to the base
  ``courts``/``reviews`` tables (aggregated here) when the view has not been
  provisioned.

Both paths return the same CourtSummary dict shape. This module never writes.
"""

import logging
import math
from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import select, text
from sqlalchemy.exc import ProgrammingError
from sqlalchemy.ext.asyncio import AsyncSession

from hoopspotter.database.models import Court, Review, court_with_stats
from hoopspotter.models.schemas import DEFAULT_RADIUS_METERS, CourtSearchFilters
from hoopspotter.services.errors import (
    BACKEND_EXCEPTIONS,
    classify_backend_error,
    is_missing_relation,
)

logger = logging.getLogger(__name__)

COURT_FIELDS = (
    "id",
    "name",
    "address",
    "latitude",
    "longitude",
    "is_free",
    "hoop_count",
    "surface",
    "opening_hours",
    "notes",
    "facility_tags",
    "created_by",
    "created_at",
    "updated_at",
)

NEARBY_QUERY = text(
    "SELECT * FROM courts_nearby(:lat, :lng, :radius_m, :limit_count)"
)


# ---------------------------------------------------------------------------
# Aggregation / serialization helpers
# ---------------------------------------------------------------------------


def calculate_rating_summary(ratings: Iterable[int]) -> Tuple[int, Optional[float]]:
    """
    Aggregate raw review ratings.

    The mean is rounded half-up to one decimal, so [5, 5, 4] gives 4.7 and
    a mean of 4.25 gives 4.3.

    Returns:
        (review_count, average_rating); average_rating is None without reviews
    """
    values = [r for r in ratings if r is not None]
    if not values:
        return 0, None
    mean = sum(values) / len(values)
    return len(values), math.floor(mean * 10 + 0.5) / 10


def _to_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def _isoformat(value) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat() if hasattr(value, "isoformat") else str(value)


def serialize_court_row(row: Mapping) -> Dict:
    """Copy the court columns out of a row mapping into a plain dict."""
    item = {field: row.get(field) for field in COURT_FIELDS}
    item["facility_tags"] = list(item["facility_tags"] or [])
    item["created_at"] = _isoformat(item["created_at"])
    item["updated_at"] = _isoformat(item["updated_at"])
    return item


def _apply_listing_filters(query, columns, filters: CourtSearchFilters):
    """Add the server-side predicates shared by both listing strategies."""
    if filters.is_free is not None:
        query = query.where(columns.is_free == filters.is_free)
    if filters.facility_tag:
        query = query.where(columns.facility_tags.contains([filters.facility_tag]))
    return query


# ---------------------------------------------------------------------------
# Nearby mode
# ---------------------------------------------------------------------------


async def _search_nearby(session: AsyncSession, filters: CourtSearchFilters) -> List[Dict]:
    """
    Run the nearby-search function and normalize its rows.

    ``is_free`` is applied after the call because ``courts_nearby`` does not
    take it as a parameter. Distance ordering and the radius are left exactly
    as the backend returns them.
    """
    location = filters.use_location
    radius = location.radius_meters if location.radius_meters is not None else DEFAULT_RADIUS_METERS
    result = await session.execute(
        NEARBY_QUERY,
        {
            "lat": float(location.lat),
            "lng": float(location.lng),
            "radius_m": float(radius),
            "limit_count": filters.limit,
        },
    )
    rows = result.mappings().all()

    items = []
    for row in rows:
        if filters.is_free is not None and row.get("is_free") != filters.is_free:
            continue
        item = serialize_court_row(row)
        distance = _to_float(row.get("distance_m"))
        item["review_count"] = int(row.get("review_count") or 0)
        item["average_rating"] = _to_float(row.get("average_rating"))
        item["distance_meters"] = max(distance, 0.0) if distance is not None else None
        items.append(item)
    return items


# ---------------------------------------------------------------------------
# Listing mode
# ---------------------------------------------------------------------------


async def _list_from_stats_view(
    session: AsyncSession, filters: CourtSearchFilters
) -> List[Dict]:
    """
    Read one page (plus one lookahead row) from the court_with_stats view.

    Runs inside a savepoint so a missing view leaves the request's
    transaction usable for the fallback query.
    """
    query = select(court_with_stats).order_by(
        court_with_stats.c.created_at.desc(), court_with_stats.c.id.desc()
    )
    query = _apply_listing_filters(query, court_with_stats.c, filters)
    query = query.offset(filters.offset).limit(filters.limit + 1)

    async with session.begin_nested():
        result = await session.execute(query)
        rows = result.mappings().all()

    items = []
    for row in rows:
        item = serialize_court_row(row)
        item["review_count"] = int(row.get("review_count") or 0)
        item["average_rating"] = _to_float(row.get("average_rating"))
        item["distance_meters"] = None
        items.append(item)
    return items


async def _list_from_base_tables(
    session: AsyncSession, filters: CourtSearchFilters
) -> List[Dict]:
    """Read one page from ``courts`` and aggregate its ratings locally."""
    courts = Court.__table__
    query = select(courts).order_by(courts.c.created_at.desc(), courts.c.id.desc())
    query = _apply_listing_filters(query, courts.c, filters)
    query = query.offset(filters.offset).limit(filters.limit + 1)

    rows = (await session.execute(query)).mappings().all()
    ratings_map = await _batch_get_ratings(session, [row["id"] for row in rows])

    items = []
    for row in rows:
        item = serialize_court_row(row)
        review_count, average_rating = calculate_rating_summary(ratings_map.get(row["id"], []))
        item["review_count"] = review_count
        item["average_rating"] = average_rating
        item["distance_meters"] = None
        items.append(item)
    return items


async def _batch_get_ratings(session: AsyncSession, court_ids: List) -> Dict:
    """Return {court_id: [rating, ...]} for the given courts in a single query."""
    if not court_ids:
        return {}
    result = await session.execute(
        select(Review.court_id, Review.rating).where(Review.court_id.in_(court_ids))
    )
    ratings_map: Dict = defaultdict(list)
    for court_id, rating in result.all():
        ratings_map[court_id].append(rating)
    return ratings_map


async def _list_courts(session: AsyncSession, filters: CourtSearchFilters) -> List[Dict]:
    """Listing strategy selection: stats view first, base tables if the view is missing."""
    try:
        return await _list_from_stats_view(session, filters)
    except ProgrammingError as e:
        if not is_missing_relation(e):
            raise
        logger.warning(
            "court_with_stats view unavailable, aggregating ratings from base tables: %s", e
        )
    return await _list_from_base_tables(session, filters)


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


async def search_courts(session: AsyncSession, filters: CourtSearchFilters) -> Dict:
    """
    Return an ordered page of court summaries for the given filters.

    Args:
        session: Database session
        filters: Search criteria. ``use_location`` switches to nearby mode,
            where ``offset`` is ignored.

    Returns:
        Dict with ``items``, ``mode``, ``limit``, ``offset``, ``has_next_page``,
        ``error`` and ``error_code``. Backend failures never raise: nearby mode
        degrades to an empty list, listing mode reports a user-facing message.
    """
    if filters.use_location is not None:
        try:
            items = await _search_nearby(session, filters)
        except BACKEND_EXCEPTIONS as e:
            logger.error("Failed to fetch nearby courts: %s", e, exc_info=True)
            items = []
        return {
            "items": items,
            "mode": "nearby",
            "limit": filters.limit,
            "offset": 0,
            "has_next_page": False,
            "error": None,
            "error_code": None,
        }

    try:
        rows = await _list_courts(session, filters)
    except BACKEND_EXCEPTIONS as e:
        error = classify_backend_error(e)
        logger.error("Failed to fetch courts (%s): %s", error.code, e, exc_info=True)
        return {
            "items": [],
            "mode": "listing",
            "limit": filters.limit,
            "offset": filters.offset,
            "has_next_page": False,
            "error": error.message,
            "error_code": error.code,
        }

    return {
        "items": rows[: filters.limit],
        "mode": "listing",
        "limit": filters.limit,
        "offset": filters.offset,
        "has_next_page": len(rows) > filters.limit,
        "error": None,
        "error_code": None,
    }
