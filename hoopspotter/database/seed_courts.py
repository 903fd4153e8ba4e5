"""
Seed demo profiles, courts and reviews from CSV files.

Idempotent: rows are matched by id and never overwritten, and reviews are
only added to courts that have none yet. Enabled with SEED_DEMO_DATA=true.
"""

import csv
import logging
import uuid
from pathlib import Path
from typing import Optional

from sqlalchemy import select

from hoopspotter.database.db import AsyncSessionLocal
from hoopspotter.database.models import Court, Profile, Review, UserRole

logger = logging.getLogger(__name__)

SEED_DIR = Path(__file__).resolve().parent.parent / "seed"
TAG_SEPARATOR = "|"


def _read_csv(filename: str) -> list:
    csv_path = SEED_DIR / filename
    if not csv_path.exists():
        logger.warning("Seed CSV not found: %s", csv_path)
        return []
    with open(csv_path, "r", encoding="utf-8") as f:
        return list(csv.DictReader(f))


def _optional_int(val: str) -> Optional[int]:
    return int(val) if val and val.strip() else None


def parse_facility_tags(val: str) -> list:
    """Split a ``|``-separated tag cell into a list of trimmed tags."""
    if not val:
        return []
    return [tag.strip() for tag in val.split(TAG_SEPARATOR) if tag.strip()]


async def _seed_profiles(session) -> int:
    """Seed demo profiles. Returns count of new rows."""
    created = 0
    for row in _read_csv("profiles.csv"):
        profile_id = uuid.UUID(row["id"])
        if await session.get(Profile, profile_id):
            continue
        session.add(
            Profile(
                id=profile_id,
                display_name=row["display_name"],
                role=UserRole(row.get("role") or UserRole.USER.value),
            )
        )
        created += 1
    await session.flush()
    return created


async def _seed_courts(session) -> int:
    """Seed demo courts. Returns count of new rows."""
    created = 0
    for row in _read_csv("courts.csv"):
        court_id = uuid.UUID(row["id"])
        if await session.get(Court, court_id):
            continue
        session.add(
            Court(
                id=court_id,
                name=row["name"],
                address=row["address"],
                latitude=float(row["latitude"]),
                longitude=float(row["longitude"]),
                is_free=row["is_free"].strip().lower() == "true",
                hoop_count=_optional_int(row.get("hoop_count")),
                surface=row.get("surface") or None,
                opening_hours=row.get("opening_hours") or None,
                notes=row.get("notes") or None,
                facility_tags=parse_facility_tags(row.get("facility_tags")),
                created_by=uuid.UUID(row["created_by"]),
            )
        )
        created += 1
    await session.flush()
    return created


async def _seed_reviews(session) -> int:
    """Seed demo reviews for courts without any. Returns count of new rows."""
    rows = _read_csv("reviews.csv")
    court_ids = {uuid.UUID(row["court_id"]) for row in rows}
    if not court_ids:
        return 0

    result = await session.execute(
        select(Review.court_id).where(Review.court_id.in_(court_ids)).distinct()
    )
    reviewed = set(result.scalars().all())

    created = 0
    for row in rows:
        court_id = uuid.UUID(row["court_id"])
        if court_id in reviewed:
            continue
        session.add(
            Review(
                id=uuid.uuid4(),
                court_id=court_id,
                author_id=uuid.UUID(row["author_id"]),
                rating=int(row["rating"]),
                comment=row.get("comment") or None,
            )
        )
        created += 1
    await session.flush()
    return created


async def seed_courts(session=None):
    """Seed demo data. Called during app startup when SEED_DEMO_DATA=true."""
    if session is None:
        async with AsyncSessionLocal() as session:
            return await seed_courts(session)

    profiles_created = await _seed_profiles(session)
    courts_created = await _seed_courts(session)
    reviews_created = await _seed_reviews(session)
    await session.commit()

    if profiles_created:
        logger.info("Seeded %d new profiles", profiles_created)
    if courts_created:
        logger.info("Seeded %d new courts", courts_created)
    if reviews_created:
        logger.info("Seeded %d new reviews", reviews_created)
    return {
        "profiles": profiles_created,
        "courts": courts_created,
        "reviews": reviews_created,
    }
