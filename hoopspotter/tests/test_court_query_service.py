"""
Tests for court_query_service: rating aggregation, listing strategy selection
and fallback, nearby search, and backend error mapping.
"""

import uuid
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
import pytz
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from hoopspotter.database.models import Court, Profile, Review
from hoopspotter.models.schemas import CourtSearchFilters, LocationFilter
from hoopspotter.services import court_query_service
from hoopspotter.services.court_query_service import calculate_rating_summary, search_courts
from hoopspotter.tests.fakes import FakeDriverError, make_result

BASE_TIME = datetime(2026, 6, 1, 12, 0, tzinfo=pytz.UTC)
OWNER_ID = uuid.UUID("00000000-0000-4000-8000-000000000001")


def _court_row(i, **overrides):
    row = {
        "id": uuid.UUID(int=i + 1),
        "name": f"Court {i}",
        "address": "Tokyo Chiyoda 1-1",
        "latitude": 35.68,
        "longitude": 139.76,
        "is_free": True,
        "hoop_count": 2,
        "surface": None,
        "opening_hours": None,
        "notes": None,
        "facility_tags": None,
        "created_by": OWNER_ID,
        "created_at": BASE_TIME - timedelta(hours=i),
        "updated_at": None,
    }
    row.update(overrides)
    return row


def _missing_relation_error():
    return ProgrammingError(
        "SELECT ... FROM court_with_stats", {}, FakeDriverError("42P01", "relation does not exist")
    )


# ============================================================================
# calculate_rating_summary
# ============================================================================


class TestCalculateRatingSummary:
    """Tests for the rating aggregation rule."""

    def test_no_ratings(self):
        assert calculate_rating_summary([]) == (0, None)

    def test_mean_rounded_to_one_decimal(self):
        """[5, 5, 4] averages 4.666... and rounds to 4.7."""
        assert calculate_rating_summary([5, 5, 4]) == (3, 4.7)

    def test_half_rounds_up(self):
        """A mean of 4.25 rounds up to 4.3 and 3.75 to 3.8."""
        assert calculate_rating_summary([5, 4, 4, 4]) == (4, 4.3)
        assert calculate_rating_summary([4, 4, 4, 3]) == (4, 3.8)

    def test_single_rating(self):
        assert calculate_rating_summary([3]) == (1, 3.0)

    def test_none_entries_ignored(self):
        assert calculate_rating_summary([None, 4, 2]) == (2, 3.0)

    def test_accepts_generator(self):
        assert calculate_rating_summary(r for r in [1, 2]) == (2, 1.5)


# ============================================================================
# serialize_court_row
# ============================================================================


class TestSerializeCourtRow:
    def test_timestamps_become_iso_strings(self):
        item = court_query_service.serialize_court_row(_court_row(0))
        assert item["created_at"] == BASE_TIME.isoformat()
        assert item["updated_at"] is None

    def test_null_tags_become_empty_list(self):
        item = court_query_service.serialize_court_row(_court_row(0, facility_tags=None))
        assert item["facility_tags"] == []


# ============================================================================
# Listing mode (mocked session)
# ============================================================================


class TestListingMode:
    """Listing strategy selection with a mocked session."""

    @pytest.mark.asyncio
    async def test_reads_stats_view_and_trims_lookahead_row(self, mock_session):
        """limit + 1 rows from the view means there is a next page; only limit are returned."""
        rows = [_court_row(i, review_count=i, average_rating=4.5) for i in range(13)]
        mock_session.execute.return_value = make_result(rows=rows)

        result = await search_courts(mock_session, CourtSearchFilters(limit=12))

        assert result["mode"] == "listing"
        assert len(result["items"]) == 12
        assert result["has_next_page"] is True
        assert result["error"] is None
        assert result["items"][0]["review_count"] == 0
        assert result["items"][1]["average_rating"] == 4.5
        assert result["items"][0]["distance_meters"] is None
        mock_session.execute.assert_awaited_once()
        mock_session.begin_nested.assert_called_once()

    @pytest.mark.asyncio
    async def test_last_page_has_no_next_page(self, mock_session):
        rows = [_court_row(i) for i in range(3)]
        mock_session.execute.return_value = make_result(rows=rows)

        result = await search_courts(mock_session, CourtSearchFilters(limit=12, offset=12))

        assert len(result["items"]) == 3
        assert result["has_next_page"] is False
        assert result["offset"] == 12

    @pytest.mark.asyncio
    async def test_query_carries_filters_and_pagination(self, mock_session):
        mock_session.execute.return_value = make_result(rows=[])

        await search_courts(
            mock_session,
            CourtSearchFilters(is_free=False, facility_tag="照明", limit=12, offset=24),
        )

        query = mock_session.execute.await_args.args[0]
        sql = str(query.compile(dialect=postgresql.dialect()))
        assert "court_with_stats" in sql
        assert "is_free" in sql
        assert "facility_tags" in sql
        assert "ORDER BY court_with_stats.created_at DESC, court_with_stats.id DESC" in sql
        params = query.compile(dialect=postgresql.dialect()).params
        assert 13 in params.values()
        assert 24 in params.values()

    @pytest.mark.asyncio
    async def test_falls_back_to_base_tables_when_view_missing(self, mock_session):
        """A missing view switches to courts + locally aggregated ratings."""
        rows = [_court_row(0), _court_row(1)]
        ratings = [(rows[0]["id"], 5), (rows[0]["id"], 5), (rows[0]["id"], 4)]
        mock_session.execute.side_effect = [
            _missing_relation_error(),
            make_result(rows=rows),
            make_result(tuples=ratings),
        ]

        result = await search_courts(mock_session, CourtSearchFilters(limit=12))

        assert result["error"] is None
        assert [item["id"] for item in result["items"]] == [rows[0]["id"], rows[1]["id"]]
        assert result["items"][0]["review_count"] == 3
        assert result["items"][0]["average_rating"] == 4.7
        assert result["items"][1]["review_count"] == 0
        assert result["items"][1]["average_rating"] is None
        assert mock_session.execute.await_count == 3
        fallback_sql = str(
            mock_session.execute.await_args_list[1].args[0].compile(dialect=postgresql.dialect())
        )
        assert "FROM courts" in fallback_sql
        assert "ORDER BY courts.created_at DESC, courts.id DESC" in fallback_sql

    @pytest.mark.asyncio
    async def test_fallback_with_no_rows_skips_ratings_query(self, mock_session):
        mock_session.execute.side_effect = [_missing_relation_error(), make_result(rows=[])]

        result = await search_courts(mock_session, CourtSearchFilters())

        assert result["items"] == []
        assert result["has_next_page"] is False
        assert mock_session.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_other_programming_errors_do_not_trigger_fallback(self, mock_session):
        """Only "relation does not exist" switches strategy."""
        mock_session.execute.side_effect = ProgrammingError(
            "SELECT", {}, FakeDriverError("42703", "column does not exist")
        )

        result = await search_courts(mock_session, CourtSearchFilters())

        assert result["items"] == []
        assert result["error_code"] == "query_failed"
        assert result["error"]
        mock_session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_base_tables_reports_schema_missing(self, mock_session):
        mock_session.execute.side_effect = [_missing_relation_error(), _missing_relation_error()]

        result = await search_courts(mock_session, CourtSearchFilters())

        assert result["items"] == []
        assert result["error_code"] == "schema_missing"

    @pytest.mark.asyncio
    async def test_unreachable_backend(self, mock_session):
        mock_session.execute.side_effect = OperationalError(
            "SELECT", {}, ConnectionRefusedError("connection refused")
        )

        result = await search_courts(mock_session, CourtSearchFilters())

        assert result["error_code"] == "backend_unavailable"
        assert result["items"] == []

    @pytest.mark.asyncio
    async def test_socket_error_is_backend_unavailable(self, mock_session):
        mock_session.execute.side_effect = ConnectionRefusedError("connection refused")

        result = await search_courts(mock_session, CourtSearchFilters())

        assert result["error_code"] == "backend_unavailable"

    @pytest.mark.asyncio
    async def test_invalid_credentials(self, mock_session):
        mock_session.execute.side_effect = OperationalError(
            "SELECT", {}, FakeDriverError("28P01", "password authentication failed")
        )

        result = await search_courts(mock_session, CourtSearchFilters())

        assert result["error_code"] == "invalid_credentials"

    @pytest.mark.asyncio
    async def test_error_messages_are_distinct(self, mock_session):
        errors = [
            OperationalError("SELECT", {}, ConnectionRefusedError("refused")),
            OperationalError("SELECT", {}, FakeDriverError("28P01")),
            IntegrityError("SELECT", {}, FakeDriverError("23505")),
        ]
        messages = set()
        for error in errors:
            mock_session.execute.side_effect = error
            result = await search_courts(mock_session, CourtSearchFilters())
            messages.add(result["error"])
        assert len(messages) == 3


# ============================================================================
# Nearby mode (mocked session)
# ============================================================================


class TestNearbyMode:
    """Nearby search with a mocked session."""

    def _filters(self, **kwargs):
        return CourtSearchFilters(
            use_location=LocationFilter(lat=35.681236, lng=139.767125, radius_meters=6000),
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_calls_nearby_function_with_parameters(self, mock_session):
        mock_session.execute.return_value = make_result(rows=[])

        await search_courts(mock_session, self._filters(limit=5))

        args = mock_session.execute.await_args.args
        assert "courts_nearby" in str(args[0])
        assert args[1] == {
            "lat": 35.681236,
            "lng": 139.767125,
            "radius_m": 6000.0,
            "limit_count": 5,
        }

    @pytest.mark.asyncio
    async def test_default_radius(self, mock_session):
        mock_session.execute.return_value = make_result(rows=[])
        filters = CourtSearchFilters(use_location=LocationFilter(lat=35.0, lng=139.0))

        await search_courts(mock_session, filters)

        assert mock_session.execute.await_args.args[1]["radius_m"] == 5000.0

    @pytest.mark.asyncio
    async def test_keeps_backend_order_and_distance(self, mock_session):
        rows = [
            _court_row(2, distance_m=120.5, review_count=3, average_rating=4.7),
            _court_row(1, distance_m=4730.0, review_count=0, average_rating=None),
        ]
        mock_session.execute.return_value = make_result(rows=rows)

        result = await search_courts(mock_session, self._filters(offset=24))

        assert result["mode"] == "nearby"
        assert [item["distance_meters"] for item in result["items"]] == [120.5, 4730.0]
        assert result["items"][0]["average_rating"] == 4.7
        assert result["items"][1]["average_rating"] is None
        assert result["has_next_page"] is False
        assert result["offset"] == 0

    @pytest.mark.asyncio
    async def test_distance_never_negative(self, mock_session):
        mock_session.execute.return_value = make_result(rows=[_court_row(0, distance_m=-0.0001)])

        result = await search_courts(mock_session, self._filters())

        assert result["items"][0]["distance_meters"] == 0.0

    @pytest.mark.asyncio
    async def test_is_free_post_filter(self, mock_session):
        rows = [
            _court_row(0, is_free=True, distance_m=10.0),
            _court_row(1, is_free=False, distance_m=20.0),
            _court_row(2, is_free=True, distance_m=30.0),
        ]
        mock_session.execute.return_value = make_result(rows=rows)

        free = await search_courts(mock_session, self._filters(is_free=True))
        paid = await search_courts(mock_session, self._filters(is_free=False))

        assert [item["is_free"] for item in free["items"]] == [True, True]
        assert [item["distance_meters"] for item in paid["items"]] == [20.0]

    @pytest.mark.asyncio
    async def test_backend_failure_yields_empty_list_without_error(self, mock_session):
        mock_session.execute.side_effect = ProgrammingError(
            "SELECT", {}, FakeDriverError("42883", "function courts_nearby does not exist")
        )

        result = await search_courts(mock_session, self._filters())

        assert result["items"] == []
        assert result["error"] is None
        assert result["error_code"] is None
        assert result["mode"] == "nearby"


# ============================================================================
# Against a real database
# ============================================================================


async def _seed_listing(db_session, count=14):
    db_session.add(Profile(id=OWNER_ID, display_name="Owner"))
    courts = []
    for i in range(count):
        court = Court(
            id=uuid.uuid4(),
            name=f"Court {i:02d}",
            address="Tokyo Chiyoda 1-1",
            latitude=35.0 + i * 0.01,
            longitude=139.0,
            is_free=i % 2 == 0,
            facility_tags=["照明"] if i % 3 == 0 else ["ベンチ"],
            created_by=OWNER_ID,
            created_at=BASE_TIME - timedelta(hours=i),
        )
        courts.append(court)
        db_session.add(court)
    await db_session.flush()
    for rating in (5, 5, 4):
        db_session.add(
            Review(id=uuid.uuid4(), court_id=courts[0].id, author_id=OWNER_ID, rating=rating)
        )
    await db_session.commit()
    return courts


@pytest_asyncio.fixture
async def listing_courts(db_session):
    return await _seed_listing(db_session)


@pytest_asyncio.fixture
async def nearby_courts(db_session, stats_objects):
    db_session.add(Profile(id=OWNER_ID, display_name="Owner"))
    specs = [
        ("Tokyo Station Court", 35.6813, 139.7670, True),
        ("Toyosu Riverside", 35.64477, 139.794134, False),
        ("Yoyogi Park", 35.671741, 139.694873, True),
        ("Osaka Skyline", 34.705692, 135.490356, True),
    ]
    for i, (name, lat, lng, is_free) in enumerate(specs):
        db_session.add(
            Court(
                id=uuid.uuid4(),
                name=name,
                address="Japan somewhere 1-1",
                latitude=lat,
                longitude=lng,
                is_free=is_free,
                created_by=OWNER_ID,
                created_at=BASE_TIME - timedelta(hours=i),
            )
        )
    await db_session.commit()


class TestSearchCourtsDatabase:
    """search_courts against PostgreSQL (skipped when no test database is available)."""

    @pytest.mark.asyncio
    async def test_fallback_pages_newest_first(self, db_session, listing_courts):
        """Without the view, base tables give the same pages and aggregates."""
        page1 = await search_courts(db_session, CourtSearchFilters(limit=12, offset=0))
        page2 = await search_courts(db_session, CourtSearchFilters(limit=12, offset=12))

        assert page1["error"] is None
        assert len(page1["items"]) == 12
        assert page1["has_next_page"] is True
        assert len(page2["items"]) == 2
        assert page2["has_next_page"] is False

        names = [item["name"] for item in page1["items"] + page2["items"]]
        assert names == [f"Court {i:02d}" for i in range(14)]
        assert page1["items"][0]["review_count"] == 3
        assert page1["items"][0]["average_rating"] == 4.7

    @pytest.mark.asyncio
    async def test_stats_view_pages_newest_first(self, db_session, stats_objects, listing_courts):
        page1 = await search_courts(db_session, CourtSearchFilters(limit=12, offset=0))
        page2 = await search_courts(db_session, CourtSearchFilters(limit=12, offset=12))

        names = [item["name"] for item in page1["items"] + page2["items"]]
        assert names == [f"Court {i:02d}" for i in range(14)]
        assert page1["has_next_page"] is True
        assert page2["has_next_page"] is False
        assert page1["items"][0]["review_count"] == 3
        assert page1["items"][0]["average_rating"] == 4.7

    @pytest.mark.asyncio
    async def test_filters_hold_in_listing_mode(self, db_session, listing_courts):
        free = await search_courts(db_session, CourtSearchFilters(is_free=True, limit=50))
        lit = await search_courts(db_session, CourtSearchFilters(facility_tag="照明", limit=50))

        assert free["items"] and all(item["is_free"] for item in free["items"])
        assert len(free["items"]) == 7
        assert {item["name"] for item in lit["items"]} == {
            "Court 00", "Court 03", "Court 06", "Court 09", "Court 12",
        }

    @pytest.mark.asyncio
    async def test_nearby_within_radius_in_distance_order(self, db_session, nearby_courts):
        filters = CourtSearchFilters(
            limit=5,
            use_location=LocationFilter(lat=35.681236, lng=139.767125, radius_meters=6000),
        )

        result = await search_courts(db_session, filters)

        names = [item["name"] for item in result["items"]]
        assert names == ["Tokyo Station Court", "Toyosu Riverside"]
        distances = [item["distance_meters"] for item in result["items"]]
        assert distances == sorted(distances)
        assert all(0 <= d <= 6000 for d in distances)

    @pytest.mark.asyncio
    async def test_nearby_is_free_filter(self, db_session, nearby_courts):
        filters = CourtSearchFilters(
            is_free=True,
            use_location=LocationFilter(lat=35.681236, lng=139.767125, radius_meters=6000),
        )

        result = await search_courts(db_session, filters)

        assert [item["name"] for item in result["items"]] == ["Tokyo Station Court"]

    @pytest.mark.asyncio
    async def test_nearby_without_function_is_empty(self, db_session, listing_courts):
        filters = CourtSearchFilters(use_location=LocationFilter(lat=35.0, lng=139.0))

        result = await search_courts(db_session, filters)

        assert result["items"] == []
        assert result["error"] is None

    @pytest.mark.asyncio
    async def test_courts_created_together_page_without_overlap(self, db_session):
        """Courts sharing a created_at timestamp still page deterministically."""
        db_session.add(Profile(id=OWNER_ID, display_name="Owner"))
        ids = [uuid.uuid4() for _ in range(7)]
        for court_id in ids:
            db_session.add(
                Court(
                    id=court_id,
                    name=f"Batch {court_id.hex[:6]}",
                    address="Chiyoda 1-1-1",
                    latitude=35.68,
                    longitude=139.76,
                    is_free=True,
                    created_by=OWNER_ID,
                    created_at=BASE_TIME,
                )
            )
        await db_session.commit()

        pages = [
            await search_courts(db_session, CourtSearchFilters(limit=3, offset=offset))
            for offset in (0, 3, 6)
        ]

        seen = [item["id"] for page in pages for item in page["items"]]
        assert seen == sorted(ids, key=str, reverse=True)
