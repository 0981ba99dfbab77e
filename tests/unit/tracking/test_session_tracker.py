from datetime import datetime, timedelta, timezone

import pytest

from malawi_properties_service.schemas.records import UserType
from malawi_properties_service.tracking import SessionHandle, SessionTracker, resolve_viewer_location
from tests.fixtures.helpers import make_profile
from tests.fixtures.mocks import MockSupabaseClient, api_error

START = datetime(2025, 6, 19, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def supabase():
    return MockSupabaseClient()


@pytest.fixture
def tracker(supabase, clock):
    return SessionTracker(supabase, clock, timeout=timedelta(minutes=30))


@pytest.mark.asyncio
async def test_session_reused_within_timeout(tracker, supabase, clock):
    supabase.queue("user_sessions", [{"id": "sess-1"}])

    first = await tracker.get_or_create_session(user_agent="Mozilla/5.0 (iPhone) Mobile")
    clock.advance(minutes=29)
    second = await tracker.get_or_create_session(first)

    assert first.session_id == "sess-1"
    assert second == first
    assert len(supabase.queries("user_sessions")) == 1
    assert supabase.queries("rpc:end_user_session") == []


@pytest.mark.asyncio
async def test_expired_session_is_ended_and_replaced(tracker, supabase, clock):
    supabase.queue("user_sessions", [{"id": "sess-1"}]).queue("user_sessions", [{"id": "sess-2"}])

    first = await tracker.get_or_create_session()
    clock.advance(minutes=31)
    second = await tracker.get_or_create_session(first)

    assert second.session_id == "sess-2"
    assert second.started_at == START + timedelta(minutes=31)
    ended = supabase.queries("rpc:end_user_session")
    assert len(ended) == 1
    assert ended[0].called("rpc")[0][0] == ("end_user_session", {"session_uuid": "sess-1"})


@pytest.mark.asyncio
async def test_new_session_row_carries_viewer_and_funnel(tracker, supabase):
    supabase.queue("user_sessions", [{"id": "sess-1"}])
    profile = make_profile(UserType.BUYER, current_location="London, United Kingdom", is_diaspora=True)

    await tracker.get_or_create_session(
        user_id=profile.id, profile=profile, user_agent="Mozilla/5.0 (Windows NT 10.0)", referrer=""
    )

    (args, _), = supabase.queries("user_sessions")[0].called("insert")
    row = args[0]
    assert row["user_id"] == profile.id
    assert row["viewer_city"] == "London"
    assert row["viewer_country"] == "United Kingdom"
    assert row["viewer_origin_type"] == "diaspora"
    assert row["device_type"] == "desktop"
    assert row["referrer"] is None
    assert row["conversion_funnel"] == {"searches": 0, "views": 0, "detail_views": 0, "inquiries": 0}
    assert row["session_start"] == START.isoformat()


@pytest.mark.asyncio
async def test_session_insert_failure_returns_none(tracker, supabase):
    supabase.queue("user_sessions", error=api_error())
    assert await tracker.get_or_create_session() is None


@pytest.mark.asyncio
async def test_end_session_failure_is_reported(tracker, supabase):
    supabase.queue("rpc:end_user_session", error=api_error("function does not exist", "42883"))
    assert await tracker.end_session("sess-1") is False


@pytest.mark.asyncio
async def test_search_query_tracked_against_session(tracker, supabase):
    handle = SessionHandle("sess-1", START)
    supabase.queue("search_queries", [{"id": "search-1"}])

    tracked = await tracker.track_search_query(
        handle, "Area 47", {"district": "Lilongwe"}, results_count=4, user_id="u1"
    )

    assert tracked.search_id == "search-1"
    assert tracked.handle == handle
    (args, _), = supabase.queries("search_queries")[0].called("insert")
    assert args[0]["session_id"] == "sess-1"
    assert args[0]["search_params"] == {"district": "Lilongwe"}
    assert len(supabase.queries("rpc:update_user_session_search_count")) == 1


@pytest.mark.asyncio
async def test_search_query_survives_missing_counter_function(tracker, supabase):
    supabase.queue("search_queries", [{"id": "search-1"}])
    supabase.queue("rpc:update_user_session_search_count", error=api_error("missing", "42883"))

    tracked = await tracker.track_search_query(SessionHandle("sess-1", START), None, {}, 0)
    assert tracked.search_id == "search-1"


@pytest.mark.asyncio
async def test_search_query_failure_keeps_session(tracker, supabase):
    supabase.queue("search_queries", error=api_error())
    handle = SessionHandle("sess-1", START)

    tracked = await tracker.track_search_query(handle, "house", {}, 0)
    assert tracked.handle == handle
    assert tracked.search_id is None


def test_viewer_location_without_profile():
    location = resolve_viewer_location(None)
    assert (location.location, location.country, location.city) == ("Unknown", "Unknown", "Unknown")
    assert location.origin_type is None


def test_viewer_location_for_local_profile():
    location = resolve_viewer_location(make_profile(current_location="Blantyre, Malawi"))
    assert location.city == "Blantyre"
    assert location.country == "Malawi"
    assert location.origin_type.value == "local"
