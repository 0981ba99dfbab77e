from datetime import timedelta

import pytest
from fastapi import status
from httpx import AsyncClient

from malawi_properties_service.dependencies import get_optional_profile
from malawi_properties_service.main import app as fastapi_app
from malawi_properties_service.schemas.records import UserType
from tests.fixtures.helpers import FIXED_NOW, make_profile
from tests.fixtures.mocks import api_error

VISIT_SESSION_ID = "session-1718790000000-abc123xyz"


def traffic_row(**overrides):
    row = {
        "id": "row-1",
        "session_id": VISIT_SESSION_ID,
        "source": "facebook",
        "medium": "social",
        "landing_page": "/properties",
        "page_views": 1,
        "converted": False,
    }
    row.update(overrides)
    return row


# --- Visit tracking ---


@pytest.mark.asyncio
async def test_track_visit_requires_session_and_landing_page(client: AsyncClient):
    response = await client.post("/api/track-visit", json={"sessionId": VISIT_SESSION_ID})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Missing required fields"


@pytest.mark.asyncio
async def test_track_visit_classifies_referrer_and_device(client: AsyncClient, mock_supabase_client):
    mock_supabase_client.queue("traffic_sources", None)
    mock_supabase_client.queue("traffic_sources", [traffic_row()])

    response = await client.post(
        "/api/track-visit",
        json={
            "sessionId": VISIT_SESSION_ID,
            "landingPage": "/properties",
            "referrer": "https://m.facebook.com/groups/1?utm_source=newsletter",
            "userAgent": "Mozilla/5.0 (Linux; Android 13) Chrome/120.0 Mobile Safari/537.36",
        },
    )

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["success"] is True
    assert "updated" not in body
    assert body["data"]["id"] == "row-1"
    assert body["context"]["sessionId"] == VISIT_SESSION_ID
    assert body["context"]["rowId"] == "row-1"

    (args, _), = mock_supabase_client.queries("traffic_sources")[1].called("insert")
    row = args[0]
    assert (row["source"], row["medium"]) == ("facebook", "social")
    assert (row["device_type"], row["browser"], row["os"]) == ("mobile", "chrome", "android")


@pytest.mark.asyncio
async def test_track_visit_repeat_within_window(client: AsyncClient, mock_supabase_client):
    mock_supabase_client.queue("traffic_sources", {"page_views": 1})

    response = await client.post(
        "/api/track-visit",
        json={
            "sessionId": VISIT_SESSION_ID,
            "landingPage": "/properties/p1",
            "rowId": "row-1",
            "lastTrackedAt": (FIXED_NOW - timedelta(minutes=1)).isoformat(),
        },
    )

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["updated"] is True
    assert "data" not in body
    assert not any(q.called("insert") for q in mock_supabase_client.queries("traffic_sources"))


@pytest.mark.asyncio
async def test_track_visit_failure_is_500(client: AsyncClient, mock_supabase_client):
    mock_supabase_client.queue("traffic_sources", error=api_error())

    response = await client.post(
        "/api/track-visit", json={"sessionId": VISIT_SESSION_ID, "landingPage": "/"}
    )

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["detail"] == "Failed to track visit"


@pytest.mark.asyncio
async def test_track_visit_status(client: AsyncClient):
    response = await client.get("/api/track-visit")

    body = response.json()
    assert body["message"] == "Visit tracking API is active"
    assert body["sessionId"].startswith(f"session-{int(FIXED_NOW.timestamp() * 1000)}-")


# --- Sessions and searches ---


@pytest.mark.asyncio
async def test_end_session(client: AsyncClient, mock_supabase_client):
    response = await client.post("/api/end-session", json={"sessionId": "sess-1"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"success": True}
    assert len(mock_supabase_client.queries("rpc:end_user_session")) == 1


@pytest.mark.asyncio
async def test_end_session_accepts_beacon_without_content_type(client: AsyncClient, mock_supabase_client):
    response = await client.post(
        "/api/end-session", content=b'{"sessionId": "sess-1"}', headers={"content-type": "text/plain"}
    )
    assert response.status_code == status.HTTP_200_OK


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [b"{}", b"not json", b"[]"])
async def test_end_session_without_id_is_400(client: AsyncClient, payload):
    response = await client.post("/api/end-session", content=payload)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Session ID required"


@pytest.mark.asyncio
async def test_end_session_failure_is_500(client: AsyncClient, mock_supabase_client):
    mock_supabase_client.queue("rpc:end_user_session", error=api_error())

    response = await client.post("/api/end-session", json={"sessionId": "sess-1"})

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["detail"] == "Failed to end session"


@pytest.mark.asyncio
async def test_start_session_creates_new_session(client: AsyncClient, mock_supabase_client):
    mock_supabase_client.queue("user_sessions", [{"id": "sess-1"}])

    response = await client.post("/api/sessions", json={})

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["sessionId"] == "sess-1"
    assert body["sessionStartedAt"].startswith("2025-06-19T12:00:00")


@pytest.mark.asyncio
async def test_start_session_resumes_live_session(client: AsyncClient, mock_supabase_client):
    started = (FIXED_NOW - timedelta(minutes=10)).isoformat()

    response = await client.post("/api/sessions", json={"sessionId": "sess-1", "sessionStartedAt": started})

    assert response.json()["sessionId"] == "sess-1"
    assert mock_supabase_client.executed == []


@pytest.mark.asyncio
async def test_start_session_failure_is_500(client: AsyncClient, mock_supabase_client):
    mock_supabase_client.queue("user_sessions", error=api_error())

    response = await client.post("/api/sessions", json={})

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR


@pytest.mark.asyncio
async def test_record_search_query(client: AsyncClient, mock_supabase_client):
    mock_supabase_client.queue("user_sessions", [{"id": "sess-9"}])
    mock_supabase_client.queue("search_queries", [{"id": "search-1"}])

    response = await client.post(
        "/api/search-queries",
        json={"searchText": "Area 47", "searchParams": {"district": "Lilongwe"}, "resultsCount": 3},
    )

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["searchId"] == "search-1"
    assert body["session"]["sessionId"] == "sess-9"


@pytest.mark.asyncio
async def test_record_search_query_is_best_effort(client: AsyncClient, mock_supabase_client):
    mock_supabase_client.queue("user_sessions", error=api_error())

    response = await client.post("/api/search-queries", json={"searchText": "house"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"searchId": None, "session": None}


@pytest.fixture
def signed_in_with_unreadable_profile(mock_supabase_client, login_as):
    """A valid caller whose profile row cannot be read."""
    user = login_as(make_profile(UserType.BUYER))
    fastapi_app.dependency_overrides.pop(get_optional_profile, None)
    mock_supabase_client.queue("profiles", error=api_error())
    return user


@pytest.mark.asyncio
async def test_record_search_query_survives_profile_lookup_failure(
    client: AsyncClient, mock_supabase_client, signed_in_with_unreadable_profile
):
    mock_supabase_client.queue("user_sessions", [{"id": "sess-9"}])
    mock_supabase_client.queue("search_queries", [{"id": "search-1"}])

    response = await client.post("/api/search-queries", json={"searchText": "house"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["searchId"] == "search-1"
    (args, _), = mock_supabase_client.queries("search_queries")[0].called("insert")
    assert args[0]["user_id"] == signed_in_with_unreadable_profile.id


@pytest.mark.asyncio
async def test_start_session_survives_profile_lookup_failure(
    client: AsyncClient, mock_supabase_client, signed_in_with_unreadable_profile
):
    mock_supabase_client.queue("user_sessions", [{"id": "sess-2"}])

    response = await client.post("/api/sessions", json={})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["sessionId"] == "sess-2"
    assert len(mock_supabase_client.queries("profiles")) == 1


# --- Operator probes ---


@pytest.mark.asyncio
async def test_test_tracking_returns_recent_rows(client: AsyncClient, mock_supabase_client):
    mock_supabase_client.queue("traffic_sources", [traffic_row()], count=42)

    response = await client.get("/api/test-tracking")

    body = response.json()
    assert body["success"] is True
    assert body["count"] == 42
    assert body["message"] == "Tracking is working!"
    assert mock_supabase_client.queries("traffic_sources")[0].called("limit") == [((10,), {})]


@pytest.mark.asyncio
async def test_test_tracking_reports_errors(client: AsyncClient, mock_supabase_client):
    mock_supabase_client.queue("traffic_sources", error=api_error("permission denied", "42501"))

    response = await client.get("/api/test-tracking")

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "permission denied"
    assert body["details"]["code"] == "42501"


@pytest.mark.asyncio
async def test_diagnose_tracking_healthy(client: AsyncClient, mock_supabase_client):
    mock_supabase_client.queue("traffic_sources", [{"id": "row-1"}])  # table check
    mock_supabase_client.queue("traffic_sources", [traffic_row(session_id="diagnostic")])  # probe insert
    mock_supabase_client.queue("traffic_sources", [])  # probe delete
    mock_supabase_client.queue("traffic_sources", None, count=7)  # count
    mock_supabase_client.queue("traffic_sources", [{"id": "row-1", "source": "direct"}], count=7)

    response = await client.get("/api/diagnose-tracking")

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["status"] == "healthy"
    assert body["summary"] == {
        "tableExists": True,
        "canInsert": True,
        "totalRecords": 7,
        "hasRecentRecords": True,
    }
    (delete_filter, _), = mock_supabase_client.queries("traffic_sources")[2].called("eq")
    assert delete_filter == ("session_id", f"diagnostic-{int(FIXED_NOW.timestamp() * 1000)}")


@pytest.mark.asyncio
async def test_diagnose_tracking_insert_denied(client: AsyncClient, mock_supabase_client):
    mock_supabase_client.queue("traffic_sources", [])
    mock_supabase_client.queue(
        "traffic_sources", error=api_error("new row violates row-level security policy", "42501")
    )

    response = await client.get("/api/diagnose-tracking")

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    body = response.json()
    assert body["status"] == "issues_found"
    assert body["checks"]["canInsert"] is False
    assert body["issues"] == ["Insert failed: new row violates row-level security policy (Code: 42501)"]
    assert body["recommendations"] == ["Check RLS policies - anonymous users need INSERT permission"]
