import pytest
from fastapi import status
from httpx import AsyncClient

from malawi_properties_service.schemas.records import UserType
from tests.fixtures.helpers import FIXED_NOW, make_profile, property_row
from tests.fixtures.mocks import api_error


def inquiry_row(**overrides):
    row = {
        "id": "inq-1",
        "property_id": "p1",
        "buyer_id": "buyer-1",
        "buyer_name": "Kondwani Phiri",
        "buyer_origin_type": "diaspora",
        "status": "new",
        "created_at": "2025-06-18T10:00:00+00:00",
    }
    row.update(overrides)
    return row


# --- Inquiries ---


@pytest.mark.asyncio
async def test_create_inquiry(client: AsyncClient, mock_supabase_client, login_as):
    # Arrange
    buyer = make_profile(UserType.BUYER)
    login_as(buyer)
    mock_supabase_client.queue("properties", property_row(id="p1"))
    mock_supabase_client.queue("inquiries", [inquiry_row(buyer_id=buyer.id)])
    mock_supabase_client.queue("properties", {"inquiries_count": 1})

    # Act
    response = await client.post(
        "/api/inquiries",
        json={
            "property_id": "p1",
            "buyer_name": "Kondwani Phiri",
            "buyer_country": "United Kingdom",
            "buyer_city": "Leeds",
            "visit_session_id": "session-1718790000000-abc123xyz",
        },
    )

    # Assert
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["id"] == "inq-1"

    (args, _), = mock_supabase_client.queries("inquiries")[0].called("insert")
    assert args[0]["buyer_id"] == buyer.id
    assert args[0]["buyer_origin_type"] == "diaspora"

    (counter_args, _), = mock_supabase_client.queries("properties")[2].called("update")
    assert counter_args[0] == {"inquiries_count": 2}

    conversion = mock_supabase_client.queries("traffic_sources")[0]
    assert conversion.called("update")[0][0][0] == {"converted": True}
    assert conversion.called("eq") == [(("session_id", "session-1718790000000-abc123xyz"), {})]


@pytest.mark.asyncio
async def test_create_inquiry_requires_login(client: AsyncClient):
    response = await client.post("/api/inquiries", json={"property_id": "p1", "buyer_name": "X"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.asyncio
async def test_create_inquiry_for_unknown_listing(client: AsyncClient, mock_supabase_client, login_as):
    login_as(make_profile(UserType.BUYER))
    mock_supabase_client.queue("properties", None)

    response = await client.post("/api/inquiries", json={"property_id": "gone", "buyer_name": "X"})

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert mock_supabase_client.queries("inquiries") == []


@pytest.mark.asyncio
async def test_create_inquiry_surfaces_upstream_message(client: AsyncClient, mock_supabase_client, login_as):
    login_as(make_profile(UserType.BUYER))
    mock_supabase_client.queue("properties", property_row(id="p1"))
    mock_supabase_client.queue("inquiries", error=api_error("new row violates row-level security policy"))

    response = await client.post("/api/inquiries", json={"property_id": "p1", "buyer_name": "X"})

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["detail"] == "new row violates row-level security policy"


@pytest.mark.asyncio
async def test_lister_moves_inquiry_to_contacted(client: AsyncClient, mock_supabase_client, login_as):
    owner = make_profile(UserType.OWNER)
    login_as(owner)
    mock_supabase_client.queue("inquiries", inquiry_row())
    mock_supabase_client.queue("properties", property_row(id="p1", owner_id=owner.id))
    mock_supabase_client.queue("inquiries", [inquiry_row(status="contacted")])

    response = await client.patch("/api/inquiries/inq-1/status", json={"status": "contacted"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "contacted"
    (args, _), = mock_supabase_client.queries("inquiries")[1].called("update")
    assert args[0] == {"status": "contacted", "responded_at": FIXED_NOW.isoformat()}


@pytest.mark.asyncio
async def test_other_lister_cannot_move_inquiry(client: AsyncClient, mock_supabase_client, login_as):
    login_as(make_profile(UserType.OWNER))
    mock_supabase_client.queue("inquiries", inquiry_row())
    mock_supabase_client.queue("properties", property_row(id="p1", owner_id="someone-else"))

    response = await client.patch("/api/inquiries/inq-1/status", json={"status": "lost"})

    assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.asyncio
async def test_unknown_inquiry_is_404(client: AsyncClient, mock_supabase_client, login_as):
    login_as(make_profile(UserType.ADMIN))
    mock_supabase_client.queue("inquiries", None)

    response = await client.patch("/api/inquiries/nope/status", json={"status": "lost"})

    assert response.status_code == status.HTTP_404_NOT_FOUND


# --- Dashboards ---


@pytest.mark.asyncio
async def test_owner_dashboard(client: AsyncClient, mock_supabase_client, login_as):
    owner = make_profile(UserType.OWNER)
    login_as(owner)
    mock_supabase_client.queue(
        "properties",
        [
            property_row(id="p1", owner_id=owner.id, views_count=10, inquiries_count=1, price=100),
            property_row(id="p2", owner_id=owner.id, views_count=5, status="sold", price=300),
        ],
    )
    mock_supabase_client.queue("inquiries", [inquiry_row()])

    response = await client.get("/api/dashboard")

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["agent"] is None
    assert len(body["properties"]) == 2
    assert body["stats"]["total_views"] == 15
    assert body["stats"]["total_value"] == 400
    assert body["stats"]["conversion_rate"] == 50
    assert mock_supabase_client.queries("properties")[0].called("eq") == [(("owner_id", owner.id), {})]
    assert mock_supabase_client.queries("inquiries")[0].called("in_") == [(("property_id", ["p1", "p2"]), {})]


@pytest.mark.asyncio
async def test_agent_dashboard_uses_agent_record(client: AsyncClient, mock_supabase_client, login_as):
    agent_profile = make_profile(UserType.AGENT)
    login_as(agent_profile)
    mock_supabase_client.queue("agents", {"id": "agent-1", "user_id": agent_profile.id})
    mock_supabase_client.queue("properties", [])

    response = await client.get("/api/dashboard")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["agent"]["id"] == "agent-1"
    assert mock_supabase_client.queries("properties")[0].called("eq") == [(("agent_id", "agent-1"), {})]
    # No listings means no inquiry query at all
    assert mock_supabase_client.queries("inquiries") == []


@pytest.mark.asyncio
async def test_buyer_dashboard(client: AsyncClient, mock_supabase_client, login_as):
    buyer = make_profile(UserType.BUYER)
    login_as(buyer)
    mock_supabase_client.queue("inquiries", [inquiry_row(buyer_id=buyer.id)])
    mock_supabase_client.queue(
        "property_views",
        [
            {"id": "v1", "viewer_id": buyer.id, "properties": {"id": "p1", "title": "Plot A"}},
            {"id": "v2", "viewer_id": buyer.id, "properties": {"id": "p1", "title": "Plot A"}},
        ],
    )

    response = await client.get("/api/buyer/dashboard")

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert len(body["inquiries"]) == 1
    assert [p["id"] for p in body["viewed_properties"]] == ["p1"]


@pytest.mark.asyncio
async def test_create_agent_record(client: AsyncClient, mock_supabase_client, login_as):
    agent_profile = make_profile(UserType.AGENT)
    login_as(agent_profile)
    mock_supabase_client.queue("agents", None)
    mock_supabase_client.queue(
        "agents", [{"id": "agent-1", "user_id": agent_profile.id, "company_name": "Nyasa Realty"}]
    )

    response = await client.post(
        "/api/agents/me", json={"company_name": "Nyasa Realty", "districts_covered": ["Lilongwe"]}
    )

    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["company_name"] == "Nyasa Realty"


@pytest.mark.asyncio
async def test_duplicate_agent_record_is_409(client: AsyncClient, mock_supabase_client, login_as):
    agent_profile = make_profile(UserType.AGENT)
    login_as(agent_profile)
    mock_supabase_client.queue("agents", {"id": "agent-1", "user_id": agent_profile.id})

    response = await client.post("/api/agents/me", json={})

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["detail"] == "Agent profile already exists"


@pytest.mark.asyncio
async def test_update_agent_record(client: AsyncClient, mock_supabase_client, login_as):
    agent_profile = make_profile(UserType.AGENT)
    login_as(agent_profile)
    mock_supabase_client.queue("agents", {"id": "agent-1", "user_id": agent_profile.id})
    mock_supabase_client.queue(
        "agents", [{"id": "agent-1", "user_id": agent_profile.id, "license_number": "LIC-9"}]
    )

    response = await client.patch("/api/agents/me", json={"license_number": "LIC-9"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["license_number"] == "LIC-9"
    (args, _), = mock_supabase_client.queries("agents")[1].called("update")
    assert args[0] == {"license_number": "LIC-9"}


@pytest.mark.asyncio
async def test_owner_cannot_create_agent_record(client: AsyncClient, login_as):
    login_as(make_profile(UserType.OWNER))

    response = await client.post("/api/agents/me", json={})

    assert response.status_code == status.HTTP_403_FORBIDDEN
