import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from postgrest.exceptions import APIError
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from malawi_properties_service.analytics import (
    build_admin_dashboard,
    build_analytics_report,
    build_market_intelligence,
)
from malawi_properties_service.audit import log_admin_action
from malawi_properties_service.crud import analytics_crud, profile_crud
from malawi_properties_service.dependencies import (
    get_analytics_timezone,
    get_clock,
    get_market_reporting_client,
    get_reporting_client,
    require_admin_user,
)
from malawi_properties_service.schemas.analytics_schemas import (
    AdminDashboardReport,
    AnalyticsReport,
    MarketIntelligenceReport,
)
from malawi_properties_service.schemas.buyer_schemas import AgentVerificationUpdate
from malawi_properties_service.schemas.common_schemas import MessageResponse
from malawi_properties_service.schemas.records import Agent, Profile

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": MessageResponse},
        status.HTTP_403_FORBIDDEN: {"model": MessageResponse},
    },
)

market_router = APIRouter(prefix="/api", tags=["Market Intelligence"])

ADMIN_DASHBOARD_TABLES = ("profiles", "agents", "properties", "inquiries", "views", "traffic")
ANALYTICS_TABLES = ("profiles", "properties", "inquiries", "views", "searches", "sessions")
MARKET_TABLES = ("agents", "properties", "inquiries", "views")


class ExportKind(str, Enum):
    PROPERTIES = "properties"
    INQUIRIES = "inquiries"
    USERS = "users"
    ANALYTICS = "analytics"


async def _load_snapshot(supabase: AsyncSupabaseClient, tables, report: str):
    try:
        return await analytics_crud.load_marketplace_snapshot(supabase, tables)
    except APIError as e:
        logger.error(f"Error loading data for the {report} report: {e.message}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)


@router.get(
    "/dashboard",
    response_model=AdminDashboardReport,
    summary="Marketplace-wide dashboard for administrators",
)
async def get_admin_dashboard(
    _admin: Profile = Depends(require_admin_user),
    supabase: AsyncSupabaseClient = Depends(get_reporting_client),
    clock: Callable[[], datetime] = Depends(get_clock),
    tz: ZoneInfo = Depends(get_analytics_timezone),
) -> AdminDashboardReport:
    """
    Loads every table the dashboard needs in one concurrent round and reduces
    it in process. The data-service latency probe is reported alongside.
    """
    snapshot = await _load_snapshot(supabase, ADMIN_DASHBOARD_TABLES, "admin dashboard")
    system_health = await analytics_crud.probe_database(supabase)
    return build_admin_dashboard(snapshot, clock(), tz, system_health)


@router.get(
    "/analytics",
    response_model=AnalyticsReport,
    summary="Search, journey, time-of-day and device analytics",
)
async def get_analytics(
    _admin: Profile = Depends(require_admin_user),
    supabase: AsyncSupabaseClient = Depends(get_reporting_client),
    clock: Callable[[], datetime] = Depends(get_clock),
    tz: ZoneInfo = Depends(get_analytics_timezone),
) -> AnalyticsReport:
    snapshot = await _load_snapshot(supabase, ANALYTICS_TABLES, "analytics")
    return build_analytics_report(snapshot, clock(), tz)


@router.get("/export/{kind}", summary="Download a JSON export")
async def export_data(
    request: Request,
    kind: ExportKind,
    admin: Profile = Depends(require_admin_user),
    supabase: AsyncSupabaseClient = Depends(get_reporting_client),
    clock: Callable[[], datetime] = Depends(get_clock),
    tz: ZoneInfo = Depends(get_analytics_timezone),
) -> Response:
    """
    Raw table dumps for properties, inquiries (with buyer and listing joins)
    and users. ``analytics`` exports the dashboard's headline figures instead.
    The file is named ``{kind}_{YYYY-MM-DD}.json``.
    """
    now = clock()
    data: Any
    if kind == ExportKind.ANALYTICS:
        snapshot = await _load_snapshot(supabase, ADMIN_DASHBOARD_TABLES, "analytics export")
        report = build_admin_dashboard(snapshot, now, tz)
        data = {
            "stats": report.stats.model_dump(mode="json"),
            "districts": [d.model_dump(mode="json") for d in report.districts],
            "propertyTypes": [t.model_dump(mode="json") for t in report.property_types],
            "diaspora": [d.model_dump(mode="json") for d in report.diaspora_locations],
            "exportedAt": now.isoformat(),
        }
        row_count = len(snapshot.properties)
    else:
        try:
            data = await analytics_crud.load_export_rows(supabase, kind.value)
        except APIError as e:
            logger.error(f"Error exporting {kind.value}: {e.message}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)
        row_count = len(data)

    filename = f"{kind.value}_{now.date().isoformat()}.json"
    log_admin_action(
        request,
        admin.id,
        "data_export",
        additional_data={"kind": kind.value, "rows": row_count, "filename": filename},
    )
    return Response(
        content=json.dumps(data, indent=2, default=str),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.patch(
    "/agents/{agent_id}/verification",
    response_model=Agent,
    summary="Approve or reject an agent",
    responses={status.HTTP_404_NOT_FOUND: {"model": MessageResponse}},
)
async def update_agent_verification(
    request: Request,
    agent_id: str,
    body: AgentVerificationUpdate,
    admin: Profile = Depends(require_admin_user),
    supabase: AsyncSupabaseClient = Depends(get_reporting_client),
) -> Agent:
    try:
        agent = await profile_crud.update_agent_verification(supabase, agent_id, body.verification_status)
    except APIError as e:
        logger.error(f"Error updating verification of agent {agent_id}: {e.message}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)

    if agent is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Agent with ID {agent_id} not found",
        )
    log_admin_action(
        request,
        admin.id,
        "agent_verification",
        target_id=agent_id,
        additional_data={"verification_status": body.verification_status.value},
    )
    return agent


@market_router.get(
    "/market-intelligence",
    response_model=MarketIntelligenceReport,
    summary="District heat, agent performance and diaspora buying patterns",
)
async def get_market_intelligence(
    supabase: AsyncSupabaseClient = Depends(get_market_reporting_client),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> MarketIntelligenceReport:
    snapshot = await _load_snapshot(supabase, MARKET_TABLES, "market intelligence")
    return build_market_intelligence(snapshot, clock())
