import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from malawi_properties_service.crud import tracking_crud
from malawi_properties_service.dependencies import (
    get_clock,
    get_optional_profile,
    get_optional_user,
    get_session_tracker,
    get_visit_tracker,
)
from malawi_properties_service.rate_limiting import TRACKING_LIMIT, limiter
from malawi_properties_service.schemas.auth_schemas import AuthenticatedUser
from malawi_properties_service.schemas.common_schemas import MessageResponse, SuccessResponse
from malawi_properties_service.schemas.records import Profile
from malawi_properties_service.schemas.tracking_schemas import (
    SearchQueryRequest,
    SearchQueryResponse,
    SessionPayload,
    StartSessionRequest,
    TrackVisitRequest,
    TrackVisitResponse,
    VisitContextResponse,
)
from malawi_properties_service.supabase_client import get_supabase_client
from malawi_properties_service.tracking import (
    SessionHandle,
    SessionTracker,
    VisitContext,
    VisitDetails,
    VisitTracker,
    generate_visit_session_id,
    get_device_info,
    parse_traffic_source,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Tracking"])

DIAGNOSTIC_RECOMMENDATION = "Check RLS policies - anonymous users need INSERT permission"


def _as_utc(value: datetime) -> datetime:
    # Browsers may send a timestamp without an offset
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _session_handle(session_id: Optional[str], started_at: Optional[datetime]) -> Optional[SessionHandle]:
    if not session_id or started_at is None:
        return None
    return SessionHandle(session_id=session_id, started_at=_as_utc(started_at))


def _session_payload(handle: Optional[SessionHandle]) -> Optional[SessionPayload]:
    if handle is None:
        return None
    return SessionPayload(session_id=handle.session_id, session_started_at=handle.started_at)


@router.post(
    "/track-visit",
    response_model=TrackVisitResponse,
    response_model_exclude_none=True,
    summary="Record a page visit against the visit session",
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": MessageResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": MessageResponse},
    },
)
@limiter.limit(TRACKING_LIMIT)
async def track_visit(
    request: Request,
    body: TrackVisitRequest,
    tracker: VisitTracker = Depends(get_visit_tracker),
    current_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> TrackVisitResponse:
    """
    Inserts the first-touch traffic row for a visit session, or bumps its
    page-view counter on later page loads.

    Source and medium are derived from the referrer, and device details from
    the user agent, whenever the client does not send them.
    """
    if not body.session_id or not body.landing_page:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")

    classification = parse_traffic_source(body.referrer)
    device = get_device_info(body.user_agent or request.headers.get("user-agent"))

    visit = VisitDetails(
        session_id=body.session_id,
        landing_page=body.landing_page,
        user_id=body.user_id or (current_user.id if current_user else None),
        source=body.source or classification.source,
        medium=body.medium or classification.medium,
        referrer=body.referrer,
        device_type=body.device_type or device.device_type,
        browser=body.browser or device.browser,
        os=body.os or device.os,
    )
    context = None
    if body.row_id and body.last_tracked_at:
        context = VisitContext(body.session_id, body.row_id, _as_utc(body.last_tracked_at))

    outcome = await tracker.record_visit(visit, context)
    if outcome is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to track visit")

    return TrackVisitResponse(
        success=True,
        updated=outcome.updated or None,
        data=outcome.row,
        context=VisitContextResponse(
            session_id=outcome.context.session_id,
            row_id=outcome.context.row_id,
            last_tracked_at=outcome.context.last_tracked_at,
        ),
    )


@router.get("/track-visit", summary="Visit tracking liveness and a fresh visit session id")
async def track_visit_status(clock: Callable[[], datetime] = Depends(get_clock)) -> Dict[str, str]:
    return {
        "message": "Visit tracking API is active",
        "sessionId": generate_visit_session_id(clock()),
    }


@router.post(
    "/end-session",
    response_model=SuccessResponse,
    summary="Finalise a browsing session",
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": MessageResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": MessageResponse},
    },
)
@limiter.limit(TRACKING_LIMIT)
async def end_session(
    request: Request,
    tracker: SessionTracker = Depends(get_session_tracker),
) -> SuccessResponse:
    # Unload beacons do not always send a JSON content type, so parse the body directly
    try:
        payload = await request.json()
    except ValueError:
        payload = {}
    session_id = payload.get("sessionId") if isinstance(payload, dict) else None

    if not session_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Session ID required")

    if not await tracker.end_session(session_id):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to end session")
    return SuccessResponse(success=True)


@router.post(
    "/sessions",
    response_model=SessionPayload,
    summary="Resume or start a browsing session",
    responses={status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": MessageResponse}},
)
@limiter.limit(TRACKING_LIMIT)
async def start_session(
    request: Request,
    body: StartSessionRequest,
    tracker: SessionTracker = Depends(get_session_tracker),
    current_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
    profile: Optional[Profile] = Depends(get_optional_profile),
) -> SessionPayload:
    handle = await tracker.get_or_create_session(
        _session_handle(body.session_id, body.session_started_at),
        user_id=current_user.id if current_user else None,
        profile=profile,
        user_agent=request.headers.get("user-agent"),
        referrer=body.referrer,
    )
    if handle is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to start session")
    return _session_payload(handle)


@router.post(
    "/search-queries",
    response_model=SearchQueryResponse,
    summary="Record a marketplace search",
)
@limiter.limit(TRACKING_LIMIT)
async def record_search_query(
    request: Request,
    body: SearchQueryRequest,
    tracker: SessionTracker = Depends(get_session_tracker),
    current_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
    profile: Optional[Profile] = Depends(get_optional_profile),
) -> SearchQueryResponse:
    """
    Best-effort: a failed insert still answers 200 with a null ``searchId`` so
    the search itself is never held up.
    """
    tracked = await tracker.track_search_query(
        _session_handle(body.session_id, body.session_started_at),
        search_text=body.search_text,
        search_params=body.search_params,
        results_count=body.results_count,
        user_id=current_user.id if current_user else None,
        profile=profile,
        user_agent=request.headers.get("user-agent"),
        referrer=body.referrer,
    )
    return SearchQueryResponse(search_id=tracked.search_id, session=_session_payload(tracked.handle))


@router.get("/test-tracking", summary="Read back the newest traffic rows")
async def test_tracking(supabase: AsyncSupabaseClient = Depends(get_supabase_client)) -> JSONResponse:
    try:
        recent, count = await tracking_crud.list_recent_traffic(supabase, limit=10)
    except APIError as e:
        logger.error(f"Tracking self-test failed: {e.message}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": e.message, "details": e.json()},
        )

    return JSONResponse(
        content={
            "success": True,
            "count": count,
            "recent": recent,
            "message": "Tracking is working!",
        }
    )


@router.get("/diagnose-tracking", summary="Probe the traffic table for operators")
async def diagnose_tracking(
    supabase: AsyncSupabaseClient = Depends(get_supabase_client),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> JSONResponse:
    """
    Runs four checks against ``traffic_sources``: table reachable, anonymous
    insert allowed (the probe row is deleted again), total row count, and the
    five newest rows. Any failed check turns the response into a 500.
    """
    now = clock()
    checks: Dict[str, Any] = {}
    issues = []
    recommendations = []

    try:
        try:
            await supabase.table("traffic_sources").select("id").limit(1).execute()
            checks["tableExists"] = True
        except APIError as e:
            checks["tableExists"] = False
            issues.append(f"Table check failed: {e.message}")

        probe_session_id = f"diagnostic-{int(now.timestamp() * 1000)}"
        try:
            await tracking_crud.insert_traffic_source(
                supabase,
                {
                    "session_id": probe_session_id,
                    "source": "diagnostic",
                    "medium": "test",
                    "landing_page": "/diagnostic",
                    "device_type": "desktop",
                    "browser": "test",
                    "os": "test",
                    "first_visit_at": now.isoformat(),
                    "last_activity_at": now.isoformat(),
                    "page_views": 1,
                },
            )
            checks["canInsert"] = True
        except APIError as e:
            checks["canInsert"] = False
            issues.append(f"Insert failed: {e.message} (Code: {e.code})")
            recommendations.append(DIAGNOSTIC_RECOMMENDATION)
        else:
            await tracking_crud.delete_traffic_by_session(supabase, probe_session_id)

        try:
            checks["recordCount"] = await tracking_crud.count_traffic_sources(supabase)
        except APIError as e:
            checks["recordCount"] = 0
            issues.append(f"Count failed: {e.message}")

        try:
            recent, _ = await tracking_crud.list_recent_traffic(
                supabase, limit=5, columns="id, source, created_at"
            )
        except APIError as e:
            recent = []
            issues.append(f"Recent records query failed: {e.message}")
        checks["recentRecords"] = recent
    except Exception as e:
        logger.error(f"Tracking diagnostics failed: {e}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Diagnostic failed", "message": str(e)},
        )

    healthy = not issues
    if not healthy:
        logger.warning(f"Tracking diagnostics found issues: {issues}")

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "timestamp": now.isoformat(),
            "checks": checks,
            "issues": issues,
            "recommendations": recommendations,
            "status": "healthy" if healthy else "issues_found",
            "summary": {
                "tableExists": checks["tableExists"],
                "canInsert": checks["canInsert"],
                "totalRecords": checks["recordCount"],
                "hasRecentRecords": len(recent) > 0,
            },
        },
    )
