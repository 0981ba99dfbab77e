import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from malawi_properties_service.config import Settings
from malawi_properties_service.crud import analytics_crud
from malawi_properties_service.dependencies import get_app_settings, get_clock
from malawi_properties_service.supabase_client import get_supabase_admin_client, get_supabase_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


def configuration_report(app_settings: Settings) -> Dict[str, Any]:
    """Which configuration groups are incomplete, by variable name only."""
    missing_supabase = [
        name
        for name, value in (
            ("MALAWI_PROPERTIES_SERVICE_SUPABASE_URL", app_settings.SUPABASE_URL),
            ("MALAWI_PROPERTIES_SERVICE_SUPABASE_ANON_KEY", app_settings.SUPABASE_ANON_KEY),
        )
        if not value
    ]
    missing_storage = [
        name
        for name, value in (
            ("MALAWI_PROPERTIES_SERVICE_STORAGE_ENDPOINT", app_settings.STORAGE_ENDPOINT),
            ("MALAWI_PROPERTIES_SERVICE_STORAGE_ACCESS_KEY", app_settings.STORAGE_ACCESS_KEY),
            ("MALAWI_PROPERTIES_SERVICE_STORAGE_SECRET_KEY", app_settings.STORAGE_SECRET_KEY),
            ("MALAWI_PROPERTIES_SERVICE_STORAGE_BUCKET", app_settings.STORAGE_BUCKET),
        )
        if not value
    ]
    storage_warnings = []
    if not app_settings.STORAGE_BUCKET_PUBLIC and not app_settings.STORAGE_CDN_URL:
        storage_warnings.append("Private bucket without a CDN URL; uploads will be refused")

    return {
        "supabase": {"configured": not missing_supabase, "missing": missing_supabase},
        "service_role": {"configured": bool(app_settings.SUPABASE_SERVICE_ROLE_KEY)},
        "storage": {
            "configured": not missing_storage,
            "missing": missing_storage,
            "warnings": storage_warnings,
        },
    }


@router.get("/health", summary="Liveness probe")
async def health(
    request: Request, clock: Callable[[], datetime] = Depends(get_clock)
) -> Dict[str, Any]:
    return {
        "status": "ok",
        "timestamp": clock().isoformat(),
        "uptime_seconds": int(time.time() - request.app.startup_time),
    }


@router.get("/internal/health", include_in_schema=False)
async def internal_health(
    app_settings: Settings = Depends(get_app_settings),
    admin_client: Optional[AsyncSupabaseClient] = Depends(get_supabase_admin_client),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> JSONResponse:
    """
    Configuration and data-service check for operators. Never includes secret
    values. Answers 503 when the data service is unreachable.
    """
    result: Dict[str, Any] = {
        "status": "ok",
        "environment": app_settings.ENVIRONMENT.value,
        "timestamp": clock().isoformat(),
        "configuration": configuration_report(app_settings),
    }

    try:
        supabase = admin_client or get_supabase_client()
    except RuntimeError as e:
        result["status"] = "error"
        result["database"] = {"connected": False, "error": str(e)}
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=result)

    probe = await analytics_crud.probe_database(supabase)
    result["database"] = {
        "connected": probe.database_connected,
        "response_time_ms": probe.api_response_time_ms,
    }
    if not probe.database_connected:
        result["status"] = "error"
        logger.warning("Internal health check: data service unreachable")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=result)

    if not result["configuration"]["storage"]["configured"]:
        result["status"] = "degraded"
    return JSONResponse(content=result)
