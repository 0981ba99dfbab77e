from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Callable
from zoneinfo import ZoneInfo

from fastapi import Depends
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from malawi_properties_service.config import Settings
from malawi_properties_service.storage import ObjectStorage
from malawi_properties_service.supabase_client import get_supabase_client
from malawi_properties_service.tracking import SessionTracker, VisitTracker

from .user_deps import get_request_supabase_client


@lru_cache()
def get_app_settings() -> Settings:
    return Settings()


@lru_cache()
def get_object_storage() -> ObjectStorage:
    # The boto3 client is created lazily on first use and then reused
    return ObjectStorage(get_app_settings())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_clock() -> Callable[[], datetime]:
    return utc_now


def get_analytics_timezone(app_settings: Settings = Depends(get_app_settings)) -> ZoneInfo:
    return ZoneInfo(app_settings.ANALYTICS_TIMEZONE)


def get_session_tracker(
    supabase: AsyncSupabaseClient = Depends(get_request_supabase_client),
    clock: Callable[[], datetime] = Depends(get_clock),
    app_settings: Settings = Depends(get_app_settings),
) -> SessionTracker:
    return SessionTracker(
        supabase, clock, timeout=timedelta(minutes=app_settings.SESSION_TIMEOUT_MINUTES)
    )


def get_visit_tracker(
    supabase: AsyncSupabaseClient = Depends(get_supabase_client),
    clock: Callable[[], datetime] = Depends(get_clock),
    app_settings: Settings = Depends(get_app_settings),
) -> VisitTracker:
    return VisitTracker(
        supabase, clock, dedup_window=timedelta(minutes=app_settings.VISIT_DEDUP_MINUTES)
    )
