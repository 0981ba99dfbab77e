"""
Browsing-session tracking.

A session is identified by a ``SessionHandle`` that the client holds and sends
back on each call; nothing is cached in the process. All data-service
failures are logged and reported as ``None``/``False`` so tracking never
breaks the action it is attached to.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, NamedTuple, Optional

from supabase._async.client import AsyncClient as AsyncSupabaseClient

from ..crud import tracking_crud
from ..schemas.records import OriginType, Profile
from .classifiers import detect_device_type

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"


@dataclass(frozen=True)
class SessionHandle:
    session_id: str
    started_at: datetime

    def is_expired(self, now: datetime, timeout: timedelta) -> bool:
        return now - self.started_at >= timeout


@dataclass(frozen=True)
class ViewerLocation:
    location: str = UNKNOWN
    country: str = UNKNOWN
    city: str = UNKNOWN
    origin_type: Optional[OriginType] = None


class SearchTracking(NamedTuple):
    handle: Optional[SessionHandle]
    search_id: Optional[str]


def resolve_viewer_location(profile: Optional[Profile]) -> ViewerLocation:
    """
    Viewer location from the caller's own profile. ``"Lilongwe, Malawi"``
    yields city ``Lilongwe`` and country ``Malawi``.
    """
    if profile is None or not profile.current_location:
        return ViewerLocation()

    parts = profile.current_location.split(", ")
    return ViewerLocation(
        location=profile.current_location,
        country=parts[-1] or UNKNOWN,
        city=parts[0] or UNKNOWN,
        origin_type=OriginType.DIASPORA if profile.is_diaspora else OriginType.LOCAL,
    )


class SessionTracker:
    def __init__(
        self,
        supabase: AsyncSupabaseClient,
        clock: Callable[[], datetime],
        timeout: timedelta = timedelta(minutes=30),
    ):
        self._supabase = supabase
        self._clock = clock
        self._timeout = timeout

    async def get_or_create_session(
        self,
        handle: Optional[SessionHandle] = None,
        user_id: Optional[str] = None,
        profile: Optional[Profile] = None,
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
    ) -> Optional[SessionHandle]:
        """
        Returns ``handle`` unchanged while it is younger than the timeout.
        An expired handle is ended first and replaced by a new session.
        """
        now = self._clock()
        if handle is not None:
            if not handle.is_expired(now, self._timeout):
                return handle
            logger.debug(f"Session {handle.session_id} expired, starting a new one")
            await self.end_session(handle.session_id)

        viewer = resolve_viewer_location(profile)
        session_data: Dict[str, Any] = {
            "user_id": user_id,
            "session_start": now.isoformat(),
            "viewer_location": viewer.location,
            "viewer_country": viewer.country,
            "viewer_city": viewer.city,
            "viewer_origin_type": viewer.origin_type.value if viewer.origin_type else None,
            "device_type": detect_device_type(user_agent),
            "referrer": referrer or None,
            "user_agent": user_agent,
            "conversion_funnel": {
                "searches": 0,
                "views": 0,
                "detail_views": 0,
                "inquiries": 0,
            },
        }

        try:
            session_id = await tracking_crud.insert_user_session(self._supabase, session_data)
        except Exception as e:
            logger.error(f"Error creating session: {e}", exc_info=True)
            return None

        logger.info(f"Started session {session_id}")
        return SessionHandle(session_id=session_id, started_at=now)

    async def end_session(self, session_id: str) -> bool:
        try:
            await tracking_crud.end_user_session(self._supabase, session_id)
            return True
        except Exception as e:
            logger.error(f"Error ending session {session_id}: {e}")
            return False

    async def track_search_query(
        self,
        handle: Optional[SessionHandle],
        search_text: Optional[str],
        search_params: Dict[str, Any],
        results_count: int,
        user_id: Optional[str] = None,
        profile: Optional[Profile] = None,
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
    ) -> SearchTracking:
        handle = await self.get_or_create_session(
            handle, user_id=user_id, profile=profile, user_agent=user_agent, referrer=referrer
        )
        if handle is None:
            return SearchTracking(None, None)

        query_data = {
            "user_id": user_id,
            "session_id": handle.session_id,
            "search_text": search_text or None,
            "search_params": search_params,
            "results_count": results_count,
        }
        try:
            search_id = await tracking_crud.insert_search_query(self._supabase, query_data)
        except Exception as e:
            logger.error(f"Error tracking search query: {e}", exc_info=True)
            return SearchTracking(handle, None)

        try:
            await tracking_crud.increment_session_search_count(self._supabase, handle.session_id)
        except Exception as e:
            # Older databases do not define the counter function
            logger.debug(f"Session search count not updated for {handle.session_id}: {e}")

        return SearchTracking(handle, search_id)
