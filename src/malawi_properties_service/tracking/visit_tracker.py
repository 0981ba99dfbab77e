import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, NamedTuple, Optional

from supabase._async.client import AsyncClient as AsyncSupabaseClient

from ..crud import tracking_crud
from ..schemas.records import TrafficSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VisitContext:
    """What the client remembers about the visit it last reported."""

    session_id: str
    row_id: Optional[str] = None
    last_tracked_at: Optional[datetime] = None

    def covers(self, session_id: str, now: datetime, window: timedelta) -> bool:
        return (
            self.session_id == session_id
            and self.row_id is not None
            and self.last_tracked_at is not None
            and now - self.last_tracked_at < window
        )


@dataclass(frozen=True)
class VisitDetails:
    session_id: str
    landing_page: str
    user_id: Optional[str] = None
    source: Optional[str] = None
    medium: Optional[str] = None
    referrer: Optional[str] = None
    device_type: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None


class VisitOutcome(NamedTuple):
    context: VisitContext
    updated: bool
    row: Optional[TrafficSource] = None


class VisitTracker:
    """
    Records first-touch traffic rows, one per visit session id. Later page
    loads in the same session bump the row's ``page_views`` counter.
    """

    def __init__(
        self,
        supabase: AsyncSupabaseClient,
        clock: Callable[[], datetime],
        dedup_window: timedelta = timedelta(minutes=5),
    ):
        self._supabase = supabase
        self._clock = clock
        self._dedup_window = dedup_window

    async def record_visit(
        self, visit: VisitDetails, context: Optional[VisitContext] = None
    ) -> Optional[VisitOutcome]:
        now = self._clock()
        try:
            if context is not None and context.covers(visit.session_id, now, self._dedup_window):
                page_views = await tracking_crud.increment_traffic_page_views(
                    self._supabase, context.row_id, now
                )
                if page_views is not None:
                    return VisitOutcome(VisitContext(visit.session_id, context.row_id, now), True)

            existing = await tracking_crud.get_traffic_source_by_session(self._supabase, visit.session_id)
            if existing is not None:
                await tracking_crud.increment_traffic_page_views(self._supabase, existing.id, now)
                return VisitOutcome(VisitContext(visit.session_id, existing.id, now), True)

            row = await tracking_crud.insert_traffic_source(
                self._supabase,
                {
                    "session_id": visit.session_id,
                    "user_id": visit.user_id,
                    "source": visit.source or "direct",
                    "medium": visit.medium or "none",
                    "referrer": visit.referrer or None,
                    "landing_page": visit.landing_page or "/",
                    "device_type": visit.device_type or "unknown",
                    "browser": visit.browser or "unknown",
                    "os": visit.os or "unknown",
                    "country": "Unknown",
                    "city": "Unknown",
                    "first_visit_at": now.isoformat(),
                    "last_activity_at": now.isoformat(),
                    "page_views": 1,
                    "converted": False,
                },
            )
        except Exception as e:
            logger.error(f"Error tracking visit for {visit.session_id[:20]}: {e}", exc_info=True)
            return None

        logger.info(f"Visit tracked: source={row.source} medium={row.medium} landing={row.landing_page}")
        return VisitOutcome(VisitContext(visit.session_id, row.id, now), False, row)

    async def mark_visit_converted(self, session_id: Optional[str]) -> bool:
        if not session_id:
            return False
        try:
            await tracking_crud.mark_traffic_converted(self._supabase, session_id)
            return True
        except Exception as e:
            logger.error(f"Error marking visit as converted: {e}")
            return False
