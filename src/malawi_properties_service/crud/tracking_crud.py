# src/malawi_properties_service/crud/tracking_crud.py
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from supabase._async.client import AsyncClient as AsyncSupabaseClient

from ..schemas.records import PropertyView, TrafficSource

logger = logging.getLogger(__name__)

END_SESSION_RPC = "end_user_session"
SEARCH_COUNT_RPC = "update_user_session_search_count"


# --- user_sessions ---


async def insert_user_session(supabase: AsyncSupabaseClient, session_data: Dict[str, Any]) -> str:
    """Inserts a session envelope and returns the generated id."""
    response = await supabase.table("user_sessions").insert(session_data).execute()
    return response.data[0]["id"]


async def end_user_session(supabase: AsyncSupabaseClient, session_id: str) -> None:
    await supabase.rpc(END_SESSION_RPC, {"session_uuid": session_id}).execute()


async def increment_session_search_count(supabase: AsyncSupabaseClient, session_id: str) -> None:
    await supabase.rpc(SEARCH_COUNT_RPC, {"session_uuid": session_id}).execute()


# --- search_queries ---


async def insert_search_query(supabase: AsyncSupabaseClient, query_data: Dict[str, Any]) -> str:
    response = await supabase.table("search_queries").insert(query_data).execute()
    return response.data[0]["id"]


# --- traffic_sources ---


async def get_traffic_source_by_session(
    supabase: AsyncSupabaseClient, session_id: str
) -> Optional[TrafficSource]:
    response = await (
        supabase.table("traffic_sources")
        .select("*")
        .eq("session_id", session_id)
        .maybe_single()
        .execute()
    )
    if not response or not response.data:
        return None
    return TrafficSource.model_validate(response.data)


async def insert_traffic_source(
    supabase: AsyncSupabaseClient, traffic_data: Dict[str, Any]
) -> TrafficSource:
    response = await supabase.table("traffic_sources").insert(traffic_data).execute()
    return TrafficSource.model_validate(response.data[0])


async def increment_traffic_page_views(
    supabase: AsyncSupabaseClient, row_id: str, now: datetime
) -> Optional[int]:
    """Bumps ``page_views`` on a known row and stamps ``last_activity_at``."""
    response = await (
        supabase.table("traffic_sources")
        .select("page_views")
        .eq("id", row_id)
        .maybe_single()
        .execute()
    )
    if not response or not response.data:
        return None
    page_views = (response.data.get("page_views") or 0) + 1
    await (
        supabase.table("traffic_sources")
        .update({"page_views": page_views, "last_activity_at": now.isoformat()})
        .eq("id", row_id)
        .execute()
    )
    return page_views


async def mark_traffic_converted(supabase: AsyncSupabaseClient, session_id: str) -> None:
    await (
        supabase.table("traffic_sources").update({"converted": True}).eq("session_id", session_id).execute()
    )


async def list_recent_traffic(
    supabase: AsyncSupabaseClient, limit: int = 100, columns: str = "*"
) -> Tuple[List[Dict[str, Any]], int]:
    """Newest traffic rows plus the exact total row count."""
    response = await (
        supabase.table("traffic_sources")
        .select(columns, count="exact")
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    return response.data or [], response.count or 0


async def count_traffic_sources(supabase: AsyncSupabaseClient) -> int:
    response = await (
        supabase.table("traffic_sources").select("*", count="exact", head=True).execute()
    )
    return response.count or 0


async def delete_traffic_by_session(supabase: AsyncSupabaseClient, session_id: str) -> None:
    await supabase.table("traffic_sources").delete().eq("session_id", session_id).execute()


# --- property_views ---


async def insert_property_view(supabase: AsyncSupabaseClient, view_data: Dict[str, Any]) -> PropertyView:
    response = await supabase.table("property_views").insert(view_data).execute()
    return PropertyView.model_validate(response.data[0])


async def update_view_duration(
    supabase: AsyncSupabaseClient, view_id: str, duration_seconds: int
) -> None:
    await (
        supabase.table("property_views")
        .update({"viewing_duration": duration_seconds})
        .eq("id", view_id)
        .execute()
    )


async def list_views_for_viewer(supabase: AsyncSupabaseClient, viewer_id: str) -> List[PropertyView]:
    response = await (
        supabase.table("property_views")
        .select("*, properties(*)")
        .eq("viewer_id", viewer_id)
        .order("viewed_at", desc=True)
        .execute()
    )
    return [PropertyView.model_validate(row) for row in response.data or []]
