# src/malawi_properties_service/crud/analytics_crud.py
"""
Bulk loaders for the reporting endpoints.

Reports are computed in process over full table reads, so every loader here
fetches the complete row set in one round of concurrent queries.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Optional

from postgrest.exceptions import APIError
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from ..analytics.snapshot import MarketplaceSnapshot
from ..schemas.analytics_schemas import SystemHealth
from ..schemas.records import (
    Agent,
    Inquiry,
    Profile,
    Property,
    PropertyView,
    SearchQuery,
    TrafficSource,
    UserSession,
)
from .inquiry_crud import INQUIRY_SELECT
from .profile_crud import AGENT_WITH_PROPERTIES_SELECT

logger = logging.getLogger(__name__)

# Only the most recent traffic rows feed the traffic-source panel
TRAFFIC_SAMPLE_SIZE = 100

SNAPSHOT_TABLES = (
    "profiles",
    "agents",
    "properties",
    "inquiries",
    "views",
    "searches",
    "sessions",
    "traffic",
)

EXPORT_QUERIES: Dict[str, tuple] = {
    "properties": ("properties", "*"),
    "inquiries": ("inquiries", "*, profiles(*), properties(*)"),
    "users": ("profiles", "*"),
}


async def fetch_rows(
    supabase: AsyncSupabaseClient,
    table: str,
    columns: str = "*",
    limit: Optional[int] = None,
    newest_first: bool = False,
) -> List[Dict[str, Any]]:
    query = supabase.table(table).select(columns)
    if newest_first:
        query = query.order("created_at", desc=True)
    if limit is not None:
        query = query.limit(limit)
    response = await query.execute()
    return response.data or []


async def load_marketplace_snapshot(
    supabase: AsyncSupabaseClient, tables: Iterable[str] = SNAPSHOT_TABLES
) -> MarketplaceSnapshot:
    """
    Loads the requested snapshot tables concurrently and parses each into its
    record type. Tables not requested stay empty.

    Raises:
        APIError: If any of the underlying queries fail.
    """
    loaders = {
        "profiles": (lambda: fetch_rows(supabase, "profiles"), Profile),
        "agents": (lambda: fetch_rows(supabase, "agents", AGENT_WITH_PROPERTIES_SELECT), Agent),
        "properties": (lambda: fetch_rows(supabase, "properties"), Property),
        "inquiries": (lambda: fetch_rows(supabase, "inquiries", INQUIRY_SELECT), Inquiry),
        "views": (
            lambda: fetch_rows(
                supabase, "property_views", "*, properties(id, title, district, property_type)"
            ),
            PropertyView,
        ),
        "searches": (lambda: fetch_rows(supabase, "search_queries"), SearchQuery),
        "sessions": (lambda: fetch_rows(supabase, "user_sessions"), UserSession),
        "traffic": (
            lambda: fetch_rows(
                supabase, "traffic_sources", limit=TRAFFIC_SAMPLE_SIZE, newest_first=True
            ),
            TrafficSource,
        ),
    }

    wanted = [name for name in tables if name in loaders]
    results = await asyncio.gather(*(loaders[name][0]() for name in wanted))

    snapshot = MarketplaceSnapshot()
    for name, rows in zip(wanted, results):
        model = loaders[name][1]
        setattr(snapshot, name, [model.model_validate(row) for row in rows])

    logger.debug(
        "Loaded snapshot: " + ", ".join(f"{name}={len(getattr(snapshot, name))}" for name in wanted)
    )
    return snapshot


async def probe_database(supabase: AsyncSupabaseClient) -> SystemHealth:
    """Times a minimal query to report data-service latency on the admin console."""
    started = time.perf_counter()
    try:
        await supabase.table("profiles").select("id").limit(1).execute()
        connected = True
    except APIError as e:
        logger.warning(f"Database probe failed: {e.message}")
        connected = False
    elapsed_ms = int(round((time.perf_counter() - started) * 1000))
    return SystemHealth(api_response_time_ms=elapsed_ms, database_connected=connected)


async def load_export_rows(supabase: AsyncSupabaseClient, kind: str) -> List[Dict[str, Any]]:
    table, columns = EXPORT_QUERIES[kind]
    response = await supabase.table(table).select(columns).execute()
    return response.data or []
