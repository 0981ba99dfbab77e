# src/malawi_properties_service/crud/property_crud.py
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from supabase._async.client import AsyncClient as AsyncSupabaseClient

from ..schemas.records import OriginType, Property, PropertyStatus

logger = logging.getLogger(__name__)

COUNTER_COLUMNS = ("views_count", "inquiries_count")


async def list_available_properties(supabase: AsyncSupabaseClient) -> List[Property]:
    """Public marketplace listing: featured first, then newest."""
    response = await (
        supabase.table("properties")
        .select("*")
        .eq("status", PropertyStatus.AVAILABLE.value)
        .order("is_featured", desc=True)
        .order("listed_at", desc=True)
        .execute()
    )
    return [Property.model_validate(row) for row in response.data or []]


async def list_all_properties(supabase: AsyncSupabaseClient) -> List[Property]:
    response = await (
        supabase.table("properties").select("*").order("created_at", desc=True).execute()
    )
    return [Property.model_validate(row) for row in response.data or []]


async def get_property(supabase: AsyncSupabaseClient, property_id: str) -> Optional[Property]:
    response = await (
        supabase.table("properties").select("*").eq("id", property_id).maybe_single().execute()
    )
    if not response or not response.data:
        return None
    return Property.model_validate(response.data)


async def list_properties_for_lister(
    supabase: AsyncSupabaseClient,
    agent_id: Optional[str] = None,
    owner_id: Optional[str] = None,
) -> List[Property]:
    """
    Listings belonging to an agent record or, for private owners, to the
    owner's profile id. Exactly one of the two ids is expected.
    """
    query = supabase.table("properties").select("*")
    if agent_id:
        query = query.eq("agent_id", agent_id)
    elif owner_id:
        query = query.eq("owner_id", owner_id)
    else:
        return []
    response = await query.order("created_at", desc=True).execute()
    return [Property.model_validate(row) for row in response.data or []]


async def create_property(supabase: AsyncSupabaseClient, property_data: Dict[str, Any]) -> Property:
    response = await supabase.table("properties").insert(property_data).execute()
    created = Property.model_validate(response.data[0])
    logger.info(f"Property {created.id} created in {created.district}")
    return created


async def update_property(
    supabase: AsyncSupabaseClient, property_id: str, changes: Dict[str, Any]
) -> Optional[Property]:
    response = await (
        supabase.table("properties").update(changes).eq("id", property_id).execute()
    )
    if not response.data:
        return None
    return Property.model_validate(response.data[0])


async def update_property_status(
    supabase: AsyncSupabaseClient,
    property_id: str,
    new_status: PropertyStatus,
    now: datetime,
) -> Optional[Property]:
    """``sold_at`` follows the status: stamped when sold, cleared otherwise."""
    changes = {
        "status": new_status.value,
        "sold_at": now.isoformat() if new_status == PropertyStatus.SOLD else None,
    }
    return await update_property(supabase, property_id, changes)


async def mark_property_sold(
    supabase: AsyncSupabaseClient,
    property_id: str,
    sale_price: Optional[float],
    buyer_type: Optional[OriginType],
    now: datetime,
) -> Optional[Property]:
    """
    Without sale details this is a quick mark that clears any earlier
    ``sale_price``/``buyer_type``; otherwise only the given details are written.
    """
    changes: Dict[str, Any] = {
        "status": PropertyStatus.SOLD.value,
        "sold_at": now.isoformat(),
    }
    if sale_price is None and buyer_type is None:
        changes.update(sale_price=None, buyer_type=None)
    else:
        if sale_price is not None:
            changes["sale_price"] = sale_price
        if buyer_type is not None:
            changes["buyer_type"] = buyer_type.value

    updated = await update_property(supabase, property_id, changes)
    if updated:
        logger.info(f"Property {property_id} marked sold")
    return updated


async def delete_property(supabase: AsyncSupabaseClient, property_id: str) -> bool:
    response = await supabase.table("properties").delete().eq("id", property_id).execute()
    deleted = bool(response.data)
    if deleted:
        logger.info(f"Property {property_id} deleted")
    return deleted


async def increment_property_counter(
    supabase: AsyncSupabaseClient, property_id: str, column: str
) -> Optional[int]:
    """
    Read-then-write increment of a denormalised counter. Concurrent increments
    can lose an update; the counters are display figures only.
    """
    if column not in COUNTER_COLUMNS:
        raise ValueError(f"Unknown counter column: {column}")

    response = await (
        supabase.table("properties").select(column).eq("id", property_id).maybe_single().execute()
    )
    if not response or not response.data:
        return None
    new_value = (response.data.get(column) or 0) + 1
    await supabase.table("properties").update({column: new_value}).eq("id", property_id).execute()
    return new_value
