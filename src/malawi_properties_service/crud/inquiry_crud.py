# src/malawi_properties_service/crud/inquiry_crud.py
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from supabase._async.client import AsyncClient as AsyncSupabaseClient

from ..schemas.records import Inquiry, InquiryStatus

logger = logging.getLogger(__name__)

INQUIRY_SELECT = (
    "*, profiles(full_name, email, is_diaspora, current_location), "
    "properties(id, title, district, property_type, price, currency)"
)


async def create_inquiry(supabase: AsyncSupabaseClient, inquiry_data: Dict[str, Any]) -> Inquiry:
    response = await supabase.table("inquiries").insert(inquiry_data).execute()
    created = Inquiry.model_validate(response.data[0])
    logger.info(f"Inquiry {created.id} created for property {created.property_id}")
    return created


async def get_inquiry(supabase: AsyncSupabaseClient, inquiry_id: str) -> Optional[Inquiry]:
    response = await (
        supabase.table("inquiries").select(INQUIRY_SELECT).eq("id", inquiry_id).maybe_single().execute()
    )
    if not response or not response.data:
        return None
    return Inquiry.model_validate(response.data)


async def update_inquiry_status(
    supabase: AsyncSupabaseClient,
    inquiry_id: str,
    new_status: InquiryStatus,
    now: datetime,
) -> Optional[Inquiry]:
    """Moving an inquiry to ``contacted`` records when the lister responded."""
    changes: Dict[str, Any] = {"status": new_status.value}
    if new_status == InquiryStatus.CONTACTED:
        changes["responded_at"] = now.isoformat()

    response = await supabase.table("inquiries").update(changes).eq("id", inquiry_id).execute()
    if not response.data:
        return None
    return Inquiry.model_validate(response.data[0])


async def list_inquiries_for_properties(
    supabase: AsyncSupabaseClient, property_ids: List[str]
) -> List[Inquiry]:
    if not property_ids:
        return []
    response = await (
        supabase.table("inquiries")
        .select(INQUIRY_SELECT)
        .in_("property_id", property_ids)
        .order("created_at", desc=True)
        .execute()
    )
    return [Inquiry.model_validate(row) for row in response.data or []]


async def list_inquiries_for_buyer(supabase: AsyncSupabaseClient, buyer_id: str) -> List[Inquiry]:
    response = await (
        supabase.table("inquiries")
        .select(INQUIRY_SELECT)
        .eq("buyer_id", buyer_id)
        .order("created_at", desc=True)
        .execute()
    )
    return [Inquiry.model_validate(row) for row in response.data or []]


async def list_all_inquiries(supabase: AsyncSupabaseClient) -> List[Inquiry]:
    response = await (
        supabase.table("inquiries").select(INQUIRY_SELECT).order("created_at", desc=True).execute()
    )
    return [Inquiry.model_validate(row) for row in response.data or []]
