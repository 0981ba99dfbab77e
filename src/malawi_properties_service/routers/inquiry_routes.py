import logging
from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Request, status
from postgrest.exceptions import APIError
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from malawi_properties_service.audit import log_access_denied
from malawi_properties_service.crud import inquiry_crud, property_crud
from malawi_properties_service.dependencies import (
    can_manage_property,
    get_clock,
    get_current_profile,
    get_user_supabase_client,
    get_visit_tracker,
    require_lister,
)
from malawi_properties_service.schemas.buyer_schemas import InquiryCreate, InquiryStatusUpdate
from malawi_properties_service.schemas.common_schemas import MessageResponse
from malawi_properties_service.schemas.records import Inquiry, Profile
from malawi_properties_service.tracking import VisitTracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/inquiries", tags=["Inquiries"])


@router.post(
    "",
    response_model=Inquiry,
    status_code=status.HTTP_201_CREATED,
    summary="Send an inquiry about a listing",
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": MessageResponse},
        status.HTTP_404_NOT_FOUND: {"model": MessageResponse},
    },
)
async def create_inquiry(
    inquiry_data: InquiryCreate,
    profile: Profile = Depends(get_current_profile),
    supabase: AsyncSupabaseClient = Depends(get_user_supabase_client),
    visit_tracker: VisitTracker = Depends(get_visit_tracker),
) -> Inquiry:
    """
    Stores the inquiry for the logged-in buyer. The listing's inquiry counter
    and the visit's conversion flag are updated afterwards on a best-effort
    basis.
    """
    try:
        listing = await property_crud.get_property(supabase, inquiry_data.property_id)
        if listing is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Property with ID {inquiry_data.property_id} not found",
            )
        inquiry = await inquiry_crud.create_inquiry(supabase, inquiry_data.inquiry_record(profile.id))
    except APIError as e:
        logger.error(f"Error creating inquiry for {inquiry_data.property_id}: {e.message}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)

    try:
        await property_crud.increment_property_counter(supabase, listing.id, "inquiries_count")
    except APIError as e:
        logger.warning(f"Inquiry counter not updated for property {listing.id}: {e.message}")

    await visit_tracker.mark_visit_converted(inquiry_data.visit_session_id)
    return inquiry


@router.patch(
    "/{inquiry_id}/status",
    response_model=Inquiry,
    summary="Move an inquiry through its lifecycle",
    responses={
        status.HTTP_403_FORBIDDEN: {"model": MessageResponse},
        status.HTTP_404_NOT_FOUND: {"model": MessageResponse},
    },
)
async def update_inquiry_status(
    request: Request,
    inquiry_id: str,
    body: InquiryStatusUpdate,
    profile: Profile = Depends(require_lister),
    supabase: AsyncSupabaseClient = Depends(get_user_supabase_client),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> Inquiry:
    not_found = HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Inquiry with ID {inquiry_id} not found",
    )
    try:
        inquiry = await inquiry_crud.get_inquiry(supabase, inquiry_id)
        if inquiry is None:
            raise not_found
        listing = await property_crud.get_property(supabase, inquiry.property_id)
        if listing is None or not await can_manage_property(supabase, profile, listing):
            log_access_denied(request, profile.id, f"Not the lister behind inquiry {inquiry_id}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to update this inquiry",
            )
        updated = await inquiry_crud.update_inquiry_status(supabase, inquiry_id, body.status, clock())
    except APIError as e:
        logger.error(f"Error updating inquiry {inquiry_id}: {e.message}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)

    if updated is None:
        raise not_found
    logger.info(f"Inquiry {inquiry_id} moved to {body.status.value} by {profile.id}")
    return updated
