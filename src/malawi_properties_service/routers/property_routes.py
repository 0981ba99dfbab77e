import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from postgrest.exceptions import APIError
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from malawi_properties_service.crud import profile_crud, property_crud, tracking_crud
from malawi_properties_service.dependencies import (
    get_caller_agent,
    get_clock,
    get_managed_property,
    get_request_supabase_client,
    get_user_supabase_client,
    require_lister,
)
from malawi_properties_service.rate_limiting import TRACKING_LIMIT, limiter
from malawi_properties_service.schemas.buyer_schemas import BuyerDetailsRequest, UnlockResponse
from malawi_properties_service.schemas.common_schemas import MessageResponse, SuccessResponse
from malawi_properties_service.schemas.property_schemas import (
    MarketplaceResponse,
    MarkSoldRequest,
    PropertyCreate,
    PropertyStatusUpdate,
    PropertyUpdate,
)
from malawi_properties_service.schemas.records import Profile, Property, PropertyType, UserType
from malawi_properties_service.schemas.tracking_schemas import ViewDurationRequest
from malawi_properties_service.tracking import detect_device_type

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Properties"])

# Views shorter than this are page bounces and keep a zero duration
MIN_RECORDED_VIEW_SECONDS = 3


def filter_listings(
    listings: Iterable[Property],
    search: Optional[str] = None,
    property_type: Optional[PropertyType] = None,
    district: Optional[str] = None,
    currency: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
) -> List[Property]:
    """Marketplace filters, applied in order over the available listings."""
    filtered = list(listings)
    if search:
        needle = search.lower()
        filtered = [
            p
            for p in filtered
            if needle in p.title.lower()
            or needle in (p.description or "").lower()
            or needle in p.district.lower()
            or needle in (p.area or "").lower()
        ]
    if property_type:
        filtered = [p for p in filtered if p.property_type == property_type]
    if district:
        filtered = [p for p in filtered if p.district == district]
    if currency:
        filtered = [p for p in filtered if p.currency == currency]
    if min_price is not None:
        filtered = [p for p in filtered if p.price >= min_price]
    if max_price is not None:
        filtered = [p for p in filtered if p.price <= max_price]
    return filtered


def _upstream_error(action: str, e: APIError) -> HTTPException:
    logger.error(f"Error {action}: {e.message}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)


# --- Marketplace ---


@router.get("/properties", response_model=MarketplaceResponse, summary="Browse available listings")
async def list_marketplace(
    search: Optional[str] = Query(None, description="Matches title, description, district or area"),
    property_type: Optional[PropertyType] = Query(None),
    district: Optional[str] = Query(None),
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    supabase: AsyncSupabaseClient = Depends(get_request_supabase_client),
) -> MarketplaceResponse:
    try:
        available = await property_crud.list_available_properties(supabase)
    except APIError as e:
        raise _upstream_error("loading the marketplace", e)

    return MarketplaceResponse(
        properties=filter_listings(
            available, search, property_type, district, currency, min_price, max_price
        ),
        districts=sorted({p.district for p in available if p.district}),
        total=len(available),
    )


@router.get(
    "/properties/{property_id}",
    response_model=Property,
    responses={status.HTTP_404_NOT_FOUND: {"model": MessageResponse}},
)
async def get_listing(
    property_id: str,
    supabase: AsyncSupabaseClient = Depends(get_request_supabase_client),
) -> Property:
    try:
        listing = await property_crud.get_property(supabase, property_id)
    except APIError as e:
        raise _upstream_error(f"fetching property {property_id}", e)
    if listing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Property with ID {property_id} not found",
        )
    return listing


# --- Buyer-details gate ---


@router.post(
    "/properties/{property_id}/views",
    response_model=UnlockResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit buyer details to unlock listing contact details",
    responses={status.HTTP_404_NOT_FOUND: {"model": MessageResponse}},
)
@limiter.limit(TRACKING_LIMIT)
async def unlock_listing(
    request: Request,
    property_id: str,
    details: BuyerDetailsRequest,
    supabase: AsyncSupabaseClient = Depends(get_request_supabase_client),
) -> UnlockResponse:
    """
    Records an anonymous property view carrying the buyer's declared location
    and origin, then bumps the listing's view counter. Both writes are
    best-effort; the details are unlocked either way.
    """
    try:
        listing = await property_crud.get_property(supabase, property_id)
    except APIError as e:
        raise _upstream_error(f"fetching property {property_id}", e)
    if listing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Property with ID {property_id} not found",
        )

    device_type = detect_device_type(request.headers.get("user-agent"))
    view_id = None
    try:
        view = await tracking_crud.insert_property_view(
            supabase, details.view_record(property_id, device_type)
        )
        view_id = view.id
        await property_crud.increment_property_counter(supabase, property_id, "views_count")
    except Exception as e:
        logger.error(f"Error recording view of property {property_id}: {e}", exc_info=True)

    return UnlockResponse(unlocked=True, view_id=view_id)


@router.patch(
    "/property-views/{view_id}/duration",
    response_model=SuccessResponse,
    summary="Record how long the unlocked listing stayed open",
)
@limiter.limit(TRACKING_LIMIT)
async def record_view_duration(
    request: Request,
    view_id: str,
    body: ViewDurationRequest,
    supabase: AsyncSupabaseClient = Depends(get_request_supabase_client),
) -> SuccessResponse:
    if body.duration_seconds <= MIN_RECORDED_VIEW_SECONDS:
        return SuccessResponse(success=False)
    try:
        await tracking_crud.update_view_duration(supabase, view_id, body.duration_seconds)
    except Exception as e:
        logger.error(f"Error recording duration for view {view_id}: {e}")
        return SuccessResponse(success=False)
    return SuccessResponse(success=True)


# --- Listing management ---


@router.post(
    "/properties",
    response_model=Property,
    status_code=status.HTTP_201_CREATED,
    summary="Create a listing",
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": MessageResponse},
        status.HTTP_403_FORBIDDEN: {"model": MessageResponse},
    },
)
async def create_listing(
    listing_data: PropertyCreate,
    profile: Profile = Depends(require_lister),
    supabase: AsyncSupabaseClient = Depends(get_user_supabase_client),
) -> Property:
    """
    Agents list under their agent record; owners and admins list under their
    own profile. Exactly one of ``agent_id``/``owner_id`` is set.
    """
    payload = listing_data.model_dump(mode="json")
    try:
        agent = await get_caller_agent(supabase, profile)
        if profile.user_type == UserType.AGENT and agent is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Create your agent profile before listing properties",
            )
        if agent is not None:
            payload.update(agent_id=agent.id, owner_id=None)
        else:
            payload.update(agent_id=None, owner_id=profile.id)

        created = await property_crud.create_property(supabase, payload)
        if agent is not None:
            await profile_crud.increment_agent_listings(supabase, agent)
    except APIError as e:
        raise _upstream_error("creating property", e)

    return created


@router.patch("/properties/{property_id}", response_model=Property, summary="Edit a listing")
async def update_listing(
    changes: PropertyUpdate,
    listing: Property = Depends(get_managed_property),
    supabase: AsyncSupabaseClient = Depends(get_user_supabase_client),
) -> Property:
    update_data = changes.model_dump(mode="json", exclude_unset=True)
    if not update_data:
        return listing
    try:
        updated = await property_crud.update_property(supabase, listing.id, update_data)
    except APIError as e:
        raise _upstream_error(f"updating property {listing.id}", e)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    return updated


@router.patch(
    "/properties/{property_id}/status", response_model=Property, summary="Change a listing's status"
)
async def update_listing_status(
    body: PropertyStatusUpdate,
    listing: Property = Depends(get_managed_property),
    supabase: AsyncSupabaseClient = Depends(get_user_supabase_client),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> Property:
    try:
        updated = await property_crud.update_property_status(supabase, listing.id, body.status, clock())
    except APIError as e:
        raise _upstream_error(f"updating status of property {listing.id}", e)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    return updated


@router.post(
    "/properties/{property_id}/mark-sold", response_model=Property, summary="Mark a listing as sold"
)
async def mark_listing_sold(
    body: MarkSoldRequest,
    listing: Property = Depends(get_managed_property),
    supabase: AsyncSupabaseClient = Depends(get_user_supabase_client),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> Property:
    try:
        updated = await property_crud.mark_property_sold(
            supabase, listing.id, body.sale_price, body.buyer_type, clock()
        )
    except APIError as e:
        raise _upstream_error(f"marking property {listing.id} sold", e)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    return updated


@router.delete(
    "/properties/{property_id}", response_model=MessageResponse, summary="Delete a listing"
)
async def delete_listing(
    listing: Property = Depends(get_managed_property),
    supabase: AsyncSupabaseClient = Depends(get_user_supabase_client),
) -> MessageResponse:
    try:
        deleted = await property_crud.delete_property(supabase, listing.id)
    except APIError as e:
        raise _upstream_error(f"deleting property {listing.id}", e)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    return MessageResponse(message=f"Property {listing.id} deleted")
