import logging

from fastapi import APIRouter, Depends, HTTPException, status
from postgrest.exceptions import APIError
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from malawi_properties_service.analytics import build_listing_stats, unique_viewed_listings
from malawi_properties_service.crud import inquiry_crud, profile_crud, property_crud, tracking_crud
from malawi_properties_service.dependencies import (
    get_caller_agent,
    get_current_profile,
    get_user_supabase_client,
    require_lister,
    require_roles,
)
from malawi_properties_service.schemas.analytics_schemas import BuyerDashboard, OwnerDashboard
from malawi_properties_service.schemas.buyer_schemas import AgentCreate, AgentUpdate
from malawi_properties_service.schemas.common_schemas import MessageResponse
from malawi_properties_service.schemas.records import Agent, Profile, UserType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Dashboards"])

require_agent = require_roles(UserType.AGENT)


@router.get(
    "/dashboard",
    response_model=OwnerDashboard,
    summary="Listings, inquiries and stats for the calling agent or owner",
)
async def get_owner_dashboard(
    profile: Profile = Depends(require_lister),
    supabase: AsyncSupabaseClient = Depends(get_user_supabase_client),
) -> OwnerDashboard:
    try:
        agent = await get_caller_agent(supabase, profile)
        if agent is not None:
            properties = await property_crud.list_properties_for_lister(supabase, agent_id=agent.id)
        else:
            properties = await property_crud.list_properties_for_lister(supabase, owner_id=profile.id)
        inquiries = await inquiry_crud.list_inquiries_for_properties(
            supabase, [p.id for p in properties]
        )
    except APIError as e:
        logger.error(f"Error loading dashboard for {profile.id}: {e.message}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)

    return OwnerDashboard(
        profile=profile,
        agent=agent,
        properties=properties,
        inquiries=inquiries,
        stats=build_listing_stats(properties),
    )


@router.get(
    "/buyer/dashboard",
    response_model=BuyerDashboard,
    summary="The calling buyer's inquiries and viewed listings",
)
async def get_buyer_dashboard(
    profile: Profile = Depends(get_current_profile),
    supabase: AsyncSupabaseClient = Depends(get_user_supabase_client),
) -> BuyerDashboard:
    try:
        inquiries = await inquiry_crud.list_inquiries_for_buyer(supabase, profile.id)
        views = await tracking_crud.list_views_for_viewer(supabase, profile.id)
    except APIError as e:
        logger.error(f"Error loading buyer dashboard for {profile.id}: {e.message}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)

    return BuyerDashboard(
        profile=profile,
        inquiries=inquiries,
        viewed_properties=unique_viewed_listings(views),
    )


@router.post(
    "/agents/me",
    response_model=Agent,
    status_code=status.HTTP_201_CREATED,
    summary="Create the calling agent's brokerage record",
    responses={status.HTTP_409_CONFLICT: {"model": MessageResponse}},
)
async def create_my_agent_record(
    agent_data: AgentCreate,
    profile: Profile = Depends(require_agent),
    supabase: AsyncSupabaseClient = Depends(get_user_supabase_client),
) -> Agent:
    try:
        if await profile_crud.get_agent_by_user_id(supabase, profile.id) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Agent profile already exists",
            )
        return await profile_crud.create_agent(supabase, profile.id, agent_data.model_dump())
    except APIError as e:
        logger.error(f"Error creating agent record for {profile.id}: {e.message}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)


@router.patch(
    "/agents/me",
    response_model=Agent,
    summary="Update the calling agent's brokerage details",
    responses={status.HTTP_404_NOT_FOUND: {"model": MessageResponse}},
)
async def update_my_agent_record(
    changes: AgentUpdate,
    profile: Profile = Depends(require_agent),
    supabase: AsyncSupabaseClient = Depends(get_user_supabase_client),
) -> Agent:
    not_found = HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent profile not found")
    try:
        agent = await profile_crud.get_agent_by_user_id(supabase, profile.id)
        if agent is None:
            raise not_found
        update_data = changes.model_dump(exclude_unset=True)
        if not update_data:
            return agent
        updated = await profile_crud.update_agent(supabase, agent.id, update_data)
    except APIError as e:
        logger.error(f"Error updating agent record for {profile.id}: {e.message}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)

    if updated is None:
        raise not_found
    return updated
