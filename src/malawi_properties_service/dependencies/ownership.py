import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from postgrest.exceptions import APIError
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from malawi_properties_service.audit import log_access_denied
from malawi_properties_service.crud import profile_crud, property_crud
from malawi_properties_service.schemas.records import Agent, Profile, Property, UserType

from .user_deps import get_user_supabase_client, require_lister

logger = logging.getLogger(__name__)


async def get_caller_agent(supabase: AsyncSupabaseClient, profile: Profile) -> Optional[Agent]:
    if profile.user_type != UserType.AGENT:
        return None
    return await profile_crud.get_agent_by_user_id(supabase, profile.id)


async def can_manage_property(
    supabase: AsyncSupabaseClient, profile: Profile, listing: Property
) -> bool:
    """Admins manage everything; otherwise the listing's owner or its agent's user."""
    if profile.user_type == UserType.ADMIN:
        return True
    if listing.owner_id and listing.owner_id == profile.id:
        return True
    if listing.agent_id:
        agent = await profile_crud.get_agent(supabase, listing.agent_id)
        return agent is not None and agent.user_id == profile.id
    return False


async def get_managed_property(
    property_id: str,
    request: Request,
    profile: Profile = Depends(require_lister),
    supabase: AsyncSupabaseClient = Depends(get_user_supabase_client),
) -> Property:
    """
    Loads the listing named in the path and checks the caller may mutate it.
    Raises 404 for an unknown listing and 403 for someone else's.
    """
    try:
        listing = await property_crud.get_property(supabase, property_id)
        if listing is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Property with ID {property_id} not found",
            )
        allowed = await can_manage_property(supabase, profile, listing)
    except APIError as e:
        logger.error(f"Error loading property {property_id} for ownership check: {e.message}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)

    if not allowed:
        log_access_denied(request, profile.id, f"Not the lister of property {property_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to modify this property",
        )
    return listing
