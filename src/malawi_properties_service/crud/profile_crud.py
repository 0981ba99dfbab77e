# src/malawi_properties_service/crud/profile_crud.py
import logging
from typing import Any, Dict, Optional

from supabase._async.client import AsyncClient as AsyncSupabaseClient

from ..schemas.records import Agent, Profile, VerificationStatus

logger = logging.getLogger(__name__)

AGENT_SELECT = "*, profiles(full_name, email)"
AGENT_WITH_PROPERTIES_SELECT = "*, profiles(full_name, email), properties(*)"


async def get_profile(supabase: AsyncSupabaseClient, user_id: str) -> Optional[Profile]:
    """Retrieves a profile by the auth user id, or None when it does not exist."""
    response = await (
        supabase.table("profiles").select("*").eq("id", user_id).maybe_single().execute()
    )
    if not response or not response.data:
        return None
    return Profile.model_validate(response.data)


async def upsert_profile(supabase: AsyncSupabaseClient, profile_data: Dict[str, Any]) -> Profile:
    """Creates or replaces a profile row keyed by id."""
    response = await supabase.table("profiles").upsert(profile_data).execute()
    profile = Profile.model_validate(response.data[0])
    logger.info(f"Profile upserted for user_id: {profile.id} as {profile.user_type.value}")
    return profile


async def get_agent_by_user_id(supabase: AsyncSupabaseClient, user_id: str) -> Optional[Agent]:
    response = await (
        supabase.table("agents")
        .select(AGENT_SELECT)
        .eq("user_id", user_id)
        .maybe_single()
        .execute()
    )
    if not response or not response.data:
        return None
    return Agent.model_validate(response.data)


async def get_agent(supabase: AsyncSupabaseClient, agent_id: str) -> Optional[Agent]:
    response = await (
        supabase.table("agents").select(AGENT_SELECT).eq("id", agent_id).maybe_single().execute()
    )
    if not response or not response.data:
        return None
    return Agent.model_validate(response.data)


async def create_agent(
    supabase: AsyncSupabaseClient, user_id: str, agent_data: Dict[str, Any]
) -> Agent:
    """New agents always start unverified."""
    payload = {
        **agent_data,
        "user_id": user_id,
        "verification_status": VerificationStatus.PENDING.value,
    }
    response = await supabase.table("agents").insert(payload).execute()
    agent = Agent.model_validate(response.data[0])
    logger.info(f"Agent record {agent.id} created for user_id: {user_id}")
    return agent


async def increment_agent_listings(supabase: AsyncSupabaseClient, agent: Agent) -> None:
    await (
        supabase.table("agents")
        .update({"total_listings": agent.total_listings + 1})
        .eq("id", agent.id)
        .execute()
    )


async def update_agent_verification(
    supabase: AsyncSupabaseClient, agent_id: str, verification_status: VerificationStatus
) -> Optional[Agent]:
    response = await (
        supabase.table("agents")
        .update({"verification_status": verification_status.value})
        .eq("id", agent_id)
        .execute()
    )
    if not response.data:
        logger.warning(f"No agent found with id {agent_id} to update verification")
        return None
    logger.info(f"Agent {agent_id} verification set to {verification_status.value}")
    return Agent.model_validate(response.data[0])


async def update_agent(
    supabase: AsyncSupabaseClient, agent_id: str, changes: Dict[str, Any]
) -> Optional[Agent]:
    response = await supabase.table("agents").update(changes).eq("id", agent_id).execute()
    if not response.data:
        return None
    return Agent.model_validate(response.data[0])
