import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from postgrest.exceptions import APIError
from supabase._async.client import AsyncClient as AsyncSupabaseClient
from supabase_auth.errors import AuthApiError

from malawi_properties_service.audit import log_access_denied
from malawi_properties_service.crud import profile_crud
from malawi_properties_service.schemas.auth_schemas import AuthenticatedUser
from malawi_properties_service.schemas.records import Profile, UserType
from malawi_properties_service.supabase_client import (
    create_user_scoped_client,
    get_supabase_admin_client,
    get_supabase_client,
)

logger = logging.getLogger(__name__)

# auto_error is off so a missing header produces our own 401 message
bearer_scheme = HTTPBearer(auto_error=False)


async def get_optional_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    if credentials is None or not credentials.credentials:
        return None
    return credentials.credentials


async def get_bearer_token(token: Optional[str] = Depends(get_optional_bearer_token)) -> str:
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header is required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


async def _validate_token(supabase: AsyncSupabaseClient, token: str) -> Optional[AuthenticatedUser]:
    user_response = await supabase.auth.get_user(jwt=token)
    if not user_response or not user_response.user:
        return None
    return AuthenticatedUser(
        id=str(user_response.user.id),
        email=user_response.user.email,
        access_token=token,
    )


async def get_current_supabase_user(
    token: str = Depends(get_bearer_token),
    supabase: AsyncSupabaseClient = Depends(get_supabase_client),
) -> AuthenticatedUser:
    """
    Dependency to get the current authenticated Supabase user from a JWT.
    Validates the token and returns the user or raises HTTPException.
    """
    invalid_token = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        logger.debug(f"Attempting to get user with token: {token[:20]}...")
        current_user = await _validate_token(supabase, token)
    except AuthApiError as e:
        logger.warning(f"Supabase API error during token validation: {e.message} (Status: {e.status})")
        raise invalid_token

    if current_user is None:
        logger.warning(f"Token validation failed or no user returned for token: {token[:20]}...")
        raise invalid_token
    return current_user


async def get_optional_user(
    token: Optional[str] = Depends(get_optional_bearer_token),
    supabase: AsyncSupabaseClient = Depends(get_supabase_client),
) -> Optional[AuthenticatedUser]:
    """Like ``get_current_supabase_user`` but anonymous callers get None."""
    if not token:
        return None
    try:
        return await _validate_token(supabase, token)
    except AuthApiError as e:
        logger.info(f"Ignoring invalid token on an anonymous-friendly route: {e.message}")
        return None


async def get_user_supabase_client(
    current_user: AuthenticatedUser = Depends(get_current_supabase_user),
) -> AsyncSupabaseClient:
    """A client whose table requests run under the caller's row-level security."""
    return await create_user_scoped_client(current_user.access_token)


async def get_request_supabase_client(
    current_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> AsyncSupabaseClient:
    """User-scoped when a valid bearer token was sent, otherwise the shared anon client."""
    if current_user is None:
        return get_supabase_client()
    return await create_user_scoped_client(current_user.access_token)


async def get_reporting_client(
    user_client: AsyncSupabaseClient = Depends(get_user_supabase_client),
    admin_client: Optional[AsyncSupabaseClient] = Depends(get_supabase_admin_client),
) -> AsyncSupabaseClient:
    """Reports read through the service role when configured, else as the caller."""
    return admin_client or user_client


async def get_current_profile(
    current_user: AuthenticatedUser = Depends(get_current_supabase_user),
    supabase: AsyncSupabaseClient = Depends(get_user_supabase_client),
) -> Profile:
    profile = await profile_crud.get_profile(supabase, current_user.id)
    if profile is None:
        logger.warning(f"No profile found for authenticated user {current_user.id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User profile not found",
        )
    return profile


async def get_optional_profile(
    current_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
    supabase: AsyncSupabaseClient = Depends(get_request_supabase_client),
) -> Optional[Profile]:
    """Tracking routes use this; a failed lookup degrades to an anonymous caller."""
    if current_user is None:
        return None
    try:
        return await profile_crud.get_profile(supabase, current_user.id)
    except APIError as e:
        logger.warning(f"Profile lookup failed for {current_user.id}, continuing without it: {e.message}")
        return None


def require_roles(*roles: UserType):
    """
    Dependency factory that admits only profiles whose ``user_type`` is one of
    ``roles``. Denials are written to the audit log.
    """
    allowed = [role.value for role in roles]

    async def dependency(request: Request, profile: Profile = Depends(get_current_profile)) -> Profile:
        if profile.user_type not in roles:
            log_access_denied(request, profile.id, "Insufficient permissions", allowed)
            logger.warning(
                f"Access denied for {profile.id} ({profile.user_type.value}) on "
                f"{request.url.path}; requires one of {allowed}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return profile

    return dependency


require_admin_user = require_roles(UserType.ADMIN)
require_lister = require_roles(UserType.AGENT, UserType.OWNER, UserType.ADMIN)
require_market_analyst = require_roles(UserType.ADMIN, UserType.AGENT)


async def get_market_reporting_client(
    analyst: Profile = Depends(require_market_analyst),
    user_client: AsyncSupabaseClient = Depends(get_user_supabase_client),
    admin_client: Optional[AsyncSupabaseClient] = Depends(get_supabase_admin_client),
) -> AsyncSupabaseClient:
    """
    Admins read market data through the service role. Agents read as
    themselves so row-level security still filters what they see.
    """
    if analyst.user_type == UserType.ADMIN and admin_client is not None:
        return admin_client
    return user_client
