from supabase._async.client import AsyncClient as AsyncSupabaseClient
from supabase._async.client import create_client as create_async_supabase_client

from malawi_properties_service.config import (
    PLACEHOLDER_SUPABASE_ANON_KEY,
    PLACEHOLDER_SUPABASE_URL,
    settings,
)
from malawi_properties_service.logging_config import logger

# Global instances for both clients
_global_async_supabase_client: AsyncSupabaseClient | None = None
_global_admin_supabase_client: AsyncSupabaseClient | None = None


def _connection_values() -> tuple[str, str]:
    """
    Returns the URL and anon key to connect with, substituting placeholders
    when configuration is missing so the service can still boot.
    """
    url = settings.SUPABASE_URL
    anon_key = settings.SUPABASE_ANON_KEY
    if not url or not anon_key:
        logger.error(
            "Supabase URL or Anon Key is not configured. Set "
            "MALAWI_PROPERTIES_SERVICE_SUPABASE_URL and "
            "MALAWI_PROPERTIES_SERVICE_SUPABASE_ANON_KEY. Using placeholder values; "
            "data access will fail until they are provided."
        )
    return url or PLACEHOLDER_SUPABASE_URL, anon_key or PLACEHOLDER_SUPABASE_ANON_KEY


async def init_supabase_clients():
    """
    Initializes the global Supabase clients.
    This function should be called once at application startup.
    """
    global _global_async_supabase_client, _global_admin_supabase_client

    if _global_async_supabase_client:
        logger.info("Supabase clients already initialized.")
        return

    url, anon_key = _connection_values()

    logger.info(f"Initializing Supabase AsyncClient with URL: {url[:20]}...")
    try:
        _global_async_supabase_client = await create_async_supabase_client(url, anon_key)
        logger.info("Supabase AsyncClient initialized successfully.")
    except Exception as e:
        logger.error(f"Failed to initialize Supabase client: {e}", exc_info=True)
        _global_async_supabase_client = None
        raise

    service_key = settings.SUPABASE_SERVICE_ROLE_KEY
    if not service_key:
        logger.warning(
            "Supabase Service Role Key is not configured. Admin reports will run "
            "with the caller's own token."
        )
        return

    logger.info("Initializing Supabase Admin Client...")
    try:
        _global_admin_supabase_client = await create_async_supabase_client(url, service_key)
        logger.info("Supabase Admin Client initialized successfully.")
    except Exception as e:
        logger.error(f"Failed to initialize Supabase Admin client: {e}", exc_info=True)
        _global_admin_supabase_client = None
        raise


async def close_supabase_clients():
    """
    Closes the global Supabase clients by clearing the references.
    This function should be called once at application shutdown.
    """
    global _global_async_supabase_client, _global_admin_supabase_client
    if _global_async_supabase_client or _global_admin_supabase_client:
        logger.info("Closing Supabase clients...")
        _global_async_supabase_client = None
        _global_admin_supabase_client = None
        logger.info("Supabase client references cleared.")


async def create_user_scoped_client(access_token: str) -> AsyncSupabaseClient:
    """
    Creates a short-lived client whose table requests carry the caller's JWT,
    so row-level security is evaluated for that user.
    """
    url, anon_key = _connection_values()
    client = await create_async_supabase_client(url, anon_key)
    client.postgrest.auth(access_token)
    return client


def get_supabase_client() -> AsyncSupabaseClient:
    """
    FastAPI dependency to get the globally initialized anonymous Supabase client.
    """
    if _global_async_supabase_client is None:
        logger.error("Supabase client accessed before initialization.")
        raise RuntimeError("Supabase client not available. Check application lifespan.")
    return _global_async_supabase_client


def get_supabase_admin_client() -> AsyncSupabaseClient | None:
    """
    FastAPI dependency to get the admin (service_role) Supabase client.
    Returns None when no service role key is configured.
    """
    return _global_admin_supabase_client
