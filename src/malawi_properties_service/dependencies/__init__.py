from .app_deps import (
    get_analytics_timezone,
    get_app_settings,
    get_clock,
    get_object_storage,
    get_session_tracker,
    get_visit_tracker,
    utc_now,
)
from .ownership import can_manage_property, get_caller_agent, get_managed_property
from .user_deps import (
    get_bearer_token,
    get_current_profile,
    get_current_supabase_user,
    get_market_reporting_client,
    get_optional_profile,
    get_optional_user,
    get_reporting_client,
    get_request_supabase_client,
    get_user_supabase_client,
    require_admin_user,
    require_lister,
    require_market_analyst,
    require_roles,
)

__all__ = [
    "can_manage_property",
    "get_analytics_timezone",
    "get_app_settings",
    "get_bearer_token",
    "get_caller_agent",
    "get_clock",
    "get_current_profile",
    "get_current_supabase_user",
    "get_managed_property",
    "get_market_reporting_client",
    "get_object_storage",
    "get_optional_profile",
    "get_optional_user",
    "get_reporting_client",
    "get_request_supabase_client",
    "get_session_tracker",
    "get_user_supabase_client",
    "get_visit_tracker",
    "require_admin_user",
    "require_lister",
    "require_market_analyst",
    "require_roles",
    "utc_now",
]
