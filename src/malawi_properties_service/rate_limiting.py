import logging
import sys
import uuid

from fastapi import Request
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from malawi_properties_service.config import settings

logger = logging.getLogger(__name__)

# Determine if we're in test mode by checking if pytest is running
IS_TEST_MODE = "pytest" in sys.modules


def get_limiter_key(request: Request):
    if IS_TEST_MODE:
        # A unique key per request effectively disables limiting under test
        return str(uuid.uuid4())
    # Behind the ingress the real client is the first X-Forwarded-For hop
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_limiter_key,
    default_limits=[settings.RATE_LIMIT_GENERAL],
    strategy="fixed-window",
)

if IS_TEST_MODE:

    def noop_limit(limit_string, key_func=None):
        def decorator(func):
            # Mark the function so tests can verify the decorator was applied
            func.__slowapi_decorated__ = True
            return func

        return decorator

    limiter.limit = noop_limit
    logger.info("Rate limiting disabled for test environment")

TRACKING_LIMIT = settings.RATE_LIMIT_TRACKING
UPLOAD_LIMIT = settings.RATE_LIMIT_UPLOAD


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Custom handler for rate limit exceeded exceptions"""
    logger.warning(f"Rate limit exceeded: {get_limiter_key(request)} - {request.url.path}")
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests", "limit": str(exc.detail)},
    )


def setup_rate_limiting(app):
    """Configure rate limiting for the FastAPI application"""
    app.state.limiter = limiter

    if IS_TEST_MODE:
        logger.info("Rate limiting is disabled in test mode")
    else:
        logger.info(
            f"Rate limiting is enabled: General={settings.RATE_LIMIT_GENERAL}, "
            f"Tracking={TRACKING_LIMIT}, Upload={UPLOAD_LIMIT}"
        )

    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
