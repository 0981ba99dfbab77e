import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError

from malawi_properties_service.config import settings
from malawi_properties_service.logging_config import LoggingMiddleware, logger, setup_logging
from malawi_properties_service.rate_limiting import setup_rate_limiting
from malawi_properties_service.routers import (
    admin_routes,
    dashboard_routes,
    health_routes,
    inquiry_routes,
    property_routes,
    storage_routes,
    tracking_routes,
)
from malawi_properties_service.storage import StorageConfigurationError, StorageOperationError
from malawi_properties_service.supabase_client import close_supabase_clients, init_supabase_clients


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle manager.

    Missing Supabase configuration is logged and replaced by placeholders so
    the service still boots; /internal/health reports what is missing.
    """
    logger.info("Application startup sequence initiated.")

    try:
        await init_supabase_clients()
        logger.info("Supabase clients initialized successfully")
    except Exception as e:
        logger.error(
            f"Failed to initialize Supabase clients: {e.__class__.__name__}: {str(e)}"
        )
        # Continue anyway - the health checks will report the issue

    if not settings.storage_configured():
        logger.warning("Object storage is not configured; image uploads will fail until it is.")

    logger.info("Application startup complete.")

    yield

    # --- Application Shutdown ---
    logger.info("Application shutdown sequence initiated.")
    try:
        await close_supabase_clients()
    except Exception as e:
        logger.error(f"Error closing Supabase clients: {str(e)}")
    logger.info("Application shutdown complete.")


app = FastAPI(
    title="Malawi Properties Service API",
    description=(
        "Property marketplace for Malawi and its diaspora: listings, buyer inquiries, "
        "visit and search tracking, image storage and marketplace analytics."
    ),
    version="1.0.0",
    root_path=settings.ROOT_PATH,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Properties", "description": "Marketplace browsing, the buyer-details gate and listing management."},
        {"name": "Inquiries", "description": "Buyer inquiries and their lifecycle."},
        {"name": "Dashboards", "description": "Agent, owner and buyer dashboards."},
        {"name": "Tracking", "description": "Visit, session and search tracking. No login required."},
        {"name": "Storage", "description": "Property image upload and deletion."},
        {"name": "Admin", "description": "Administrator reports, exports and agent verification."},
        {"name": "Market Intelligence", "description": "District, agent and diaspora market reports."},
        {"name": "Health", "description": "Liveness and configuration checks."},
    ],
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    swagger_ui_parameters={"persistAuthorization": True},
)

# Reported as uptime by /health
app.startup_time = time.time()

# Setup logging configuration
setup_logging(app)

# Setup rate limiting
setup_rate_limiting(app)

# Add logging middleware (after request_id middleware which is added in setup_logging)
app.add_middleware(LoggingMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include Routers
app.include_router(health_routes.router)
app.include_router(property_routes.router)
app.include_router(inquiry_routes.router)
app.include_router(dashboard_routes.router)
app.include_router(tracking_routes.router)
app.include_router(storage_routes.router)
app.include_router(admin_routes.router)
app.include_router(admin_routes.market_router)


def jsonable_errors(exc: RequestValidationError):
    # Validation contexts can hold exception instances that are not JSON serialisable
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


# Exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    logger.error(f"HTTPException: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"ValidationError: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


@app.exception_handler(APIError)
async def data_service_exception_handler(request: Request, exc: APIError):
    logger.error(f"Unhandled data service error on {request.url.path}: {exc.message} (code {exc.code})")
    return JSONResponse(status_code=500, content={"detail": exc.message or "Data service error"})


@app.exception_handler(StorageConfigurationError)
@app.exception_handler(StorageOperationError)
async def storage_exception_handler(request: Request, exc: RuntimeError):
    logger.error(f"Object storage error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

