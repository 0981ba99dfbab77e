import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from malawi_properties_service.config import Environment, settings

# Configure logger
logger = logging.getLogger("malawi_properties_service")

_request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


# Request ID context for correlating log entries from the same request
class RequestContext:
    """Per-request storage for the request ID, safe across concurrent requests."""

    @classmethod
    def get_request_id(cls) -> Optional[str]:
        return _request_id_var.get()

    @classmethod
    def set_request_id(cls, request_id: str) -> None:
        _request_id_var.set(request_id)

    @classmethod
    def clear_request_id(cls) -> None:
        _request_id_var.set(None)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Middleware to add request ID to each request"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        RequestContext.set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            RequestContext.clear_request_id()
        response.headers["X-Request-ID"] = request_id
        return response


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "environment": str(settings.ENVIRONMENT.value),
        }
        if request_id := RequestContext.get_request_id():
            log_record["request_id"] = request_id
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        for key in ("request", "response", "audit"):
            value = getattr(record, key, None)
            if value:
                log_record[key] = value
        return json.dumps(log_record, default=str)


def setup_logging(app: FastAPI) -> None:
    """Configure logging for the application"""
    log_level = getattr(logging, settings.LOGGING_LEVEL.upper(), logging.INFO)

    root_logger = logging.getLogger()
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    if settings.ENVIRONMENT == Environment.PRODUCTION:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
    root_logger.setLevel(log_level)

    logging.getLogger("malawi_properties_service").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    # botocore and httpx are chatty at INFO
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    app.add_middleware(RequestIdMiddleware)

    logger.info(
        f"Logging configured with level {settings.LOGGING_LEVEL} "
        f"and {'JSON' if settings.ENVIRONMENT == Environment.PRODUCTION else 'plain text'} format"
    )


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log request and response information"""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in ["/health", "/internal/health"]:
            return await call_next(request)

        start_time = time.time()
        request_id = RequestContext.get_request_id()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {e}", exc_info=True, extra={"request_id": request_id}
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={
                "request": {
                    "method": request.method,
                    "path": request.url.path,
                    "client_host": request.client.host if request.client else None,
                    "request_id": request_id,
                },
                "response": {
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                },
            },
        )
        return response
