import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request

from malawi_properties_service.logging_config import RequestContext

# Dedicated audit logger so operators can route these records separately
logger = logging.getLogger("malawi_properties_service.audit")

SENSITIVE_KEYS = (
    "password",
    "token",
    "access_token",
    "refresh_token",
    "api_key",
    "secret",
    "authorization",
)


def _sanitize_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Remove sensitive information from data before logging.
    """
    sanitized = data.copy()
    for key, value in list(sanitized.items()):
        if any(sensitive in key.lower() for sensitive in SENSITIVE_KEYS):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_data(value)
    return sanitized


def log_security_event(
    event_type: str,
    user_id: Optional[str] = None,
    additional_data: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
    status: str = "success",
    detail: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Log an audit event with structured data.

    Args:
        event_type: Type of event (e.g., "image_upload", "data_export")
        user_id: Profile id of the acting user
        additional_data: Any additional relevant data, sensitive keys are redacted
        request: FastAPI request object
        status: Outcome status ("success", "failure", "denied")
        detail: Optional detailed message

    Returns:
        The structured event that was logged.
    """
    event: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "status": status,
    }

    if user_id:
        event["user_id"] = str(user_id)

    request_id = RequestContext.get_request_id()
    if request_id:
        event["request_id"] = request_id

    if request is not None:
        if request.client:
            event["ip_address"] = request.client.host
        event["request"] = {
            "method": request.method,
            "path": request.url.path,
            "user_agent": request.headers.get("user-agent", "unknown"),
        }

    if additional_data:
        event["data"] = _sanitize_data(additional_data)

    if detail:
        event["detail"] = detail

    level = logging.INFO if status == "success" else logging.WARNING
    logger.log(level, f"Audit event: {event_type} - {status}", extra={"audit": event})
    return event


def log_image_upload(request: Request, user_id: str, path: str, size: int, content_type: str):
    log_security_event(
        event_type="image_upload",
        user_id=user_id,
        additional_data={"path": path, "size": size, "content_type": content_type},
        request=request,
    )


def log_image_delete(request: Request, user_id: str, path: str, status: str = "success", detail: Optional[str] = None):
    log_security_event(
        event_type="image_delete",
        user_id=user_id,
        additional_data={"path": path},
        request=request,
        status=status,
        detail=detail,
    )


def log_access_denied(request: Request, user_id: Optional[str], reason: str, required_roles: Optional[list] = None):
    """
    Log a request rejected for insufficient role or ownership.
    """
    log_security_event(
        event_type="access_denied",
        user_id=user_id,
        additional_data={"required_roles": required_roles or []},
        request=request,
        status="denied",
        detail=reason,
    )


def log_admin_action(
    request: Request,
    user_id: str,
    action: str,
    target_id: Optional[str] = None,
    additional_data: Optional[Dict[str, Any]] = None,
):
    """
    Log an administrative action such as a data export or agent verification.
    """
    data = dict(additional_data or {})
    data["action"] = action
    if target_id:
        data["target_id"] = target_id

    log_security_event(
        event_type="admin_action",
        user_id=user_id,
        additional_data=data,
        request=request,
    )
