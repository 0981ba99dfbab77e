"""
Request and response bodies for the browser-facing tracking endpoints.

Browsers send camelCase JSON (``sessionId``, ``landingPage``), so these models
use camelCase aliases and also accept the snake_case field names.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .records import TrafficSource


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TrackVisitRequest(CamelModel):
    # Required, but checked in the route so a missing value is a 400 not a 422
    session_id: Optional[str] = None
    landing_page: Optional[str] = None
    user_id: Optional[str] = None
    source: Optional[str] = None
    medium: Optional[str] = None
    referrer: Optional[str] = None
    device_type: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    user_agent: Optional[str] = None
    row_id: Optional[str] = Field(None, description="Traffic row id returned by the previous call")
    last_tracked_at: Optional[datetime] = None


class VisitContextResponse(CamelModel):
    session_id: str
    row_id: Optional[str] = None
    last_tracked_at: Optional[datetime] = None


class TrackVisitResponse(CamelModel):
    success: bool = True
    updated: Optional[bool] = None
    data: Optional[TrafficSource] = None
    context: VisitContextResponse


class SessionPayload(CamelModel):
    session_id: str
    session_started_at: datetime


class StartSessionRequest(CamelModel):
    session_id: Optional[str] = None
    session_started_at: Optional[datetime] = None
    referrer: Optional[str] = None


class SearchQueryRequest(CamelModel):
    session_id: Optional[str] = None
    session_started_at: Optional[datetime] = None
    search_text: Optional[str] = None
    search_params: Dict[str, Any] = Field(default_factory=dict)
    results_count: int = Field(0, ge=0)
    referrer: Optional[str] = None


class SearchQueryResponse(CamelModel):
    search_id: Optional[str] = None
    session: Optional[SessionPayload] = None


class ViewDurationRequest(CamelModel):
    duration_seconds: int = Field(..., ge=0)
