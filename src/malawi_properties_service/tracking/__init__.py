from .classifiers import (
    DeviceInfo,
    TrafficClassification,
    detect_device_type,
    generate_visit_session_id,
    get_device_info,
    parse_traffic_source,
)
from .session_tracker import SessionHandle, SessionTracker, ViewerLocation, resolve_viewer_location
from .visit_tracker import VisitContext, VisitDetails, VisitOutcome, VisitTracker

__all__ = [
    "DeviceInfo",
    "SessionHandle",
    "SessionTracker",
    "TrafficClassification",
    "ViewerLocation",
    "VisitContext",
    "VisitDetails",
    "VisitOutcome",
    "VisitTracker",
    "detect_device_type",
    "generate_visit_session_id",
    "get_device_info",
    "parse_traffic_source",
    "resolve_viewer_location",
]
