"""
Referrer and user-agent classification for visit and session tracking.

The referrer rules run in a fixed order and the first match wins. A known
social or search host is therefore reported as such even when the URL also
carries ``utm_*`` parameters.
"""

import random
import re
import string
from datetime import datetime
from typing import NamedTuple, Optional
from urllib.parse import parse_qs, urlsplit

_BASE36 = string.digits + string.ascii_lowercase

_MOBILE_UA = re.compile(r"Mobile|Android|iPhone|iPad", re.IGNORECASE)
_TABLET_UA = re.compile(r"iPad", re.IGNORECASE)


class TrafficClassification(NamedTuple):
    source: str
    medium: str


class DeviceInfo(NamedTuple):
    device_type: str
    browser: str
    os: str


DIRECT = TrafficClassification("direct", "none")
REFERRAL = TrafficClassification("referral", "referral")


def _host_contains(hostname: str, *needles: str) -> bool:
    return any(needle in hostname for needle in needles)


def parse_traffic_source(referrer: Optional[str]) -> TrafficClassification:
    """
    Derive ``(source, medium)`` from a referrer URL.

    Args:
        referrer: The full referrer URL, or None/empty for direct traffic

    Returns:
        TrafficClassification: e.g. ``("facebook", "social")`` or ``("google", "organic")``
    """
    if not referrer:
        return DIRECT

    try:
        url = urlsplit(referrer)
    except ValueError:
        return REFERRAL
    hostname = (url.hostname or "").lower()
    if not hostname:
        return REFERRAL

    params = parse_qs(url.query, keep_blank_values=True)

    if _host_contains(hostname, "facebook.com", "fb.com", "m.facebook.com"):
        return TrafficClassification("facebook", "social")
    if _host_contains(hostname, "instagram.com"):
        return TrafficClassification("instagram", "social")
    if _host_contains(hostname, "google.com", "google.co.za", "google.co.uk"):
        if "q" in params or "query" in params:
            return TrafficClassification("google", "organic")
        return TrafficClassification("google", "referral")
    if _host_contains(hostname, "twitter.com", "x.com"):
        return TrafficClassification("twitter", "social")
    if _host_contains(hostname, "linkedin.com"):
        return TrafficClassification("linkedin", "social")
    if _host_contains(hostname, "whatsapp.com", "wa.me"):
        return TrafficClassification("whatsapp", "social")

    utm_source = (params.get("utm_source") or [""])[0]
    if _host_contains(hostname, "mail.", "email") or utm_source.lower() == "email":
        return TrafficClassification("email", "email")

    if utm_source:
        utm_medium = (params.get("utm_medium") or [""])[0]
        return TrafficClassification(utm_source.lower(), utm_medium.lower() or "referral")

    return REFERRAL


def detect_device_type(user_agent: Optional[str], distinguish_tablet: bool = False) -> str:
    """
    ``mobile`` or ``desktop`` from user-agent substrings. Visit tracking asks
    for ``tablet`` to be split out; session tracking counts iPads as mobile.
    """
    ua = user_agent or ""
    if not _MOBILE_UA.search(ua):
        return "desktop"
    if distinguish_tablet and _TABLET_UA.search(ua):
        return "tablet"
    return "mobile"


def _detect_browser(ua: str) -> str:
    if "Chrome" in ua and "Edg" not in ua:
        return "chrome"
    if "Firefox" in ua:
        return "firefox"
    if "Safari" in ua and "Chrome" not in ua:
        return "safari"
    if "Edg" in ua:
        return "edge"
    return "unknown"


def _detect_os(ua: str) -> str:
    # Android agents also say Linux and iOS agents say "like Mac OS X"
    if "Windows" in ua:
        return "windows"
    if "Android" in ua:
        return "android"
    if "iPhone" in ua or "iPad" in ua:
        return "ios"
    if "Mac" in ua:
        return "macos"
    if "Linux" in ua:
        return "linux"
    return "unknown"


def get_device_info(user_agent: Optional[str]) -> DeviceInfo:
    if not user_agent:
        return DeviceInfo("unknown", "unknown", "unknown")
    return DeviceInfo(
        device_type=detect_device_type(user_agent, distinguish_tablet=True),
        browser=_detect_browser(user_agent),
        os=_detect_os(user_agent),
    )


def generate_visit_session_id(now: datetime) -> str:
    """``session-{epoch_ms}-{9 base36 chars}``, the id format browsers already hold."""
    suffix = "".join(random.choices(_BASE36, k=9))
    return f"session-{int(now.timestamp() * 1000)}-{suffix}"
