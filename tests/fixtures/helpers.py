"""
Helper functions for testing.
Provides factories for profiles and table rows.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from malawi_properties_service.schemas.records import Profile, UserType

FIXED_NOW = datetime(2025, 6, 19, 12, 0, tzinfo=timezone.utc)


def make_profile(user_type: UserType = UserType.BUYER, profile_id: str = None, **fields) -> Profile:
    """
    Build a profile for the given role.

    Args:
        user_type: Role of the caller
        profile_id: Optional id (generated if not provided)
        **fields: Any other profile columns

    Returns:
        Profile: The profile record
    """
    if profile_id is None:
        profile_id = str(uuid.uuid4())
    fields.setdefault("email", f"{user_type.value}_{profile_id[:8]}@example.com")
    fields.setdefault("full_name", f"Test {user_type.value.title()}")
    return Profile(id=profile_id, user_type=user_type, **fields)


def property_row(**overrides) -> Dict[str, Any]:
    """A ``properties`` row as the data service returns it."""
    row: Dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "agent_id": None,
        "owner_id": None,
        "title": "Residential plot in Area 47",
        "description": "Fenced plot close to the main road",
        "property_type": "land",
        "district": "Lilongwe",
        "area": "Area 47",
        "price": 12500000,
        "currency": "MWK",
        "plot_size": 450,
        "bedrooms": 0,
        "bathrooms": 0,
        "has_title_deed": True,
        "status": "available",
        "images": [],
        "is_verified": False,
        "is_featured": False,
        "views_count": 0,
        "inquiries_count": 0,
        "listed_at": "2025-05-01T08:00:00+00:00",
        "sold_at": None,
        "created_at": "2025-05-01T08:00:00+00:00",
    }
    row.update(overrides)
    return row
