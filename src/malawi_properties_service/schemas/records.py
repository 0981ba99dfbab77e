"""
Typed records for the rows the data service returns.

Rows arrive as loosely shaped JSON, often with embedded joins such as
``inquiries.select("*, profiles(...), properties(...)")``. Each table gets an
explicit model here so that optional fields are declared once instead of being
guarded at every use site in the analytics code.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field


def _ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _none_as_zero(value: Any) -> Any:
    return 0 if value is None else value


def _none_as_empty_list(value: Any) -> Any:
    return [] if value is None else value


def _none_as_empty_dict(value: Any) -> Any:
    return {} if value is None else value


def _none_as_false(value: Any) -> Any:
    return False if value is None else value


UtcDatetime = Annotated[datetime, AfterValidator(_ensure_utc)]
Counter = Annotated[int, BeforeValidator(_none_as_zero)]
Amount = Annotated[float, BeforeValidator(_none_as_zero)]
StringList = Annotated[List[str], BeforeValidator(_none_as_empty_list)]
JsonObject = Annotated[Dict[str, Any], BeforeValidator(_none_as_empty_dict)]
Flag = Annotated[bool, BeforeValidator(_none_as_false)]


class UserType(str, Enum):
    BUYER = "buyer"
    AGENT = "agent"
    OWNER = "owner"
    ADMIN = "admin"


class PropertyType(str, Enum):
    LAND = "land"
    HOUSE = "house"
    RENTAL = "rental"
    COMMERCIAL = "commercial"
    MIXED = "mixed"


class PropertyStatus(str, Enum):
    AVAILABLE = "available"
    PENDING = "pending"
    SOLD = "sold"
    WITHDRAWN = "withdrawn"


class InquiryStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    VIEWING_SCHEDULED = "viewing_scheduled"
    NEGOTIATING = "negotiating"
    CLOSED = "closed"
    LOST = "lost"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class OriginType(str, Enum):
    DIASPORA = "diaspora"
    LOCAL = "local"


class Record(BaseModel):
    """Base for data-service rows: unknown columns are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Profile(Record):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    user_type: UserType = UserType.BUYER
    current_location: Optional[str] = None
    is_diaspora: Flag = False
    is_verified: Flag = False
    last_login: Optional[UtcDatetime] = None
    created_at: Optional[UtcDatetime] = None


class Property(Record):
    id: str
    agent_id: Optional[str] = None
    owner_id: Optional[str] = None
    title: str = ""
    description: Optional[str] = None
    property_type: PropertyType = PropertyType.LAND
    district: str = ""
    area: Optional[str] = None
    gps_coordinates: Optional[str] = None
    price: Amount = 0.0
    currency: str = "MWK"
    plot_size: Optional[float] = None
    bedrooms: Counter = 0
    bathrooms: Counter = 0
    has_title_deed: Flag = False
    documentation_type: Optional[str] = None
    reason_for_selling: Optional[str] = None
    is_urgent_sale: Flag = False
    status: PropertyStatus = PropertyStatus.AVAILABLE
    images: StringList = Field(default_factory=list)
    is_verified: Flag = False
    is_featured: Flag = False
    views_count: Counter = 0
    inquiries_count: Counter = 0
    listed_at: Optional[UtcDatetime] = None
    sold_at: Optional[UtcDatetime] = None
    sale_price: Optional[float] = None
    buyer_type: Optional[OriginType] = None
    created_at: Optional[UtcDatetime] = None

    @property
    def is_sold(self) -> bool:
        return self.status == PropertyStatus.SOLD


class AgentProfileSummary(Record):
    """The ``profiles(...)`` join embedded in an agent row."""

    full_name: Optional[str] = None
    email: Optional[str] = None


class Agent(Record):
    id: str
    user_id: str
    company_name: Optional[str] = None
    license_number: Optional[str] = None
    districts_covered: StringList = Field(default_factory=list)
    total_listings: Counter = 0
    total_sales: Counter = 0
    average_time_to_sale: Amount = 0.0
    rating: Amount = 0.0
    verification_status: VerificationStatus = VerificationStatus.PENDING
    created_at: Optional[UtcDatetime] = None
    profile: Optional[AgentProfileSummary] = Field(None, alias="profiles")
    properties: Annotated[
        List[Property], BeforeValidator(_none_as_empty_list)
    ] = Field(default_factory=list)


class InquirerProfile(Record):
    """The ``profiles(...)`` join embedded in an inquiry row."""

    full_name: Optional[str] = None
    email: Optional[str] = None
    is_diaspora: Flag = False
    current_location: Optional[str] = None


class PropertySummary(Record):
    """The ``properties(...)`` join embedded in inquiry and view rows."""

    id: Optional[str] = None
    title: Optional[str] = None
    district: Optional[str] = None
    property_type: Optional[PropertyType] = None
    price: Optional[float] = None
    currency: Optional[str] = None


class Inquiry(Record):
    id: str
    property_id: str
    buyer_id: Optional[str] = None
    buyer_name: Optional[str] = None
    buyer_email: Optional[str] = None
    buyer_phone: Optional[str] = None
    buyer_country: Optional[str] = None
    buyer_city: Optional[str] = None
    buyer_location: Optional[str] = None
    buyer_origin_type: Optional[OriginType] = None
    local_origin_city: Optional[str] = None
    budget_range: Optional[str] = None
    intended_use: Optional[str] = None
    payment_method_preference: Optional[str] = None
    message: Optional[str] = None
    status: InquiryStatus = InquiryStatus.NEW
    created_at: Optional[UtcDatetime] = None
    responded_at: Optional[UtcDatetime] = None
    profile: Optional[InquirerProfile] = Field(None, alias="profiles")
    listing: Optional[PropertySummary] = Field(None, alias="properties")


class PropertyView(Record):
    id: Optional[str] = None
    property_id: Optional[str] = None
    viewer_id: Optional[str] = None
    viewer_location: Optional[str] = None
    viewer_country: Optional[str] = None
    viewer_city: Optional[str] = None
    viewer_origin_type: Optional[OriginType] = None
    viewer_local_city: Optional[str] = None
    device_type: Optional[str] = None
    session_id: Optional[str] = None
    viewing_duration: Counter = 0
    viewed_at: Optional[UtcDatetime] = None
    created_at: Optional[UtcDatetime] = None
    listing: Optional[PropertySummary] = Field(None, alias="properties")

    @property
    def timestamp(self) -> Optional[datetime]:
        return self.viewed_at or self.created_at


class SearchQuery(Record):
    id: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    search_text: Optional[str] = None
    search_params: JsonObject = Field(default_factory=dict)
    results_count: Counter = 0
    viewed_property_ids: StringList = Field(default_factory=list)
    converted_to_inquiry: Flag = False
    created_at: Optional[UtcDatetime] = None


class ConversionFunnel(Record):
    searches: Counter = 0
    views: Counter = 0
    detail_views: Counter = 0
    inquiries: Counter = 0


class UserSession(Record):
    id: Optional[str] = None
    user_id: Optional[str] = None
    session_start: Optional[UtcDatetime] = None
    session_end: Optional[UtcDatetime] = None
    duration_seconds: Counter = 0
    viewer_location: Optional[str] = None
    viewer_country: Optional[str] = None
    viewer_city: Optional[str] = None
    viewer_origin_type: Optional[OriginType] = None
    device_type: Optional[str] = None
    referrer: Optional[str] = None
    user_agent: Optional[str] = None
    conversion_funnel: Annotated[
        ConversionFunnel, BeforeValidator(_none_as_empty_dict)
    ] = Field(default_factory=ConversionFunnel)
    created_at: Optional[UtcDatetime] = None


class TrafficSource(Record):
    id: Optional[str] = None
    session_id: str
    user_id: Optional[str] = None
    source: Optional[str] = None
    medium: Optional[str] = None
    campaign: Optional[str] = None
    referrer: Optional[str] = None
    landing_page: Optional[str] = None
    device_type: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    page_views: Counter = 0
    converted: Flag = False
    first_visit_at: Optional[UtcDatetime] = None
    last_activity_at: Optional[UtcDatetime] = None
    created_at: Optional[UtcDatetime] = None
