from .common_schemas import MessageResponse, SuccessResponse
from .records import (
    Agent,
    Inquiry,
    InquiryStatus,
    OriginType,
    Profile,
    Property,
    PropertyStatus,
    PropertyType,
    PropertyView,
    SearchQuery,
    TrafficSource,
    UserSession,
    UserType,
    VerificationStatus,
)
from .buyer_schemas import (
    AgentCreate,
    AgentUpdate,
    AgentVerificationUpdate,
    BuyerDetailsRequest,
    InquiryCreate,
    InquiryStatusUpdate,
    UnlockResponse,
    declared_origin,
)
from .property_schemas import (
    MarketplaceResponse,
    MarkSoldRequest,
    PropertyCreate,
    PropertyStatusUpdate,
    PropertyUpdate,
)
from .storage_schemas import DeleteImageRequest, DeleteImageResponse, UploadResponse

__all__ = [
    "Agent",
    "AgentCreate",
    "AgentUpdate",
    "AgentVerificationUpdate",
    "BuyerDetailsRequest",
    "DeleteImageRequest",
    "DeleteImageResponse",
    "Inquiry",
    "InquiryCreate",
    "InquiryStatus",
    "InquiryStatusUpdate",
    "MarkSoldRequest",
    "MarketplaceResponse",
    "MessageResponse",
    "OriginType",
    "Profile",
    "Property",
    "PropertyCreate",
    "PropertyStatus",
    "PropertyStatusUpdate",
    "PropertyType",
    "PropertyUpdate",
    "PropertyView",
    "SearchQuery",
    "SuccessResponse",
    "TrafficSource",
    "UnlockResponse",
    "UploadResponse",
    "UserSession",
    "UserType",
    "VerificationStatus",
    "declared_origin",
]
