from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field

from .records import InquiryStatus, OriginType, VerificationStatus


def join_location(city: Optional[str], country: Optional[str]) -> Optional[str]:
    return ", ".join(part for part in (city, country) if part) or None


def declared_origin(explicit: Optional[OriginType], country: Optional[str]) -> OriginType:
    """
    Origin a buyer declares on a form: the explicit choice, otherwise local
    only when the country is Malawi.
    """
    if explicit:
        return explicit
    if country and country.strip().lower() == "malawi":
        return OriginType.LOCAL
    return OriginType.DIASPORA


# --- Buyer Detail Gate ---
class BuyerDetailsRequest(BaseModel):
    buyer_name: str = Field(..., min_length=1, max_length=200)
    buyer_email: Optional[EmailStr] = None
    buyer_phone: Optional[str] = None
    buyer_country: Optional[str] = None
    buyer_city: Optional[str] = None
    buyer_origin_type: Optional[OriginType] = None
    local_origin_city: Optional[str] = None
    budget_range: Optional[str] = None
    intended_use: Optional[str] = None
    payment_method_preference: Optional[str] = None
    session_id: Optional[str] = None

    def origin(self) -> OriginType:
        return declared_origin(self.buyer_origin_type, self.buyer_country)

    def view_record(self, property_id: str, device_type: str) -> Dict[str, Any]:
        """The ``property_views`` row for an anonymous buyer unlocking a listing."""
        origin = self.origin()
        if origin == OriginType.LOCAL:
            country = "Malawi"
            city = self.local_origin_city
        else:
            country = self.buyer_country
            city = self.buyer_city
        return {
            "property_id": property_id,
            "viewer_id": None,
            "viewer_location": join_location(city, country),
            "viewer_country": country,
            "viewer_city": city,
            "viewer_origin_type": origin.value,
            "viewer_local_city": self.local_origin_city if origin == OriginType.LOCAL else None,
            "device_type": device_type,
            "session_id": self.session_id,
            "viewing_duration": 0,
        }


class UnlockResponse(BaseModel):
    unlocked: bool = True
    view_id: Optional[str] = None


# --- Inquiry Schemas ---
class InquiryCreate(BaseModel):
    property_id: str
    buyer_name: str = Field(..., min_length=1, max_length=200)
    buyer_email: Optional[EmailStr] = None
    buyer_phone: Optional[str] = None
    buyer_country: Optional[str] = None
    buyer_city: Optional[str] = None
    buyer_location: Optional[str] = None
    buyer_origin_type: Optional[OriginType] = None
    local_origin_city: Optional[str] = None
    budget_range: Optional[str] = None
    intended_use: Optional[str] = None
    payment_method_preference: Optional[str] = None
    message: Optional[str] = Field(None, max_length=5000)
    visit_session_id: Optional[str] = Field(
        None, description="Visit session id to mark the traffic source as converted"
    )

    def origin(self) -> OriginType:
        return declared_origin(self.buyer_origin_type, self.buyer_country)

    def location(self) -> Optional[str]:
        if self.buyer_city and self.buyer_country:
            return join_location(self.buyer_city, self.buyer_country)
        return self.buyer_location or join_location(self.buyer_city, self.buyer_country)

    def inquiry_record(self, buyer_id: str) -> Dict[str, Any]:
        origin = self.origin()
        record: Dict[str, Any] = {
            "property_id": self.property_id,
            "buyer_id": buyer_id,
            "buyer_name": self.buyer_name,
            "buyer_country": self.buyer_country,
            "buyer_city": self.buyer_city,
            "buyer_location": self.location(),
            "buyer_origin_type": origin.value,
            "local_origin_city": self.local_origin_city if origin == OriginType.LOCAL else None,
            "budget_range": self.budget_range,
            "intended_use": self.intended_use,
            "payment_method_preference": self.payment_method_preference,
            "message": self.message,
        }
        # Contact columns are only sent when the buyer filled them in
        if self.buyer_email:
            record["buyer_email"] = str(self.buyer_email)
        if self.buyer_phone:
            record["buyer_phone"] = self.buyer_phone
        return record


class InquiryStatusUpdate(BaseModel):
    status: InquiryStatus


# --- Agent Schemas ---
class AgentCreate(BaseModel):
    company_name: Optional[str] = Field(None, max_length=200)
    license_number: Optional[str] = Field(None, max_length=100)
    districts_covered: List[str] = Field(default_factory=list)


class AgentUpdate(BaseModel):
    company_name: Optional[str] = Field(None, max_length=200)
    license_number: Optional[str] = Field(None, max_length=100)
    districts_covered: Optional[List[str]] = None


class AgentVerificationUpdate(BaseModel):
    verification_status: VerificationStatus

