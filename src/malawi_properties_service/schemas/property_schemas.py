from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .records import OriginType, Property, PropertyStatus, PropertyType


# --- Listing Schemas ---
class PropertyBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    property_type: PropertyType
    district: str = Field(..., min_length=1)
    area: Optional[str] = None
    gps_coordinates: Optional[str] = None
    price: float = Field(..., ge=0)
    currency: str = Field("MWK", min_length=3, max_length=3)
    plot_size: Optional[float] = Field(None, gt=0, description="Square meters")
    bedrooms: int = Field(0, ge=0)
    bathrooms: int = Field(0, ge=0)
    has_title_deed: bool = False
    documentation_type: Optional[str] = None
    reason_for_selling: Optional[str] = None
    is_urgent_sale: bool = False
    status: PropertyStatus = PropertyStatus.AVAILABLE
    images: List[str] = Field(default_factory=list)


class PropertyCreate(PropertyBase):
    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "examples": [
                {
                    "title": "Residential plot in Area 47",
                    "property_type": "land",
                    "district": "Lilongwe",
                    "area": "Area 47",
                    "price": 12500000,
                    "currency": "MWK",
                    "plot_size": 450,
                    "has_title_deed": True,
                }
            ]
        },
    )


class PropertyUpdate(BaseModel):
    # All fields are optional for an update
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    property_type: Optional[PropertyType] = None
    district: Optional[str] = Field(None, min_length=1)
    area: Optional[str] = None
    gps_coordinates: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    plot_size: Optional[float] = Field(None, gt=0)
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[int] = Field(None, ge=0)
    has_title_deed: Optional[bool] = None
    documentation_type: Optional[str] = None
    reason_for_selling: Optional[str] = None
    is_urgent_sale: Optional[bool] = None
    images: Optional[List[str]] = None

    model_config = ConfigDict(extra="forbid")


class PropertyStatusUpdate(BaseModel):
    status: PropertyStatus


class MarkSoldRequest(BaseModel):
    """Both details are optional; sending neither is a quick mark."""

    sale_price: Optional[float] = Field(None, ge=0)
    buyer_type: Optional[OriginType] = None


class MarketplaceResponse(BaseModel):
    properties: List[Property]
    districts: List[str]
    total: int
