from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class PropertyOut(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    location: str
    property_type: str
    bedrooms: int = 0
    bathrooms: int = 0
    built_up_size: Optional[float] = None
    tenure: Optional[str] = None
    furnishing: Optional[str] = None
    images: list[str] = []
    status: Literal["active", "draft"] = "active"
    agent_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Columns populated by the listing importer
    listing_id: Optional[str] = None
    original_url: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    land_size: Optional[float] = None

    class Config:
        from_attributes = True


class ListingOptions(BaseModel):
    property_types: list[str]
    locations: list[str]


class ContactLinks(BaseModel):
    agent_id: str
    agent_name: str
    whatsapp_url: str | None = None
    phone_url: str | None = None


class FavoriteToggle(BaseModel):
    property_id: str
