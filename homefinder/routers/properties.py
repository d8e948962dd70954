from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from supabase import Client

from ..schemas.property import ContactLinks, ListingOptions, PropertyOut
from ..supabase_client import get_supabase_client
from ..utils.contact import phone_url, whatsapp_url

router = APIRouter(prefix="/properties", tags=["properties"])

PROPERTY_TYPES = ["Condo", "Landed", "Commercial", "Apartment"]
LOCATIONS = [
    "KLCC, Kuala Lumpur",
    "Damansara Heights, Kuala Lumpur",
    "Mont Kiara, Kuala Lumpur",
    "Bangsar, Kuala Lumpur",
    "Setia Alam, Shah Alam",
    "Tropicana, Petaling Jaya",
    "Cyberjaya, Selangor",
    "Putrajaya",
    "Subang Jaya, Selangor",
    "Ampang, Kuala Lumpur",
]

SORT_ORDERS = {
    "newest": ("created_at", True),
    "price-low": ("price", False),
    "price-high": ("price", True),
}


def _get_property_or_404(supabase: Client, property_id: str) -> dict:
    response = supabase.table("properties").select("*").eq("id", property_id).limit(1).execute()
    if not response.data:
        raise HTTPException(status_code=404, detail="Property not found")
    return response.data[0]


@router.get("", response_model=list[PropertyOut])
def search_properties(
    location: str | None = Query(None, description="Case-insensitive match on location"),
    property_type: str | None = Query(None, description="Exact property type, e.g. Condo"),
    min_price: float | None = Query(None, ge=0),
    max_price: float | None = Query(None, ge=0),
    bedrooms: int | None = Query(None, ge=0, description="Minimum number of bedrooms"),
    sort: Literal["newest", "price-low", "price-high"] = Query("newest"),
    limit: int = Query(50, ge=1, le=100, description="Max number of listings to return"),
    offset: int = Query(0, ge=0, description="Number of listings to skip"),
    supabase: Client = Depends(get_supabase_client),
):
    """List active properties, optionally filtered and sorted."""
    query = supabase.table("properties").select("*").eq("status", "active")

    if location:
        query = query.ilike("location", f"%{location}%")
    if property_type:
        query = query.eq("property_type", property_type)
    if min_price:
        query = query.gte("price", min_price)
    if max_price:
        query = query.lte("price", max_price)
    if bedrooms:
        query = query.gte("bedrooms", bedrooms)

    column, desc = SORT_ORDERS[sort]
    query = query.order(column, desc=desc).range(offset, offset + limit - 1)

    response = query.execute()
    return response.data or []


@router.get("/featured", response_model=list[PropertyOut])
def get_featured_properties(supabase: Client = Depends(get_supabase_client)):
    """Newest six active listings for the home page."""
    response = (
        supabase.table("properties")
        .select("*")
        .eq("status", "active")
        .order("created_at", desc=True)
        .limit(6)
        .execute()
    )
    return response.data or []


@router.get("/options", response_model=ListingOptions)
def get_listing_options():
    return {"property_types": PROPERTY_TYPES, "locations": LOCATIONS}


@router.get("/{property_id}", response_model=PropertyOut)
def get_property(property_id: str, supabase: Client = Depends(get_supabase_client)):
    return _get_property_or_404(supabase, property_id)


@router.get("/{property_id}/similar", response_model=list[PropertyOut])
def get_similar_properties(property_id: str, supabase: Client = Depends(get_supabase_client)):
    """Up to three other active listings of the same type."""
    listing = _get_property_or_404(supabase, property_id)
    response = (
        supabase.table("properties")
        .select("*")
        .eq("status", "active")
        .eq("property_type", listing["property_type"])
        .neq("id", property_id)
        .limit(3)
        .execute()
    )
    return response.data or []


@router.get("/{property_id}/contact", response_model=ContactLinks)
def get_contact_links(property_id: str, supabase: Client = Depends(get_supabase_client)):
    """WhatsApp and phone links for the agent handling a listing."""
    listing = _get_property_or_404(supabase, property_id)
    if not listing.get("agent_id"):
        raise HTTPException(status_code=404, detail="Agent not found")

    agent_response = supabase.table("agents").select("*").eq("id", listing["agent_id"]).limit(1).execute()
    if not agent_response.data:
        raise HTTPException(status_code=404, detail="Agent not found")
    agent = agent_response.data[0]

    return ContactLinks(
        agent_id=agent["id"],
        agent_name=agent.get("name") or "",
        whatsapp_url=whatsapp_url(agent.get("whatsapp") or agent.get("phone"), listing["title"], listing["price"]),
        phone_url=phone_url(agent.get("phone")),
    )
