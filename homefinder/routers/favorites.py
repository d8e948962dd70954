from fastapi import APIRouter, Depends, HTTPException
from supabase import Client

from ..dependencies import require_user
from ..schemas.property import FavoriteToggle, PropertyOut
from ..session.state import SessionState
from ..supabase_client import get_supabase_client

router = APIRouter(prefix="/favorites", tags=["favorites"])


def _favorite_ids(supabase: Client, user_id: str) -> list[str]:
    response = (
        supabase.table("favorites")
        .select("property_id")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .execute()
    )
    return [row["property_id"] for row in response.data or []]


@router.get("", response_model=list[PropertyOut])
def list_favorites(
    state: SessionState = Depends(require_user),
    supabase: Client = Depends(get_supabase_client),
):
    """Saved properties for the signed-in user, most recently saved first."""
    ids = _favorite_ids(supabase, state.user.id)
    if not ids:
        return []

    response = supabase.table("properties").select("*").in_("id", ids).execute()
    by_id = {row["id"]: row for row in response.data or []}
    # Listings that were removed since being saved are skipped.
    return [by_id[pid] for pid in ids if pid in by_id]


@router.post("", response_model=list[str])
def toggle_favorite(
    payload: FavoriteToggle,
    state: SessionState = Depends(require_user),
    supabase: Client = Depends(get_supabase_client),
):
    """
    Toggles a property in the user's favorites.
    Returns the updated list of favorite property ids.
    """
    user_id = state.user.id
    pid = payload.property_id
    current = _favorite_ids(supabase, user_id)

    if pid in current:
        supabase.table("favorites").delete().eq("user_id", user_id).eq("property_id", pid).execute()
    else:
        exists = supabase.table("properties").select("id").eq("id", pid).limit(1).execute()
        if not exists.data:
            raise HTTPException(status_code=404, detail="Property not found")
        supabase.table("favorites").insert({"user_id": user_id, "property_id": pid}).execute()

    return _favorite_ids(supabase, user_id)
