from datetime import datetime, timezone

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient

from ..errors import NO_ROWS_CODE, ProfileFetchError, ProfileNotFound, ProfileWriteError


class ProfileRepository:
    """
    Access to the ``users`` and ``agents`` tables through a visitor's Supabase client.

    Responsibilities:
      - translate PostgREST/network failures into the profile error taxonomy
      - no session state, no fallbacks; callers decide how to degrade
    """

    def __init__(self, client: AsyncClient):
        self.client = client

    # ----- users -----

    async def get_profile(self, user_id: str) -> dict:
        """Return the ``users`` row, or raise ProfileNotFound."""
        return await self._fetch_one(
            self.client.table("users").select("*").eq("id", user_id).single()
        )

    async def create_profile(self, user_id: str, email: str | None, user_type: str = "buyer") -> dict:
        """Insert a ``users`` row and return it."""
        rows = await self._write(
            self.client.table("users").insert(
                {"id": user_id, "email": email, "user_type": user_type}
            )
        )
        if not rows:
            raise ProfileWriteError(f"Insert into users returned no row for {user_id}")
        return rows[0]

    async def set_user_type(self, user_id: str, user_type: str) -> dict | None:
        """
        Update ``users.user_type``.
        Returns None when no row matched, i.e. the row has not been provisioned yet.
        """
        rows = await self._write(
            self.client.table("users").update({"user_type": user_type}).eq("id", user_id)
        )
        return rows[0] if rows else None

    # ----- agents -----

    async def get_agent(self, user_id: str) -> dict:
        """Return the agent contact fields for a user, or raise ProfileNotFound."""
        return await self._fetch_one(
            self.client.table("agents").select("name, phone, whatsapp").eq("user_id", user_id).single()
        )

    async def create_agent(self, user_id: str, name: str, phone: str, whatsapp: str | None = None) -> dict:
        rows = await self._write(
            self.client.table("agents").insert(
                {
                    "user_id": user_id,
                    "name": name,
                    "phone": phone,
                    "whatsapp": whatsapp or phone,
                }
            )
        )
        if not rows:
            raise ProfileWriteError(f"Insert into agents returned no row for {user_id}")
        return rows[0]

    async def update_agent(self, user_id: str, name: str, phone: str) -> dict | None:
        rows = await self._write(
            self.client.table("agents")
            .update(
                {
                    "name": name,
                    "phone": phone,
                    "whatsapp": phone,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                }
            )
            .eq("user_id", user_id)
        )
        return rows[0] if rows else None

    # ----- helpers -----

    async def _fetch_one(self, query) -> dict:
        try:
            response = await query.execute()
        except APIError as exc:
            if exc.code == NO_ROWS_CODE:
                raise ProfileNotFound(exc.message or "No row found", code=exc.code) from exc
            raise ProfileFetchError(exc.message or "Profile fetch failed", code=exc.code) from exc
        except httpx.HTTPError as exc:
            raise ProfileFetchError(str(exc)) from exc
        if not response.data:
            raise ProfileNotFound("No row found", code=NO_ROWS_CODE)
        return response.data

    async def _write(self, query) -> list[dict]:
        try:
            response = await query.execute()
        except APIError as exc:
            raise ProfileWriteError(exc.message or "Profile write failed", code=exc.code) from exc
        except httpx.HTTPError as exc:
            raise ProfileWriteError(str(exc)) from exc
        return response.data or []
