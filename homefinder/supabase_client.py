from functools import lru_cache
from supabase import AsyncClient, Client, acreate_client, create_client
from supabase.lib.client_options import AsyncClientOptions

from .config import Settings, get_settings


@lru_cache
def get_supabase_client() -> Client:
    """
    Returns a singleton Supabase client configured with service role credentials.
    Used for catalogue reads and favorites, which are scoped by the caller's user id.
    """
    settings = get_settings()
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)


async def create_session_client(settings: Settings | None = None) -> AsyncClient:
    """
    Returns a fresh async Supabase client for a single visitor session.

    Each client keeps its own auth session in memory, so clients are never shared
    between visitors. PKCE is required for the OAuth callback code exchange.
    """
    settings = settings or get_settings()
    return await acreate_client(
        settings.SUPABASE_URL,
        settings.SUPABASE_ANON_KEY or settings.SUPABASE_SERVICE_ROLE_KEY,
        options=AsyncClientOptions(flow_type="pkce", persist_session=False),
    )


async def close_session_client(client: AsyncClient) -> None:
    """
    Releases a visitor client: stops its token refresh timer and closes the
    auth and PostgREST HTTP connections.
    """
    timer = getattr(client.auth, "_refresh_token_timer", None)
    if timer is not None:
        timer.cancel()
    await client.auth.close()
    await client.postgrest.aclose()
