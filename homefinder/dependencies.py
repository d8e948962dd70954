from fastapi import Depends, HTTPException, Request, Response

from .config import Settings, get_settings
from .session.manager import SessionManager
from .session.registry import SessionRegistry
from .session.state import SessionState


def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def remember_session(response: Response, request: Request, settings: Settings | None = None) -> None:
    """
    Set the session cookie when this request opened a new session.
    Routes that return their own Response (redirects) must call this themselves.
    """
    session_id = getattr(request.state, "new_session_id", None)
    if not session_id:
        return
    settings = settings or get_settings()
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        session_id,
        httponly=True,
        samesite="lax",
        secure=settings.SESSION_COOKIE_SECURE,
    )


def forget_session(response: Response, settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    response.delete_cookie(settings.SESSION_COOKIE_NAME)


async def find_session_manager(
    request: Request,
    registry: SessionRegistry = Depends(get_session_registry),
    settings: Settings = Depends(get_settings),
) -> SessionManager | None:
    """Returns the visitor's live session manager, or None. Never opens a session."""
    session_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
    manager = registry.get(session_id)
    if manager is not None:
        request.state.session_id = session_id
    return manager


async def get_session_manager(
    request: Request,
    response: Response,
    manager: SessionManager | None = Depends(find_session_manager),
    registry: SessionRegistry = Depends(get_session_registry),
    settings: Settings = Depends(get_settings),
) -> SessionManager:
    """
    Returns the visitor's session manager, opening a new one when the cookie is
    missing or points at a session that no longer exists.
    """
    if manager is None:
        session_id, manager = await registry.open()
        request.state.session_id = session_id
        request.state.new_session_id = session_id
        remember_session(response, request, settings)
    return manager


async def get_session_state(manager: SessionManager | None = Depends(find_session_manager)) -> SessionState:
    """Current snapshot, after any in-flight profile hydration has settled. Anonymous visitors get no session."""
    if manager is None:
        return SessionState.signed_out()
    await manager.wait_idle()
    return manager.state


def require_user(state: SessionState = Depends(get_session_state)) -> SessionState:
    if not state.authenticated:
        raise HTTPException(status_code=401, detail="Authentication required")
    return state
