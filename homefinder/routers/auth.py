import json
import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, EmailStr, Field, model_validator

from ..dependencies import (
    forget_session,
    get_session_manager,
    get_session_registry,
    get_session_state,
    remember_session,
    require_user,
)
from ..errors import ProfileWriteError
from ..schemas.auth import AuthUser, SessionOut, SignupOut
from ..session.manager import SessionManager
from ..session.registry import SessionRegistry
from ..session.state import SessionState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class JsonPayload(BaseModel):
    @model_validator(mode='before')
    @classmethod
    def parse_input(cls, v):
        if isinstance(v, bytes):
            v = v.decode("utf-8")
        if isinstance(v, str):
            try:
                return json.loads(v)
            except ValueError:
                pass
        return v


class LoginPayload(JsonPayload):
    email: EmailStr
    password: str


class SignupPayload(JsonPayload):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str
    user_type: Literal["buyer", "agent"] = "buyer"
    phone: str | None = None

    @model_validator(mode='after')
    def agent_needs_phone(self):
        if self.user_type == "agent" and not self.phone:
            raise ValueError("Phone number is required for agents")
        return self


class ProfileUpdatePayload(JsonPayload):
    name: str
    phone: str


def session_out(state: SessionState, model: type[SessionOut] = SessionOut, **extra) -> SessionOut:
    user = None
    if state.user is not None:
        user = AuthUser(
            id=state.user.id,
            email=getattr(state.user, "email", None),
            created_at=getattr(state.user, "created_at", None),
            last_sign_in_at=getattr(state.user, "last_sign_in_at", None),
        )
    return model(
        authenticated=state.authenticated,
        loading=state.loading,
        user=user,
        profile=state.profile,
        expires_at=getattr(state.session, "expires_at", None),
        **extra,
    )


def _error_message(error: Exception) -> str:
    return getattr(error, "message", None) or str(error)


@router.post("/login", response_model=SessionOut)
async def login(payload: LoginPayload, manager: SessionManager = Depends(get_session_manager)):
    result = await manager.sign_in(payload.email, payload.password)
    if not result.ok:
        raise HTTPException(status_code=401, detail=_error_message(result.error))
    await manager.wait_idle()
    return session_out(manager.state)


@router.post("/signup", response_model=SignupOut)
async def signup(payload: SignupPayload, manager: SessionManager = Depends(get_session_manager)):
    result = await manager.sign_up(
        payload.email,
        payload.password,
        name=payload.name,
        user_type=payload.user_type,
        phone=payload.phone,
    )
    if not result.ok:
        raise HTTPException(status_code=400, detail=_error_message(result.error))
    await manager.wait_idle()
    return session_out(manager.state, SignupOut, enrichment_pending=payload.user_type == "agent")


@router.post("/logout")
async def logout(
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
    registry: SessionRegistry = Depends(get_session_registry),
):
    reload = await manager.sign_out()
    await registry.discard(request.state.session_id)
    response = RedirectResponse(reload.location, status_code=303)
    forget_session(response)
    return response


@router.get("/google")
async def google_sign_in(request: Request, manager: SessionManager = Depends(get_session_manager)):
    result = await manager.sign_in_with_google()
    if not result.ok or not result.redirect_url:
        raise HTTPException(status_code=400, detail=_error_message(result.error) if result.error else "OAuth unavailable")
    response = RedirectResponse(result.redirect_url, status_code=303)
    remember_session(response, request)
    return response


@router.get("/callback")
async def auth_callback(
    request: Request,
    code: str | None = None,
    manager: SessionManager = Depends(get_session_manager),
):
    if not code:
        target = "/login"
    else:
        result = await manager.complete_oauth_sign_in(code)
        if not result.ok:
            target = "/login?error=callback_failed"
        elif manager.state.authenticated:
            target = "/"
        else:
            target = "/login"
    response = RedirectResponse(target, status_code=303)
    remember_session(response, request)
    return response


@router.get("/me", response_model=SessionOut)
def me(state: SessionState = Depends(get_session_state)):
    return session_out(state)


@router.patch("/me", response_model=SessionOut)
async def update_profile(
    payload: ProfileUpdatePayload,
    state: SessionState = Depends(require_user),
    manager: SessionManager = Depends(get_session_manager),
):
    try:
        await manager.update_agent_profile(payload.name, payload.phone)
    except ProfileWriteError as exc:
        logger.warning("Error updating profile for %s: %s", state.user.id, exc)
        raise HTTPException(status_code=400, detail="Failed to update profile") from exc
    return session_out(manager.state)
