from datetime import datetime
from pydantic import BaseModel, EmailStr

from .profile import Profile


class AuthUser(BaseModel):
    id: str
    email: EmailStr | None = None
    created_at: datetime | None = None
    last_sign_in_at: datetime | None = None


class SessionOut(BaseModel):
    authenticated: bool
    loading: bool
    user: AuthUser | None = None
    profile: Profile | None = None
    expires_at: int | None = None


class SignupOut(SessionOut):
    enrichment_pending: bool = False
