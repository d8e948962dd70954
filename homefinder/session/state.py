from dataclasses import dataclass, replace
from typing import Any

from ..schemas.profile import AgentProfile, BuyerProfile


@dataclass(frozen=True)
class SessionState:
    """
    Snapshot of who is signed in for one visitor.
    ``user`` and ``session`` are the objects handed out by the Supabase auth client.
    """

    user: Any = None
    profile: BuyerProfile | AgentProfile | None = None
    session: Any = None
    loading: bool = True

    @property
    def authenticated(self) -> bool:
        return self.user is not None

    def update(self, **changes) -> "SessionState":
        return replace(self, **changes)

    @classmethod
    def signed_out(cls) -> "SessionState":
        return cls(user=None, profile=None, session=None, loading=False)


@dataclass(frozen=True)
class AuthResult:
    error: Exception | None = None
    redirect_url: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Reload:
    """Navigation the caller must perform: drop all client state and load ``location``."""

    location: str = "/"
