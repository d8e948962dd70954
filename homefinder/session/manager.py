import asyncio
import logging
from typing import Awaitable, Callable

from supabase import AuthError

from ..config import Settings
from ..errors import ProfileFetchError, ProfileNotFound, ProfileWriteError
from ..schemas.profile import AgentProfile, BuyerProfile, UserType, resolve_profile
from .profiles import ProfileRepository
from .state import AuthResult, Reload, SessionState

logger = logging.getLogger(__name__)

Observer = Callable[[SessionState], None]


class SessionManager:
    """
    Keeps one visitor's view of "who is signed in and what is their profile"
    in step with the Supabase auth event stream.

    The manager is the only writer of its ``SessionState``. Every auth event bumps
    a generation counter; a profile hydration started for an older generation is
    discarded when it finishes, so a slow lookup can never overwrite newer state.
    """

    def __init__(
        self,
        auth,
        profiles: ProfileRepository,
        settings: Settings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ):
        self.auth = auth
        self.profiles = profiles
        self.settings = settings
        self._sleep = sleep
        self._on_close = on_close
        self._state = SessionState()
        self._observers: list[Observer] = []
        self._generation = 0
        self._initialized = False
        self._closed = False
        self._subscription = None
        self._hydrations: set[asyncio.Task] = set()
        self._background: set[asyncio.Task] = set()

    # ----- state -----

    @property
    def state(self) -> SessionState:
        return self._state

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer called with every new snapshot. Returns the unsubscribe callable."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _publish(self, state: SessionState) -> None:
        self._state = state
        for observer in list(self._observers):
            try:
                observer(state)
            except Exception:
                logger.exception("Session observer failed")

    # ----- lifecycle -----

    async def initialize(self) -> None:
        """Subscribe to auth events and reconcile with the current session. Runs once."""
        if self._initialized:
            logger.debug("Session manager already initialized")
            return
        self._initialized = True
        self._subscription = self.auth.on_auth_state_change(self.on_auth_event)

        generation = self._generation
        try:
            session = await self.auth.get_session()
        except Exception:
            logger.warning("Could not load the current session", exc_info=True)
            if generation == self._generation:
                self._publish(self._state.update(loading=False))
            return

        if generation != self._generation:
            # An auth event arrived while we were waiting; it already reconciled.
            return
        if session is None or session.user is None:
            self._publish(self._state.update(loading=False))
            return

        self._begin_session(session.user, session)
        await self._hydrate_and_settle(generation, session.user)

    def detach(self) -> None:
        """Stop listening for auth events. Work already in flight keeps running."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def close(self) -> None:
        """Detach, wait for outstanding work, then release the auth client."""
        if self._closed:
            return
        self._closed = True
        self.detach()
        await self.wait_idle(include_background=True)
        self._observers.clear()
        if self._on_close is not None:
            try:
                await self._on_close()
            except Exception:
                logger.warning("Error releasing session client", exc_info=True)

    async def wait_idle(self, include_background: bool = False) -> None:
        """Wait for pending profile hydrations (and agent enrichment if asked)."""
        while True:
            pending = set(self._hydrations)
            if include_background:
                pending |= self._background
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _spawn(self, coro, bucket: set[asyncio.Task]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        bucket.add(task)
        task.add_done_callback(bucket.discard)
        return task

    # ----- auth events -----

    def on_auth_event(self, event: str, session) -> None:
        """Handle a notification from the auth client. Called synchronously, in arrival order."""
        self._generation += 1
        generation = self._generation
        logger.debug("Auth event %s (generation %s)", event, generation)

        if event == "SIGNED_OUT":
            self._publish(SessionState.signed_out())
            return

        user = getattr(session, "user", None) if session is not None else None
        if user is None:
            self._publish(SessionState.signed_out())
            return

        self._begin_session(user, session)
        self._spawn(self._hydrate_and_settle(generation, user), self._hydrations)

    def _begin_session(self, user, session) -> None:
        current = self._state.user
        if current is not None and current.id == user.id:
            self._publish(self._state.update(user=user, session=session))
        else:
            # A different user never sees the previous user's profile.
            self._publish(self._state.update(user=user, session=session, profile=None, loading=True))

    async def _hydrate_and_settle(self, generation: int, user) -> None:
        profile = await self.hydrate_profile(user.id, user.email)
        if generation != self._generation:
            logger.debug("Discarding stale profile for %s (generation %s)", user.id, generation)
            return
        self._publish(self._state.update(profile=profile, loading=False))

    async def refresh_profile(self) -> BuyerProfile | AgentProfile | None:
        """Re-hydrate the signed-in user's profile."""
        user = self._state.user
        if user is None:
            return None
        await self._hydrate_and_settle(self._generation, user)
        return self._state.profile

    # ----- profile hydration -----

    async def hydrate_profile(self, user_id: str, email: str | None) -> BuyerProfile | AgentProfile:
        """
        Resolve the profile for an authenticated user. Never raises.

        A missing ``users`` row is provisioned as a buyer. Any other failure
        (a timed-out lookup or insert, a malformed row) degrades to a minimal
        buyer profile.
        """
        try:
            return await self._load_profile(user_id, email)
        except Exception:
            logger.exception("Unexpected error resolving profile for %s", user_id)
            return BuyerProfile(id=user_id, email=email)

    async def _load_profile(self, user_id: str, email: str | None) -> BuyerProfile | AgentProfile:
        timeout = self.settings.PROFILE_FETCH_TIMEOUT
        try:
            row = await asyncio.wait_for(self.profiles.get_profile(user_id), timeout)
        except ProfileNotFound:
            return await self._provision_profile(user_id, email)
        except ProfileFetchError as exc:
            logger.warning("Error fetching profile for %s: %s", user_id, exc)
            return BuyerProfile(id=user_id, email=email)
        except asyncio.TimeoutError:
            logger.warning("Timed out fetching profile for %s after %ss", user_id, timeout)
            return BuyerProfile(id=user_id, email=email)

        if row.get("user_type") != "agent":
            return resolve_profile(row)

        agent = None
        try:
            agent = await asyncio.wait_for(self.profiles.get_agent(user_id), timeout)
        except ProfileNotFound:
            logger.info("Agent %s has no agent details yet", user_id)
        except (ProfileFetchError, asyncio.TimeoutError) as exc:
            logger.warning("Error fetching agent details for %s: %r", user_id, exc)
        except Exception:
            logger.exception("Unexpected error fetching agent details for %s", user_id)
        return resolve_profile(row, agent)

    async def _provision_profile(self, user_id: str, email: str | None) -> BuyerProfile | AgentProfile:
        timeout = self.settings.PROFILE_FETCH_TIMEOUT
        try:
            row = await asyncio.wait_for(self.profiles.create_profile(user_id, email, "buyer"), timeout)
        except (ProfileWriteError, asyncio.TimeoutError) as exc:
            logger.warning("Profile creation failed for %s: %r", user_id, exc)
            return BuyerProfile(id=user_id, email=email)
        logger.info("Created missing profile for %s", user_id)
        return resolve_profile({"email": email, **row, "id": user_id})

    # ----- auth actions -----

    async def sign_in(self, email: str, password: str) -> AuthResult:
        try:
            await self.auth.sign_in_with_password({"email": email, "password": password})
        except AuthError as exc:
            return AuthResult(error=exc)
        return AuthResult()

    async def sign_up(
        self,
        email: str,
        password: str,
        *,
        name: str,
        user_type: UserType = "buyer",
        phone: str | None = None,
    ) -> AuthResult:
        """
        Create the auth user. The default buyer profile is created by the database trigger;
        for agents the role and agent details are applied afterwards, best-effort.
        """
        try:
            response = await self.auth.sign_up(
                {
                    "email": email,
                    "password": password,
                    "options": {"data": {"name": name, "user_type": user_type}},
                }
            )
        except AuthError as exc:
            return AuthResult(error=exc)

        user = getattr(response, "user", None)
        if user_type == "agent" and user is not None:
            self._spawn(self._enrich_agent(user.id, name, phone), self._background)
        return AuthResult()

    async def _enrich_agent(self, user_id: str, name: str, phone: str | None) -> None:
        delay = self.settings.AGENT_ROLE_RETRY_DELAY
        attempts = self.settings.AGENT_ROLE_RETRY_ATTEMPTS
        for attempt in range(1, attempts + 1):
            await self._sleep(delay)
            try:
                updated = await self.profiles.set_user_type(user_id, "agent")
            except ProfileWriteError as exc:
                logger.warning("Agent role update failed for %s (attempt %s): %s", user_id, attempt, exc)
                updated = None
            if updated is not None:
                break
            delay *= 2
        else:
            logger.warning("Gave up setting agent role for %s after %s attempts", user_id, attempts)
            return

        if phone:
            try:
                await self.profiles.create_agent(user_id, name=name, phone=phone, whatsapp=phone)
            except ProfileWriteError as exc:
                logger.warning("Agent creation error for %s: %s", user_id, exc)

        if self._state.user is not None and self._state.user.id == user_id:
            await self.refresh_profile()

    async def sign_in_with_google(self) -> AuthResult:
        try:
            response = await self.auth.sign_in_with_oauth(
                {
                    "provider": "google",
                    "options": {"redirect_to": self.settings.oauth_callback_url},
                }
            )
        except AuthError as exc:
            return AuthResult(error=exc)
        return AuthResult(redirect_url=response.url)

    async def complete_oauth_sign_in(self, auth_code: str) -> AuthResult:
        """
        Finish the OAuth redirect. The SIGNED_IN event emitted by the exchange hydrates
        the profile, creating a buyer profile for first-time identities.
        """
        try:
            await self.auth.exchange_code_for_session({"auth_code": auth_code})
        except AuthError as exc:
            logger.warning("Auth callback error: %s", exc)
            return AuthResult(error=exc)
        await self.wait_idle()
        return AuthResult()

    async def update_agent_profile(self, name: str, phone: str) -> BuyerProfile | AgentProfile | None:
        """Save agent contact details. Buyers have nothing to save."""
        user = self._state.user
        if user is None:
            raise PermissionError("Not signed in")
        if not isinstance(self._state.profile, AgentProfile):
            return self._state.profile

        updated = await self.profiles.update_agent(user.id, name=name, phone=phone)
        if updated is None:
            await self.profiles.create_agent(user.id, name=name, phone=phone, whatsapp=phone)
        return await self.refresh_profile()

    async def sign_out(self) -> Reload:
        """
        Clear local state first, then tell the auth service. Always succeeds locally;
        the returned Reload tells the caller to discard every other piece of client state.
        """
        self._generation += 1
        self._publish(SessionState.signed_out())
        try:
            await self.auth.sign_out()
        except Exception:
            logger.warning("Error signing out", exc_info=True)
        return Reload(location="/")
