import asyncio
import logging
import secrets
import time
from collections import OrderedDict
from typing import Awaitable, Callable

from ..config import Settings, get_settings
from ..supabase_client import close_session_client, create_session_client
from .manager import SessionManager
from .profiles import ProfileRepository

logger = logging.getLogger(__name__)

ManagerFactory = Callable[[], Awaitable[SessionManager]]


async def build_session_manager(settings: Settings | None = None) -> SessionManager:
    """Default factory: one Supabase client and one manager per visitor."""
    settings = settings or get_settings()
    client = await create_session_client(settings)
    return SessionManager(
        client.auth,
        ProfileRepository(client),
        settings,
        on_close=lambda: close_session_client(client),
    )


class SessionRegistry:
    """
    Holds the live session managers, keyed by the opaque id stored in the visitor's cookie.

    Sessions idle for longer than ``idle_ttl`` seconds are evicted, and at most
    ``max_sessions`` are kept (least recently used go first). Evicted and discarded
    managers are closed in the background so their outstanding work can finish
    without holding up the request. Lives on ``app.state``; the app lifespan
    closes it on shutdown.
    """

    def __init__(
        self,
        factory: ManagerFactory = build_session_manager,
        max_sessions: int = 1000,
        idle_ttl: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._factory = factory
        self._max_sessions = max_sessions
        self._idle_ttl = idle_ttl
        self._clock = clock
        self._managers: OrderedDict[str, tuple[SessionManager, float]] = OrderedDict()
        self._closing: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._managers)

    def get(self, session_id: str | None) -> SessionManager | None:
        if not session_id:
            return None
        entry = self._managers.get(session_id)
        if entry is None:
            return None
        manager, last_seen = entry
        now = self._clock()
        if now - last_seen > self._idle_ttl:
            self._release(session_id, "idle")
            return None
        self._managers[session_id] = (manager, now)
        self._managers.move_to_end(session_id)
        return manager

    async def open(self) -> tuple[str, SessionManager]:
        self.evict_idle()
        manager = await self._factory()
        await manager.initialize()
        session_id = secrets.token_urlsafe(32)
        self._managers[session_id] = (manager, self._clock())
        while len(self._managers) > self._max_sessions:
            self._release(next(iter(self._managers)), "capacity")
        logger.debug("Opened session %s... (%s live)", session_id[:8], len(self._managers))
        return session_id, manager

    def evict_idle(self) -> int:
        """Close every session idle past the TTL. Returns how many were evicted."""
        now = self._clock()
        expired = [sid for sid, (_, seen) in self._managers.items() if now - seen > self._idle_ttl]
        for session_id in expired:
            self._release(session_id, "idle")
        return len(expired)

    async def discard(self, session_id: str | None) -> None:
        if session_id:
            self._release(session_id, "discarded")

    async def wait_closed(self) -> None:
        """Wait for managers already handed off for closing."""
        while self._closing:
            await asyncio.gather(*set(self._closing), return_exceptions=True)

    async def close_all(self) -> None:
        for session_id in list(self._managers):
            self._release(session_id, "shutdown")
        await self.wait_closed()

    def _release(self, session_id: str, reason: str) -> None:
        entry = self._managers.pop(session_id, None)
        if entry is None:
            return
        manager = entry[0]
        manager.detach()
        logger.debug("Closing session %s... (%s)", session_id[:8], reason)
        task = asyncio.get_running_loop().create_task(self._close(manager))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _close(self, manager: SessionManager) -> None:
        try:
            await manager.close()
        except Exception:
            logger.exception("Failed to close session manager")
