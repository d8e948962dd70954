import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .routers import agents, auth, favorites, properties
from .session.registry import SessionRegistry
from .utils.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the per-visitor session managers; close them all on shutdown."""
    yield
    logger.info("Closing %s live sessions", len(app.state.sessions))
    await app.state.sessions.close_all()


def create_app(registry: SessionRegistry | None = None) -> FastAPI:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    app = FastAPI(title=settings.APP_NAME, redirect_slashes=False, lifespan=lifespan)
    app.state.sessions = registry or SessionRegistry(
        max_sessions=settings.SESSION_MAX_LIVE,
        idle_ttl=settings.SESSION_IDLE_TTL,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router, prefix=settings.API_PREFIX)
    app.include_router(properties.router, prefix=settings.API_PREFIX)
    app.include_router(agents.router, prefix=settings.API_PREFIX)
    app.include_router(favorites.router, prefix=settings.API_PREFIX)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
