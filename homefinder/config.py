from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized runtime configuration loaded from environment variables.
    """

    SUPABASE_URL: str
    SUPABASE_SERVICE_ROLE_KEY: str
    SUPABASE_ANON_KEY: str | None = None
    SITE_URL: str = "http://localhost:3000"
    API_PREFIX: str = "/api"
    APP_NAME: str = "HomeFinder API"
    ALLOWED_ORIGINS: list[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    # Session manager tuning
    PROFILE_FETCH_TIMEOUT: float = 5.0
    AGENT_ROLE_RETRY_ATTEMPTS: int = 5
    AGENT_ROLE_RETRY_DELAY: float = 0.5

    SESSION_COOKIE_NAME: str = "homefinder_session"
    SESSION_COOKIE_SECURE: bool = False
    SESSION_IDLE_TTL: float = 1800.0
    SESSION_MAX_LIVE: int = 1000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def oauth_callback_url(self) -> str:
        return f"{self.SITE_URL.rstrip('/')}/auth/callback"


@lru_cache
def get_settings() -> Settings:
    return Settings()
