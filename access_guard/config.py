from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Library settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="ACCESS_GUARD_",
        case_sensitive=True,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./access_guard.db"

    # Restriction monitor
    POLL_INTERVAL_SECONDS: float = 30.0

    # Backend retries (transient failures only)
    BACKEND_RETRY_ATTEMPTS: int = 3
    BACKEND_RETRY_INITIAL_DELAY: float = 0.2
    BACKEND_RETRY_MAX_DELAY: float = 2.0

    # History views
    HISTORY_DEFAULT_DAYS: int = 7
    AUDIT_HISTORY_LIMIT: int = 20


def get_settings() -> Settings:
    """Build a fresh Settings instance from the current environment."""
    return Settings()


settings = get_settings()
