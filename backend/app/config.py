"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    DATABASE_URL: str = "sqlite:///./ggbang.db"
    CORS_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"
    APP_BASE_URL: str = "https://ggbang.app"

    # Bearer tokens issued by the external auth provider
    AUTH_JWT_SECRET: str = ""
    AUTH_JWT_AUDIENCE: str = "authenticated"

    # Notice copy generation
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TIMEOUT_SECONDS: float = 10.0

    # Mail provider (Resend-compatible)
    RESEND_API_KEY: str = ""
    RESEND_API_URL: str = "https://api.resend.com/emails"
    MAIL_FROM: str = ""
    MAIL_TIMEOUT_SECONDS: float = 8.0

    # Optional shared secrets; an empty value disables the header check
    ENQUEUE_SECRET: str = ""
    ADMIN_SECRET: str = ""
    CRON_SECRET: str = ""

    WORKER_BATCH_SIZE: int = 10
    WORKER_MAX_ATTEMPTS: int = 3
    LOCATION_UNLOCK_LEAD_MINUTES: int = 60

    class Config:
        env_file = ".env"


settings = Settings()
