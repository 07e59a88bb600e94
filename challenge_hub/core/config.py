import secrets

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "Challenge Hub"
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database (falls back to PG* variables, see challenge_hub.db)
    DATABASE_URL: str = ""
    AUTO_CREATE_TABLES: bool = False

    # Signing key for access grants. Set in production so grants survive restarts.
    SECRET_KEY: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    ALGORITHM: str = "HS256"
    ACCESS_GRANT_EXPIRE_MINUTES: int = 60 * 24 * 30  # 30 days

    # Admin API (X-Admin-Key header). Empty disables the admin API.
    ADMIN_API_KEY: str = ""

    # Frontend URL for CORS
    FRONTEND_URL: str = "http://localhost:3000"

    # Cookie security (False for local dev without HTTPS)
    COOKIE_SECURE: bool = True

    # Anonymous analytics session
    ANALYTICS_SESSION_COOKIE: str = "analytics_session"
    ANALYTICS_SESSION_MAX_AGE: int = 60 * 60 * 24  # 24 hours

    # Maximum rows in one CSV export (no pagination)
    ANALYTICS_EXPORT_LIMIT: int = 10000

    # Rich content
    SANITIZE_HTML: bool = True

    # Error tracking
    SENTRY_DSN: str = ""

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")


settings = Settings()
