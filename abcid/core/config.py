from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    All config comes from .env file.
    Change values in .env; they automatically apply everywhere.
    """

    # ── Database ──────────────────────────────────────────
    DATABASE_URL: str       # asyncpg, used by FastAPI
    DATABASE_SYNC_URL: str = ""  # psycopg2, used only by Alembic

    # ── JWT ───────────────────────────────────────────────
    # Access and refresh tokens are signed with different secrets so a
    # leaked access token can never be redeemed at /auth/refresh.
    JWT_ACCESS_SECRET: str
    JWT_REFRESH_SECRET: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24          # 1 day
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7     # 7 days

    # ── OTP ───────────────────────────────────────────────
    OTP_VALIDITY_SECONDS: int = 120
    OTP_CLEANUP_INTERVAL_SECONDS: int = 15 * 60
    OTP_STORE: Literal["database", "memory"] = "database"

    # ── Session cookies ───────────────────────────────────
    COOKIE_SECURE: bool = False
    # identifier cookie value for admins; must never look like a student path
    ADMIN_IDENTIFIER: str = "admin-user"

    # ── Notifications ─────────────────────────────────────
    ZEPTOMAIL_URL: str = "https://api.zeptomail.in/v1.1/email"
    ZEPTOMAIL_TOKEN: str = ""
    ZEPTOMAIL_FROM_EMAIL: str = "noreply@example.edu"
    ZEPTOMAIL_FROM_NAME: str = "ABC ID Verification"
    INTERAKT_BASE_URL: str = "https://api.interakt.ai/v1/public/message/"
    INTERAKT_API_KEY: str = ""
    INTERAKT_TEMPLATE: str = "logincode"

    # ── CORS ──────────────────────────────────────────────
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    # ── App ───────────────────────────────────────────────
    APP_ENV: str = "production"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_lifetimes(self) -> "Settings":
        if self.ACCESS_TOKEN_EXPIRE_MINUTES >= self.REFRESH_TOKEN_EXPIRE_MINUTES:
            raise ValueError("ACCESS_TOKEN_EXPIRE_MINUTES must be shorter than REFRESH_TOKEN_EXPIRE_MINUTES")
        if self.JWT_ACCESS_SECRET == self.JWT_REFRESH_SECRET:
            raise ValueError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ")
        return self

    @property
    def origins_list(self) -> list[str]:
        """Splits comma-separated ALLOWED_ORIGINS into a list."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def refresh_max_age_seconds(self) -> int:
        return self.REFRESH_TOKEN_EXPIRE_MINUTES * 60


@lru_cache()
def get_settings() -> Settings:
    return Settings()


# Single instance used across the entire app
settings = get_settings()
