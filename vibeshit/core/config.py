import os
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(val: str | None) -> list[str]:
    return [v.strip() for v in (val or "").split(",") if v.strip()]


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Vibe Shit API"
    ENV: str = os.getenv("ENV", "development")
    DEBUG: bool = False

    # DB
    DATABASE_URL: str = "sqlite:///./vibeshit.db"

    # Object storage (S3 compatible)
    AWS_ACCESS_KEY_ID: str | None = None
    AWS_SECRET_ACCESS_KEY: str | None = None
    AWS_REGION: str = "us-east-1"
    S3_BUCKET_NAME: str = "project-show"
    S3_ENDPOINT_URL: str | None = None
    SIGNED_URL_EXPIRES_SECONDS: int = 60 * 60 * 24 * 7  # 7 days
    UPLOAD_PREFIX: str = "projects"
    MAX_UPLOAD_SIZE_MB: int = Field(default=5, ge=1)

    # Identity provider (token refresh endpoint)
    AUTH_URL: str = "http://localhost:54321"
    AUTH_API_KEY: str = ""
    AUTH_TIMEOUT_SECONDS: float = 10.0

    # Auth / JWT
    JWT_SECRET: str = os.getenv("SECRET_KEY") or "dev-secret-change-me"
    JWT_ALG: str = "HS256"
    JWT_AUDIENCE: str | None = None

    # Cookies
    ACCESS_COOKIE_NAME: str = "sb-access-token"
    REFRESH_COOKIE_NAME: str = "sb-refresh-token"
    REFRESH_COOKIE_MAX_AGE: int = 60 * 60 * 24 * 30  # 30 days
    SESSION_COOKIE_DOMAIN: str | None = None
    SESSION_COOKIE_SECURE: bool = False
    SESSION_COOKIE_SAMESITE: str = "lax"  # 'lax' or 'none'

    # CORS (schemed origins like https://vibeshit.example)
    FRONTEND_URL: str = "http://localhost:3000"
    ALLOW_ORIGINS: list[str] = Field(default_factory=list)  # override via ALLOWED_ORIGINS (CSV)
    ALLOW_METHODS: list[str] = ["GET", "POST", "DELETE", "OPTIONS"]
    ALLOW_HEADERS: list[str] = ["*"]
    ALLOW_CREDENTIALS: bool = True

    # Load .env file
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # ---------- Helpers ----------

    @property
    def max_upload_size_bytes(self) -> int:
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    def frontend_origins(self) -> list[str]:
        if self.ALLOW_ORIGINS:
            return self.ALLOW_ORIGINS
        return list({
            self.FRONTEND_URL.rstrip("/"),
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        })


def build_settings(**overrides) -> Settings:
    s = Settings(**overrides)

    # Heroku-style URLs are not accepted by SQLAlchemy
    if s.DATABASE_URL.startswith("postgres://"):
        s.DATABASE_URL = s.DATABASE_URL.replace("postgres://", "postgresql://", 1)

    # SameSite=None is rejected by browsers unless the cookie is Secure
    if s.SESSION_COOKIE_SAMESITE.lower() == "none":
        s.SESSION_COOKIE_SECURE = True

    # Load CORS overrides
    env_origins = _split_csv(os.getenv("ALLOWED_ORIGINS"))
    if env_origins:
        s.ALLOW_ORIGINS = env_origins
    else:
        s.ALLOW_ORIGINS = s.frontend_origins()

    return s


@lru_cache
def get_settings() -> Settings:
    return build_settings()
