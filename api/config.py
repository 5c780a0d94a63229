import os
from functools import lru_cache

from pydantic import BaseModel


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql+asyncpg://drivedock:drivedock@db:5432/drivedock",
    )
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Identity codec
    HASH_SECRET: str = os.getenv("HASH_SECRET", "changeme")
    ENC_KEY: str = os.getenv("ENC_KEY", "00" * 32)

    # Sessions
    ONBOARDING_SESSION_COOKIE_NAME: str = os.getenv("ONBOARDING_SESSION_COOKIE_NAME", "OD_SESS")
    ONBOARDING_SESSION_TTL_SECONDS: int = int(os.getenv("ONBOARDING_SESSION_TTL_SECONDS", "21600"))
    COOKIE_SECURE: bool = _env_bool("COOKIE_SECURE", True)
    RESUME_EXPIRY_DAYS: int = int(os.getenv("RESUME_EXPIRY_DAYS", "14"))

    # Resume verification codes
    VERIFICATION_CODE_TTL_MINUTES: int = int(os.getenv("VERIFICATION_CODE_TTL_MINUTES", "10"))
    VERIFICATION_CODE_MAX_ATTEMPTS: int = int(os.getenv("VERIFICATION_CODE_MAX_ATTEMPTS", "5"))
    VERIFICATION_RESEND_WINDOW_SECONDS: int = int(os.getenv("VERIFICATION_RESEND_WINDOW_SECONDS", "60"))

    # Cleanup
    CLEANUP_DEFAULT_LIMIT: int = int(os.getenv("CLEANUP_DEFAULT_LIMIT", "500"))
    CLEANUP_HARD_CAP: int = int(os.getenv("CLEANUP_HARD_CAP", "5000"))
    CRON_SECRET: str | None = os.getenv("CRON_SECRET")

    # Admin endpoints
    ADMIN_API_KEY: str | None = os.getenv("ADMIN_API_KEY")

    # Mail collaborator
    MAIL_API_URL: str | None = os.getenv("MAIL_API_URL")
    MAIL_API_KEY: str | None = os.getenv("MAIL_API_KEY")
    MAIL_FROM: str = os.getenv("MAIL_FROM", "onboarding@drivedock.app")

    # Blob collaborator (S3-compatible)
    S3_BUCKET: str | None = os.getenv("S3_BUCKET")
    S3_REGION: str = os.getenv("S3_REGION", "us-east-1")
    S3_ENDPOINT: str | None = os.getenv("S3_ENDPOINT")
    S3_ACCESS_KEY: str | None = os.getenv("S3_ACCESS_KEY")
    S3_SECRET_KEY: str | None = os.getenv("S3_SECRET_KEY")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
