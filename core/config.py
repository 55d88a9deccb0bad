"""Application configuration with environment-specific profiles.

Supports dev, test, staging, and production environments via APP_ENV.
All values can be overridden by environment variables.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from functools import lru_cache

from core.errors import ConfigError

UPLOAD_PROVIDERS = ("local", "s3", "cloudinary")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class Settings:
    """Immutable application settings resolved from environment."""

    database_url: str
    app_env: str = "dev"
    app_url: str = "http://localhost:8000"
    auth_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    session_max_age_seconds: int = 30 * 24 * 60 * 60
    session_update_age_seconds: int = 24 * 60 * 60
    bcrypt_rounds: int = 12
    log_level: str = "INFO"
    debug: bool = False

    # Stripe
    stripe_secret_key: str = ""
    stripe_publishable_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_price_basic: str = ""
    stripe_price_premium: str = ""

    # Resend
    resend_api_key: str = ""
    resend_from_email: str = "noreply@coachingplatform.com"
    resend_api_base: str = "https://api.resend.com"

    # Uploads
    upload_provider: str = "local"
    max_file_size: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_region: str | None = None
    aws_s3_bucket: str | None = None
    cloudinary_cloud_name: str | None = None
    cloudinary_api_key: str | None = None
    cloudinary_api_secret: str | None = None

    # Development flags
    skip_email_verification: bool = False
    mock_payments: bool = False
    seed_database: bool = False

    # Token lifetimes
    verification_token_hours: int = 24
    reset_token_minutes: int = 60

    # HTTP
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    request_id_header_name: str = "X-Request-ID"
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"
    auth_rate_limit: str = "10/minute"
    redis_url: str = "redis://localhost:6379/0"
    cache_prefix: str = "coaching-cache"

    # Pagination
    default_page_size: int = 20
    max_page_size: int = 100

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"


# -- Environment profiles --

_ENV_PROFILES: dict[str, dict] = {
    "dev": {
        "log_level": "DEBUG",
        "bcrypt_rounds": 10,
    },
    "test": {
        "log_level": "WARNING",
        "bcrypt_rounds": 4,
        "rate_limit_enabled": False,
    },
    "staging": {
        "log_level": "INFO",
        "bcrypt_rounds": 12,
    },
    "production": {
        "log_level": "WARNING",
        "bcrypt_rounds": 12,
    },
}


def _flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _optional(name: str) -> str | None:
    value = os.getenv(name)
    return value if value else None


def get_database_url() -> str:
    """Resolve database URL from env var or a local SQLite default."""
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    return "sqlite+pysqlite:///./coaching_platform.db"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])
    debug = _flag("DEBUG")
    log_level = "DEBUG" if debug else os.getenv("LOG_LEVEL", profile.get("log_level", "INFO"))
    cors = os.getenv("CORS_ORIGINS", "http://localhost:3000")

    return Settings(
        database_url=get_database_url(),
        app_env=app_env,
        app_url=(os.getenv("APP_URL") or os.getenv("NEXTAUTH_URL") or "http://localhost:8000").rstrip("/"),
        auth_secret=os.getenv("AUTH_SECRET") or os.getenv("NEXTAUTH_SECRET") or "change-me",
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        session_max_age_seconds=int(os.getenv("SESSION_MAX_AGE_SECONDS", str(30 * 24 * 60 * 60))),
        session_update_age_seconds=int(os.getenv("SESSION_UPDATE_AGE_SECONDS", str(24 * 60 * 60))),
        bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", str(profile.get("bcrypt_rounds", 12)))),
        log_level=log_level,
        debug=debug,
        stripe_secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
        stripe_publishable_key=os.getenv("STRIPE_PUBLISHABLE_KEY", ""),
        stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
        stripe_price_basic=os.getenv("STRIPE_PRICE_BASIC", ""),
        stripe_price_premium=os.getenv("STRIPE_PRICE_PREMIUM", ""),
        resend_api_key=os.getenv("RESEND_API_KEY", ""),
        resend_from_email=os.getenv("RESEND_FROM_EMAIL") or "noreply@coachingplatform.com",
        resend_api_base=os.getenv("RESEND_API_BASE", "https://api.resend.com").rstrip("/"),
        upload_provider=os.getenv("UPLOAD_PROVIDER", "local"),
        max_file_size=_optional("MAX_FILE_SIZE"),
        aws_access_key_id=_optional("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=_optional("AWS_SECRET_ACCESS_KEY"),
        aws_region=_optional("AWS_REGION"),
        aws_s3_bucket=_optional("AWS_S3_BUCKET"),
        cloudinary_cloud_name=_optional("CLOUDINARY_CLOUD_NAME"),
        cloudinary_api_key=_optional("CLOUDINARY_API_KEY"),
        cloudinary_api_secret=_optional("CLOUDINARY_API_SECRET"),
        skip_email_verification=_flag("SKIP_EMAIL_VERIFICATION"),
        mock_payments=_flag("MOCK_PAYMENTS"),
        seed_database=_flag("SEED_DATABASE"),
        verification_token_hours=int(os.getenv("VERIFICATION_TOKEN_HOURS", "24")),
        reset_token_minutes=int(os.getenv("RESET_TOKEN_MINUTES", "60")),
        cors_origins=[o.strip() for o in cors.split(",") if o.strip()],
        request_id_header_name=os.getenv("REQUEST_ID_HEADER_NAME", "X-Request-ID"),
        rate_limit_enabled=_flag("RATE_LIMIT_ENABLED", profile.get("rate_limit_enabled", True)),
        rate_limit_storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
        auth_rate_limit=os.getenv("AUTH_RATE_LIMIT", "10/minute"),
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        cache_prefix=os.getenv("CACHE_PREFIX", "coaching-cache"),
        default_page_size=int(os.getenv("DEFAULT_PAGE_SIZE", "20")),
        max_page_size=int(os.getenv("MAX_PAGE_SIZE", "100")),
    )


def settings_issues(settings: Settings) -> list[str]:
    """Return every configuration problem found, empty when the settings are usable."""
    issues: list[str] = []
    if len(settings.auth_secret) < 32:
        issues.append("NEXTAUTH_SECRET must be at least 32 characters")
    if not settings.app_url.startswith(("http://", "https://")):
        issues.append("NEXTAUTH_URL must be a valid URL")
    if not settings.stripe_secret_key.startswith("sk_"):
        issues.append("STRIPE_SECRET_KEY must start with sk_")
    if not settings.stripe_publishable_key.startswith("pk_"):
        issues.append("STRIPE_PUBLISHABLE_KEY must start with pk_")
    if not settings.stripe_webhook_secret.startswith("whsec_"):
        issues.append("STRIPE_WEBHOOK_SECRET must start with whsec_")
    if not settings.resend_api_key.startswith("re_"):
        issues.append("RESEND_API_KEY must start with re_")
    if not _EMAIL_RE.match(settings.resend_from_email):
        issues.append("RESEND_FROM_EMAIL must be a valid email address")
    if settings.upload_provider not in UPLOAD_PROVIDERS:
        issues.append(f"UPLOAD_PROVIDER must be one of {', '.join(UPLOAD_PROVIDERS)}")
    if settings.max_file_size is not None and not settings.max_file_size.isdigit():
        issues.append("MAX_FILE_SIZE must be a number")
    if settings.upload_provider == "s3" and not all(
        [settings.aws_access_key_id, settings.aws_secret_access_key, settings.aws_region, settings.aws_s3_bucket]
    ):
        issues.append(
            "AWS credentials (AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, AWS_REGION, AWS_S3_BUCKET) "
            "are required when UPLOAD_PROVIDER is set to s3"
        )
    if settings.upload_provider == "cloudinary" and not all(
        [settings.cloudinary_cloud_name, settings.cloudinary_api_key, settings.cloudinary_api_secret]
    ):
        issues.append(
            "Cloudinary settings (CLOUDINARY_CLOUD_NAME, CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET) "
            "are required when UPLOAD_PROVIDER is set to cloudinary"
        )
    if settings.mock_payments:
        # Stripe keys are not needed when payments are mocked.
        issues = [i for i in issues if not i.startswith("STRIPE_")]
    return issues


def validate_settings(settings: Settings) -> None:
    issues = settings_issues(settings)
    if issues:
        raise ConfigError("Environment validation failed", issues=issues)
