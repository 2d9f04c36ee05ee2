import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False
    LOG_LEVEL: str = "INFO"
    PORT: int = 5000

    # Database & Cache
    DATABASE_URL: str = "sqlite:///./presskit.db"
    REDIS_URL: str = "redis://localhost:6379"
    CACHE_PREFIX: str = "presskit-pro:"
    DB_CONNECT_RETRIES: int = 5

    # Password hashing cost
    BCRYPT_ROUNDS: int = 12

    # Tokens
    JWT_SECRET: str = "change-me"
    JWT_EXPIRES_IN: str = "7d"
    JWT_REFRESH_SECRET: str = "change-me-too"
    JWT_REFRESH_EXPIRES_IN: str = "30d"

    # Email relay
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_SECURE: bool = False
    SMTP_USER: Optional[str] = None
    SMTP_PASS: Optional[str] = None
    EMAIL_FROM: str = "noreply@presskitpro.com"
    EMAIL_FROM_NAME: str = "PressKit Pro"

    # Asset host (S3-compatible)
    ASSET_BUCKET: Optional[str] = None
    ASSET_REGION: str = "us-east-1"
    ASSET_ENDPOINT_URL: Optional[str] = None
    ASSET_ACCESS_KEY_ID: Optional[str] = None
    ASSET_SECRET_ACCESS_KEY: Optional[str] = None
    ASSET_PUBLIC_BASE_URL: Optional[str] = None
    ASSET_FOLDER: str = "presskit-pro"

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_BASIC_PLAN_ID: Optional[str] = None
    STRIPE_PRO_PLAN_ID: Optional[str] = None
    STRIPE_ENTERPRISE_PLAN_ID: Optional[str] = None

    # App URLs
    CLIENT_URL: str = "http://localhost:3000"
    ALLOWED_ORIGINS: str = "http://localhost:3000"  # comma-separated

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 900
    RATE_LIMIT_MAX: int = 100
    AUTH_RATE_LIMIT_MAX: int = 5
    CONTACT_RATE_LIMIT_MAX: int = 10

    # Request body ceilings; uploads allow 10 files of 25MB plus form overhead
    MAX_REQUEST_BYTES: int = 10 * 1024 * 1024
    MAX_UPLOAD_BYTES: int = 10 * 25 * 1024 * 1024 + 1024 * 1024

    # Analytics
    ENABLE_ANALYTICS: bool = True

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def allowed_origins(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"


settings = Settings()


def get_settings() -> Settings:
    return settings


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing or defaulted keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("presskit")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "SMTP_HOST",
        "ASSET_BUCKET",
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if cfg.JWT_SECRET == Settings.model_fields["JWT_SECRET"].default:
        missing.append("JWT_SECRET")
    if cfg.JWT_REFRESH_SECRET == Settings.model_fields["JWT_REFRESH_SECRET"].default:
        missing.append("JWT_REFRESH_SECRET")

    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
