"""Application configuration from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "SlotBook"
    debug: bool = True
    log_level: str = "INFO"
    secret_key: str = "dev-secret-change-in-production"
    api_prefix: str = "/api/v1"

    # Database
    database_url: str = "postgresql+asyncpg://slotbook:slotbook@db:5432/slotbook"
    database_echo: bool = False

    # Redis (Celery broker for the generation / expiry triggers)
    redis_url: str = "redis://redis:6379/0"

    # Admin auth
    admin_token_expire_minutes: int = 60 * 24
    jwt_algorithm: str = "HS256"

    # Email / SMTP
    smtp_host: str = "localhost"
    smtp_port: int = 1025
    smtp_from: str = "noreply@slotbook.io"
    frontend_url: str = "http://localhost:3000"

    # Stripe (test mode)
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    currency: str = "eur"
    # Stripe requires checkout sessions to live at least 30 minutes
    payment_session_ttl_minutes: int = 45

    # Scheduling
    timezone: str = "Europe/Madrid"
    generation_hour: int = 2
    reconcile_interval_minutes: int = 5
    listing_days: int = 7

    model_config = {"env_prefix": "SB_", "env_file": ".env", "extra": "ignore"}


settings = Settings()
