from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql+asyncpg://ninofi:ninofi_dev@db:5432/ninofi"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # Security
    SECRET_KEY: str = "dev-secret-key-not-for-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    ALLOWED_ORIGINS: str = "*"

    # Google Maps
    MAPS_API_KEY: str = "mock_maps_key"

    # Stripe
    STRIPE_SECRET_KEY: str = "mock_stripe_key"
    STRIPE_CONNECT_RETURN_URL: str = "ninofi://payouts/return"
    STRIPE_CONNECT_REFRESH_URL: str = "ninofi://payouts/refresh"

    # Escrow
    ESCROW_CURRENCY: str = "usd"
    PLATFORM_FEE_PERCENT: float = 1.0
    PROCESSING_FEE_PERCENT: dict[str, float] = {
        "bank": 0.0,
        "card": 2.9,
        "apple": 2.9,
        "google": 2.9,
    }

    # Check-ins
    CHECKIN_RADIUS_METERS: float = 100.0
    CHECKIN_MAX_SESSION_HOURS: int = 16

    # Applications
    EXCLUSIVE_CONTRACTOR_ASSIGNMENT: bool = True

    # App
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
