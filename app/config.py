from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Database - PostgreSQL for production, SQLite for development
    database_url: str = Field(
        default="sqlite:///./travel_booking.db",
        alias="DATABASE_URL"
    )

    # Security
    secret_key: str = Field(default="dev-secret-key-at-least-32-characters-long-for-development", alias="SECRET_KEY")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(default=60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Password policy
    min_password_length: int = 8

    # CORS - Frontend URLs from environment (comma-separated)
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        alias="ALLOWED_ORIGINS"
    )

    # Public site used to build links in emails and checkout redirects
    site_url: str = Field(default="http://localhost:3000", alias="SITE_URL")

    # ==============================================
    # Stripe (Server-Side Only!)
    # ==============================================
    stripe_secret_key: str = Field(default="", alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: str = Field(default="", alias="STRIPE_WEBHOOK_SECRET")

    # Zero-decimal currency: amounts are stored and charged as whole units
    payment_currency: str = Field(default="jpy", alias="PAYMENT_CURRENCY")

    # ==============================================
    # Transactional email (Brevo)
    # ==============================================
    brevo_api_key: str = Field(default="", alias="BREVO_API_KEY")
    brevo_api_url: str = Field(default="https://api.brevo.com/v3/smtp/email", alias="BREVO_API_URL")
    email_from: str = Field(default="", alias="EMAIL_FROM")
    email_from_name: str = Field(default="Travel Bookings", alias="EMAIL_FROM_NAME")
    admin_email: str = Field(default="", alias="ADMIN_EMAIL")
    email_timeout_seconds: int = Field(default=10, alias="EMAIL_TIMEOUT_SECONDS")

    # ==============================================
    # Rate limiting
    # ==============================================
    redis_url: str = Field(default="", alias="REDIS_URL")
    claim_rate_limit: str = Field(default="5/minute", alias="CLAIM_RATE_LIMIT")

    # Review requests
    review_token_days: int = Field(default=30, alias="REVIEW_TOKEN_DAYS")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    @field_validator('secret_key')
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Validate SECRET_KEY is strong enough"""
        if not v:
            raise ValueError("SECRET_KEY is required and cannot be empty")
        if len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return v

    @field_validator('payment_currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return (v or "jpy").strip().lower()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def public_site_url(self) -> str:
        return self.site_url.strip().rstrip("/")

    @property
    def cors_origins(self) -> List[str]:
        """
        Parse allowed origins from comma-separated string.
        Returns a list suitable for CORSMiddleware.
        """
        if not self.allowed_origins:
            return [self.public_site_url]

        origins = []
        for origin in self.allowed_origins.split(","):
            origin = origin.strip().rstrip("/")  # Remove trailing slashes
            if origin and origin not in origins:
                origins.append(origin)

        return origins if origins else [self.public_site_url]

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Initialize settings on module load
settings = get_settings()
