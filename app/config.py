"""Application configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="null",
    )

    # Application
    app_name: str = Field(default="Physia API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Database
    database_url: str = Field(..., alias="DATABASE_URL")
    database_pool_size: int = Field(default=10, alias="DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(default=20, alias="DATABASE_MAX_OVERFLOW")

    # Redis
    redis_host: str = Field(..., alias="REDIS_HOST")
    redis_port: int = Field(..., alias="REDIS_PORT")
    redis_username: str = Field(default="default", alias="REDIS_USERNAME")
    redis_password: str = Field(default="", alias="REDIS_PASSWORD")
    redis_decode_responses: bool = Field(default=True, alias="REDIS_DECODE_RESPONSES")

    # JWT
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    refresh_token_expire_days: int = Field(default=30, alias="REFRESH_TOKEN_EXPIRE_DAYS")

    # Firebase
    firebase_credentials_path: str | None = Field(
        default=None,
        alias="FIREBASE_CREDENTIALS_PATH",
        description="Path to Firebase service account JSON file",
    )
    firebase_config_json: str | None = Field(
        default=None,
        alias="FIREBASE_CONFIG_JSON",
        description="Raw JSON string of the Firebase service account",
    )

    # Public site used to build links sent to patients
    site_url: str = Field(default="http://localhost:3000", alias="SITE_URL")

    # CORS
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as a list."""
        if isinstance(self.cors_origins_str, str):
            return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]
        return [self.cors_origins_str]

    # Rate Limiting (public booking and consent routes)
    rate_limit_per_minute: int = Field(default=60, alias="RATE_LIMIT_PER_MINUTE")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    # Stripe
    stripe_secret_key: str = Field(default="", alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: str = Field(default="", alias="STRIPE_WEBHOOK_SECRET")
    stripe_trial_days: int = Field(default=7, alias="STRIPE_TRIAL_DAYS")
    stripe_price_inicial_monthly: str = Field(default="", alias="STRIPE_PRICE_INICIAL_MONTHLY")
    stripe_price_inicial_yearly: str = Field(default="", alias="STRIPE_PRICE_INICIAL_YEARLY")
    stripe_price_avanzado_monthly: str = Field(default="", alias="STRIPE_PRICE_AVANZADO_MONTHLY")
    stripe_price_avanzado_yearly: str = Field(default="", alias="STRIPE_PRICE_AVANZADO_YEARLY")
    stripe_price_premium_monthly: str = Field(default="", alias="STRIPE_PRICE_PREMIUM_MONTHLY")
    stripe_price_premium_yearly: str = Field(default="", alias="STRIPE_PRICE_PREMIUM_YEARLY")

    @property
    def stripe_plans(self) -> dict[str, dict[str, str]]:
        """Plan catalogue keyed by plan name, then billing period."""
        return {
            "inicial": {
                "monthly": self.stripe_price_inicial_monthly,
                "yearly": self.stripe_price_inicial_yearly,
            },
            "avanzado": {
                "monthly": self.stripe_price_avanzado_monthly,
                "yearly": self.stripe_price_avanzado_yearly,
            },
            "premium": {
                "monthly": self.stripe_price_premium_monthly,
                "yearly": self.stripe_price_premium_yearly,
            },
        }

    # WhatsApp (AiSensy direct API)
    aisensy_base_url: str = Field(
        default="https://backend.aisensy.com/direct-apis/t1",
        alias="AISENSY_BASE_URL",
    )
    whatsapp_webhook_url: str = Field(
        default="http://localhost:8000/api/v1/whatsapp/webhook",
        alias="WHATSAPP_WEBHOOK_URL",
    )
    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT_SECONDS")

    # AI assistant (OpenAI-compatible chat completions)
    ai_base_url: str = Field(default="https://api.openai.com/v1", alias="AI_BASE_URL")
    ai_api_key: str = Field(default="", alias="AI_API_KEY")
    ai_chat_model: str = Field(default="gpt-4o", alias="AI_CHAT_MODEL")
    ai_extraction_model: str = Field(default="gpt-4o-mini", alias="AI_EXTRACTION_MODEL")
    ai_timeout_seconds: float = Field(default=45.0, alias="AI_TIMEOUT_SECONDS")

    # Consents
    consent_expiration_days: int = Field(default=7, alias="CONSENT_EXPIRATION_DAYS")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]


# Global settings instance
settings = get_settings()
