from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "couponflow"
    version: str = "0.1.0"
    DEBUG: bool = False
    APP_DOMAIN: str = "example.com"
    APP_DATABASE_DSN: str = "sqlite:////tmp/couponflow.db"
    LOG_LEVEL: str = "INFO"

    # Rate limiting counters live in Redis; an empty URL leaves them unconfigured
    REDIS_URL: str = ""
    RATE_LIMIT_BACKEND: str = "redis"  # "redis", "memory" or "disabled"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Admin API
    ADMIN_API_KEY: str = ""

    # Coupon code generation
    COUPON_CODE_PREFIX: str = "CPN"
    COUPON_CODE_LENGTH: int = 10
    COUPON_CODE_MAX_ATTEMPTS: int = 5

    # Treat an email in the claim URL as proof of a prior submission when the
    # opt-in read cannot be completed
    TRUST_EMAIL_ON_INCONCLUSIVE_OPT_IN: bool = True


settings = Settings()
