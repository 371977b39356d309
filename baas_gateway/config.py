from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class GatewaySettings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Server Configuration
    SERVICE_NAME: str = "baas-gateway"
    SERVICE_VERSION: str = "1.0.0"
    SERVICE_HOST: str = "0.0.0.0"
    SERVICE_PORT: int = 8000

    # Database connections
    MONGODB_URI: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "baas"
    REDIS_URL: str = "redis://localhost:6379/0"

    # Security - JWT
    JWT_ALGORITHM: str = "RS256"
    JWT_PRIVATE_KEY_PATH: Optional[str] = None
    JWT_PUBLIC_KEY_PATH: Optional[str] = None
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # OTP Configuration
    OTP_TTL: int = 5  # minutes
    OTP_LENGTH: int = 6
    OTP_RATE_LIMIT_PER_HOUR: int = 5
    OTP_MAX_FAILED_ATTEMPTS: int = 5
    ACCOUNT_LOCK_MINUTES: int = 15

    # Email
    EMAIL_PROVIDER: str = "none"  # none | smtp | mailersend
    EMAIL_FROM: str = "no-reply@localhost"
    EMAIL_FROM_NAME: str = "BaaS"
    MAILERSEND_API_KEY: Optional[str] = None
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 465
    SMTP_USER: Optional[str] = None
    SMTP_PASS: Optional[str] = None

    # OAuth - Google
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    GOOGLE_CALLBACK_URL: Optional[str] = None

    # OAuth - Facebook
    FACEBOOK_APP_ID: Optional[str] = None
    FACEBOOK_APP_SECRET: Optional[str] = None
    FACEBOOK_CALLBACK_URL: Optional[str] = None
    FACEBOOK_GRAPH_VERSION: str = "v19.0"

    # CORS Configuration
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: str = "GET,POST,PUT,PATCH,DELETE,OPTIONS"
    CORS_ALLOW_HEADERS: str = "Authorization,Content-Type,Stripe-Signature"
    CORS_EXPOSE_HEADERS: str = ""
    CORS_MAX_AGE: int = 600

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"  # Allow extra fields from .env that this service doesn't use


@lru_cache()
def get_settings() -> GatewaySettings:
    return GatewaySettings()
