from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StripeSettings(BaseSettings):
    """
    Stripe configuration for the payments module.

    STRIPE_SECRET_KEY is the only required key. The Connect URLs are fallbacks used
    when a caller does not pass refreshUrl/returnUrl for onboarding links.
    """

    STRIPE_SECRET_KEY: str = Field(...)
    STRIPE_PUBLISHABLE_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_API_VERSION: str = "2023-10-16"

    STRIPE_DEFAULT_BUSINESS_NAME: Optional[str] = None

    # Connect
    STRIPE_CONNECT_ACCOUNT_TYPE: Literal["express", "custom"] = "express"
    STRIPE_CONNECT_REFRESH_URL: Optional[str] = None
    STRIPE_CONNECT_RETURN_URL: Optional[str] = None

    # Allow unknown env vars so StripeSettings does not crash when
    # the global .env contains unrelated configuration keys.
    model_config = SettingsConfigDict(extra="allow", env_file=".env")

    @validator("STRIPE_SECRET_KEY")
    def validate_secret_key(cls, v: str) -> str:
        if not (v.startswith("sk_test_") or v.startswith("sk_live_")):
            raise ValueError("STRIPE_SECRET_KEY must start with sk_test_ or sk_live_")
        return v

    @validator("STRIPE_CONNECT_ACCOUNT_TYPE", pre=True)
    def normalize_account_type(cls, v):
        return v.lower() if isinstance(v, str) else v


@lru_cache()
def get_settings() -> StripeSettings:  # pragma: no cover
    return StripeSettings()
