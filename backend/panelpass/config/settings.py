"""
Runtime settings read from environment variables.

Usage:
    from panelpass.config.settings import get_settings

    settings = get_settings()
    if settings.webhook_signature_strict:
        ...

Tests that change the environment call get_settings.cache_clear().
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

_TRUE = {"1", "true", "yes", "on"}

PAYPAL_BASE_URLS = {
    "sandbox": "https://api-m.sandbox.paypal.com",
    "live": "https://api-m.paypal.com",
}


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _env_bool(name: str, default: bool = False) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.lower() in _TRUE


@dataclass(frozen=True)
class Settings:
    """Application settings snapshot."""

    environment: str
    log_level: str
    app_base_url: Optional[str]

    # Paystack
    paystack_secret_key: Optional[str]
    paystack_base_url: str

    # PayPal
    paypal_client_id: Optional[str]
    paypal_client_secret: Optional[str]
    paypal_mode: str
    paypal_webhook_id: Optional[str]
    paypal_brand_name: str

    # Webhook policy
    webhook_signature_strict: bool

    # Auth
    supabase_jwt_secret: Optional[str]
    supabase_jwt_audience: str

    # Anonymous Day Pass cookie
    daypass_cookie_name: str

    # Geo detection
    default_country_code: str
    geo_lookup_enabled: bool

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def paypal_base_url(self) -> str:
        return PAYPAL_BASE_URLS.get(self.paypal_mode, PAYPAL_BASE_URLS["sandbox"])

    @property
    def paystack_configured(self) -> bool:
        return bool(self.paystack_secret_key)

    @property
    def paypal_configured(self) -> bool:
        return bool(self.paypal_client_id and self.paypal_client_secret)

    @classmethod
    def from_env(cls) -> "Settings":
        environment = (_env("ENV") or _env("APP_ENV") or "development").lower()
        return cls(
            environment=environment,
            log_level=(_env("LOG_LEVEL", "INFO") or "INFO").upper(),
            app_base_url=_env("APP_BASE_URL"),
            paystack_secret_key=_env("PAYSTACK_SECRET_KEY"),
            paystack_base_url=_env("PAYSTACK_BASE_URL", "https://api.paystack.co"),
            paypal_client_id=_env("PAYPAL_CLIENT_ID"),
            paypal_client_secret=_env("PAYPAL_CLIENT_SECRET"),
            paypal_mode=(_env("PAYPAL_MODE", "sandbox") or "sandbox").lower(),
            paypal_webhook_id=_env("PAYPAL_WEBHOOK_ID"),
            paypal_brand_name=_env("PAYPAL_BRAND_NAME", "ShattahsVerse"),
            webhook_signature_strict=_env_bool("PAYMENT_WEBHOOK_STRICT", False),
            supabase_jwt_secret=_env("SUPABASE_JWT_SECRET"),
            supabase_jwt_audience=_env("SUPABASE_JWT_AUDIENCE", "authenticated"),
            daypass_cookie_name=_env("DAYPASS_COOKIE_NAME", "daypass_session_id"),
            default_country_code=(_env("DEFAULT_COUNTRY_CODE", "US") or "US").upper(),
            geo_lookup_enabled=_env_bool("GEO_LOOKUP_ENABLED", True),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the cached settings snapshot."""
    return Settings.from_env()
