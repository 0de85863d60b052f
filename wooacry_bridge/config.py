"""
Wooacry bridge configuration.
"""
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


def find_env_file() -> str:
    """Find .env file - check local dir, then project root."""
    local_env = Path(".env")
    root_env = Path("../.env")

    if local_env.exists():
        return str(local_env)
    elif root_env.exists():
        return str(root_env)
    return ".env"  # default


class Settings(BaseSettings):
    """Service settings from environment variables."""

    # Wooacry open API
    WOOACRY_BASE_URL: str = "https://api-new.wooacry.com"
    WOOACRY_RESELLER_FLAG: str = "characterhub"
    WOOACRY_SECRET: str = ""
    WOOACRY_VERSION: str = "1"
    WOOACRY_TIMEOUT_SECONDS: float = 20.0

    # Shared secret Wooacry sends with shipping notices
    WOOACRY_WEBHOOK_SECRET: str = ""

    # Shopify Admin API
    SHOPIFY_STORE_HANDLE: str = "characterhub-merch-store"
    SHOPIFY_API_VERSION: str = "2024-01"
    SHOPIFY_ADMIN_API_TOKEN: str = ""
    SHOPIFY_WEBHOOK_SECRET: str = ""
    SHOPIFY_TIMEOUT_SECONDS: float = 15.0

    # Where Wooacry order numbers are recorded: "shopify" or "memory"
    LEDGER_BACKEND: str = "shopify"
    ORDER_LOCK_TIMEOUT_SECONDS: float = 60.0

    TRACKING_URL_TEMPLATE: str = "https://t.17track.net/en#nums={number}"

    # Admin endpoints are disabled unless a token is set
    ADMIN_API_TOKEN: str = ""

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8003
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_PATH: str = ""  # e.g. /app/logs/wooacry-bridge.log

    class Config:
        env_file = find_env_file()
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def shopify_admin_url(self) -> str:
        """Get Shopify Admin REST API base URL"""
        return f"https://{self.SHOPIFY_STORE_HANDLE}.myshopify.com/admin/api/{self.SHOPIFY_API_VERSION}"

    @property
    def is_shopify_configured(self) -> bool:
        return bool(self.SHOPIFY_ADMIN_API_TOKEN)

    def validate_required_config(self) -> list:
        """Validate that required configuration is present"""
        errors = []

        if not self.WOOACRY_SECRET:
            errors.append("WOOACRY_SECRET is required")

        if not self.WOOACRY_RESELLER_FLAG:
            errors.append("WOOACRY_RESELLER_FLAG is required")

        backend = self.LEDGER_BACKEND.lower()
        if backend not in ("shopify", "memory"):
            errors.append(f"LEDGER_BACKEND must be 'shopify' or 'memory', got {self.LEDGER_BACKEND!r}")
        elif backend == "shopify" and not self.is_shopify_configured:
            errors.append("SHOPIFY_ADMIN_API_TOKEN is required when LEDGER_BACKEND=shopify")

        return errors

    def get_config_summary(self) -> dict:
        """Get a summary of configuration (without sensitive data)"""
        return {
            "wooacry_base_url": self.WOOACRY_BASE_URL,
            "wooacry_reseller_flag": self.WOOACRY_RESELLER_FLAG,
            "wooacry_version": self.WOOACRY_VERSION,
            "wooacry_secret_configured": bool(self.WOOACRY_SECRET),
            "wooacry_webhook_secret_configured": bool(self.WOOACRY_WEBHOOK_SECRET),
            "wooacry_timeout_seconds": self.WOOACRY_TIMEOUT_SECONDS,
            "shopify_store_handle": self.SHOPIFY_STORE_HANDLE,
            "shopify_api_version": self.SHOPIFY_API_VERSION,
            "shopify_configured": self.is_shopify_configured,
            "shopify_webhook_secret_configured": bool(self.SHOPIFY_WEBHOOK_SECRET),
            "ledger_backend": self.LEDGER_BACKEND.lower(),
            "admin_api_enabled": bool(self.ADMIN_API_TOKEN),
            "debug": self.DEBUG,
            "host": self.HOST,
            "port": self.PORT,
            "log_level": self.LOG_LEVEL,
        }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
