"""Configuration from environment variables."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env from project root (parent of services/cart-perks-service)
_project_root = Path(__file__).resolve().parents[2]
load_dotenv(_project_root / ".env")


def get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get environment variable."""
    return os.getenv(key, default)


def _get_float(key: str, default: float) -> float:
    raw = get_env(key)
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


class Settings:
    """Cart perks service settings."""

    # Storefront API (cart store + catalog)
    storefront_api_url: str = (get_env("STOREFRONT_API_URL") or "").rstrip("/")
    storefront_access_token: str = get_env("STOREFRONT_ACCESS_TOKEN") or ""
    storefront_api_version: str = get_env("STOREFRONT_API_VERSION") or "2025-01"
    storefront_timeout_seconds: float = _get_float("STOREFRONT_TIMEOUT_SECONDS", 10.0)
    # Free item lookups must finish well inside the shopper's request
    catalog_timeout_seconds: float = _get_float("CATALOG_TIMEOUT_SECONDS", 3.0)

    # Experiment assignment (empty => always the default variant)
    experiment_service_url: str = (get_env("EXPERIMENT_SERVICE_URL") or "").rstrip("/")
    cart_perks_experiment_key: str = get_env("CART_PERKS_EXPERIMENT_KEY") or "cart_perks_variant"
    # JSON {variant_id: [milestone, ...]} overriding the built-in variants
    cart_perks_variants_json: str = get_env("CART_PERKS_VARIANTS_JSON") or ""

    free_item_decline_window_minutes: float = _get_float("FREE_ITEM_DECLINE_WINDOW_MINUTES", 30.0)

    # Service
    environment: str = get_env("ENVIRONMENT", "development")
    log_level: str = get_env("LOG_LEVEL", "INFO")
    log_json: bool = (get_env("LOG_JSON") or "true").strip().lower() == "true"

    @property
    def storefront_configured(self) -> bool:
        """Check if the Storefront API is configured."""
        return bool(self.storefront_api_url and self.storefront_access_token)

    @property
    def graphql_endpoint(self) -> str:
        return f"{self.storefront_api_url}/api/{self.storefront_api_version}/graphql.json"


settings = Settings()
