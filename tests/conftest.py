"""Pytest configuration: in-memory collaborators and server-test base URL."""

import os

import pytest

from fakes import FakeCartStore, FakeCatalog
from packages.shared.cart_perks.resolver import FreeItemResolver


def _get_base_url() -> str:
    """Resolve cart perks service base URL from environment."""
    url = os.environ.get("CART_PERKS_SERVICE_URL") or os.environ.get("API_BASE_URL")
    if not url:
        pytest.skip(
            "CART_PERKS_SERVICE_URL or API_BASE_URL must be set for server tests. "
            "Example: export CART_PERKS_SERVICE_URL=http://localhost:8000"
        )
    return url.rstrip("/")


@pytest.fixture(scope="session")
def base_url() -> str:
    """Base URL for a running cart perks service (from env)."""
    return _get_base_url()


@pytest.fixture
def cart_store() -> FakeCartStore:
    return FakeCartStore()


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def resolver(catalog: FakeCatalog) -> FreeItemResolver:
    return FreeItemResolver(catalog)
