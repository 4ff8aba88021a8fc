"""Cart Perks Service - FastAPI app with shared error handling."""

import sys
from pathlib import Path

# Add shared package and service dir to path
_root = Path(__file__).resolve().parents[2]
_svc = Path(__file__).resolve().parent
sys.path.insert(0, str(_root))
sys.path.insert(0, str(_svc))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from packages.shared.errors.middleware import register_exception_handlers
from packages.shared.monitoring import HealthChecker, DependencyStatus, configure_logging, health_router
from packages.shared.monitoring.health import DependencyCheck

# Import after path setup - cart-perks-service modules
from config import settings
from api.cart import router as cart_router

configure_logging("cart-perks-service", settings.log_level, json_format=settings.log_json)

app = FastAPI(
    title="Cart Perks Service",
    description="Milestone perks and bundle discounts reconciled on every cart mutation",
    version="0.1.0",
)

# Request ids and error envelope
register_exception_handlers(app)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(cart_router)

health_checker = HealthChecker("cart-perks-service", "0.1.0")


async def check_storefront() -> DependencyCheck:
    """Storefront API credentials present."""
    if not settings.storefront_configured:
        return DependencyCheck(
            name="storefront",
            status=DependencyStatus.UNHEALTHY,
            message="Storefront API not configured (STOREFRONT_API_URL, STOREFRONT_ACCESS_TOKEN)",
        )
    return DependencyCheck(name="storefront", status=DependencyStatus.HEALTHY, message="Configured")


async def check_experiments() -> DependencyCheck:
    """Experiment assignment is optional; without it every shopper gets the default variant."""
    if not settings.experiment_service_url:
        return DependencyCheck(
            name="experiments",
            status=DependencyStatus.DEGRADED,
            message="EXPERIMENT_SERVICE_URL not set, serving default variant",
        )
    return DependencyCheck(name="experiments", status=DependencyStatus.HEALTHY, message="Configured")


health_checker.add_check("storefront", check_storefront)
health_checker.add_check("experiments", check_experiments)
app.include_router(health_router(health_checker))


@app.get("/")
async def root():
    """Service info."""
    return {
        "service": "cart-perks-service",
        "module": "Cart State Reconciliation",
        "version": "0.1.0",
        "endpoints": {
            "cart": "GET /api/v1/carts/{cart_id}",
            "perks_preview": "GET /api/v1/carts/{cart_id}/perks",
            "add_lines": "POST /api/v1/carts/{cart_id}/lines",
            "update_lines": "PATCH /api/v1/carts/{cart_id}/lines",
            "remove_lines": "POST /api/v1/carts/{cart_id}/lines/remove",
            "discount_codes": "PUT /api/v1/carts/{cart_id}/discount-codes",
            "add_bundle": "POST /api/v1/carts/{cart_id}/bundles",
        },
    }
