"""Liveness and readiness probes."""

import time
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class DependencyStatus(str, Enum):
    """Status of a dependency check."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


class DependencyCheck(BaseModel):
    """Result of a single dependency check."""

    name: str
    status: DependencyStatus
    message: Optional[str] = None
    latency_ms: Optional[float] = None


class HealthChecker:
    """Collects dependency checks for the readiness probe."""

    def __init__(self, service_name: str, version: str = "0.1.0"):
        self.service_name = service_name
        self.version = version
        self._checks: List[Tuple[str, Callable[[], Awaitable[DependencyCheck]]]] = []

    def add_check(self, name: str, check: Callable[[], Awaitable[DependencyCheck]]):
        """Register a dependency check."""
        self._checks.append((name, check))

    async def check_dependencies(self) -> List[DependencyCheck]:
        """Run all dependency checks, timing each one."""
        results = []
        for name, check_fn in self._checks:
            started = time.perf_counter()
            try:
                result = await check_fn()
            except Exception as e:
                result = DependencyCheck(
                    name=name,
                    status=DependencyStatus.UNHEALTHY,
                    message=str(e),
                )
            if result.latency_ms is None:
                result.latency_ms = round((time.perf_counter() - started) * 1000, 2)
            results.append(result)
        return results

    async def readiness(self) -> dict:
        """Overall status: unhealthy wins over degraded wins over healthy."""
        dependencies = await self.check_dependencies()
        statuses = {d.status for d in dependencies}
        if DependencyStatus.UNHEALTHY in statuses:
            overall = DependencyStatus.UNHEALTHY
        elif DependencyStatus.DEGRADED in statuses:
            overall = DependencyStatus.DEGRADED
        else:
            overall = DependencyStatus.HEALTHY

        return {
            "status": overall.value,
            "service": self.service_name,
            "version": self.version,
            "dependencies": [d.model_dump(mode="json") for d in dependencies],
        }


def health_router(health_checker: HealthChecker) -> APIRouter:
    """Create FastAPI router with /health and /ready endpoints."""
    router = APIRouter(tags=["Health"])

    @router.get("/health")
    async def health():
        """Liveness probe - is the process running."""
        return {
            "status": "healthy",
            "service": health_checker.service_name,
            "version": health_checker.version,
        }

    @router.get("/ready")
    async def ready():
        """Readiness probe - 503 while a dependency is unhealthy."""
        body = await health_checker.readiness()
        status_code = 503 if body["status"] == DependencyStatus.UNHEALTHY.value else 200
        return JSONResponse(status_code=status_code, content=body)

    return router
