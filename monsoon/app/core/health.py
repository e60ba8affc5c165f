"""
Health check aggregation — deep health probe for all subsystems.

Checks:
    • Ward store (SQL database)          unreachable → degraded
    • Cache (Redis or in-process)        in-process fallback → degraded
    • Prediction service (GET /health)   asleep/unreachable → degraded
    • Weather sources                    none configured → degraded
    • Update dispatcher                  not running → unhealthy

The dashboard keeps serving (local or demo data) while external pieces
are down, so only a stopped dispatcher makes the service unhealthy.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List

from monsoon.app.core.cache import redis_available
from monsoon.app.core.config import settings

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


_start_time = time.monotonic()


def _redact(url: str) -> str:
    return url.split("@")[-1] if "@" in url else url


async def _timed(comp: ComponentHealth, probe: Callable[[ComponentHealth], Awaitable[None]]) -> ComponentHealth:
    start = time.monotonic()
    try:
        await probe(comp)
    except Exception as e:
        comp.status = HealthStatus.DEGRADED
        comp.message = str(e)
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_database(services) -> ComponentHealth:
    async def probe(comp: ComponentHealth):
        count = await services.repository.count()
        comp.details = {"url": _redact(settings.DATABASE_URL)}
        if count is None:
            comp.status = HealthStatus.DEGRADED
            comp.message = "Ward store unreachable, serving cached or demo data"
        else:
            comp.message = f"{count} wards stored"
            comp.details["wards"] = count

    return await _timed(ComponentHealth(name="ward_store"), probe)


async def check_cache() -> ComponentHealth:
    async def probe(comp: ComponentHealth):
        comp.details = {"url": _redact(settings.REDIS_URL)}
        if not await redis_available():
            comp.status = HealthStatus.DEGRADED
            comp.message = "Redis unavailable, using in-process cache"
        else:
            comp.message = "Redis available"

    return await _timed(ComponentHealth(name="cache"), probe)


async def check_prediction_service(services) -> ComponentHealth:
    async def probe(comp: ComponentHealth):
        comp.details = {"url": services.prediction.base_url}
        if await services.prediction.ping():
            comp.message = "Prediction service reachable"
        else:
            comp.status = HealthStatus.DEGRADED
            comp.message = "Prediction service unreachable"

    return await _timed(ComponentHealth(name="prediction_service"), probe)


async def check_weather(services) -> ComponentHealth:
    async def probe(comp: ComponentHealth):
        comp.details = services.weather.status()
        if services.weather.configured or services.weather.simulation:
            comp.message = f"Primary source: {comp.details['primary']}"
        else:
            comp.status = HealthStatus.DEGRADED
            comp.message = "No weather source configured"

    return await _timed(ComponentHealth(name="weather"), probe)


async def check_dispatcher(services) -> ComponentHealth:
    async def probe(comp: ComponentHealth):
        comp.details = services.dispatcher.status()
        if not settings.ENABLE_BACKGROUND_JOBS:
            comp.message = "Background refresh disabled"
        elif not comp.details["running"]:
            comp.status = HealthStatus.UNHEALTHY
            comp.message = "Update dispatcher is not running"
        else:
            comp.message = f"Generation {comp.details['generation']}"

    return await _timed(ComponentHealth(name="dispatcher"), probe)


async def run_health_check(services) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    checks = [
        check_database(services),
        check_cache(),
        check_prediction_service(services),
        check_weather(services),
        check_dispatcher(services),
    ]
    for coro in checks:
        report.components.append(await coro)

    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report
