"""
Health check aggregation — deep health probe for the SOS backend.

Checks:
    • Alert storage (database round-trip, or in-memory wiring)
    • SMS channel mode (live carrier vs demo)
    • Disk space for logs

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
    - Monitoring dashboards
"""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from backend.app.alerts.channels.base import NotificationChannel
from backend.app.core.config import Settings
from backend.app.core.database import ping

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
    version: str
    environment: str
    status: HealthStatus = HealthStatus.HEALTHY
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


# Track application start time
_start_time = time.monotonic()


async def check_storage(engine: Optional[AsyncEngine], config: Settings) -> ComponentHealth:
    """Database round-trip when SQL-backed; in-memory wiring is always up."""
    comp = ComponentHealth(name="alert_storage")
    start = time.monotonic()
    if engine is None:
        comp.message = "In-memory store"
        comp.details = {"backend": "memory"}
    else:
        try:
            await ping(engine)
            comp.message = "Database reachable"
        except Exception as e:
            logger.error("Database health check failed: %s", e)
            comp.status = HealthStatus.UNHEALTHY
            comp.message = str(e)
        comp.details = {"url": config.DATABASE_URL.split("@")[-1]}
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_sms_channel(channel: NotificationChannel, config: Settings) -> ComponentHealth:
    """Demo mode is fine in development but degrades a production deployment."""
    comp = ComponentHealth(name="sms_channel")
    start = time.monotonic()
    comp.details = {"channel": channel.name, "live": channel.is_live}
    if channel.is_live:
        comp.message = "Live SMS delivery"
    else:
        comp.message = "Demo mode: SOS messages are logged, not delivered"
        if config.is_production:
            comp.status = HealthStatus.DEGRADED
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_disk_space() -> ComponentHealth:
    """Check available disk space."""
    comp = ComponentHealth(name="disk_space")
    start = time.monotonic()
    try:
        total, used, free = shutil.disk_usage(".")
        free_gb = free / (1024 ** 3)
        comp.details = {
            "total_gb": round(total / (1024 ** 3), 1),
            "free_gb": round(free_gb, 1),
            "used_pct": round((used / total) * 100, 1),
        }
        if free_gb < 1.0:
            comp.status = HealthStatus.DEGRADED
            comp.message = f"Low disk space: {free_gb:.1f} GB free"
        else:
            comp.message = f"{free_gb:.1f} GB free"
    except OSError as e:
        comp.status = HealthStatus.DEGRADED
        comp.message = str(e)
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def run_health_check(
    config: Settings,
    channel: NotificationChannel,
    engine: Optional[AsyncEngine] = None,
) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        version=config.APP_VERSION,
        environment=config.ENVIRONMENT,
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    report.components.append(await check_storage(engine, config))
    report.components.append(await check_sms_channel(channel, config))
    report.components.append(await check_disk_space())

    # Aggregate status
    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report
