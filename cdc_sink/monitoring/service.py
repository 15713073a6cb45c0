"""
Monitoring service for the CDC event sink.

This module provides:
- The Prometheus scrape endpoint
- Health and readiness endpoints
- Pluggable async health checks
"""

import logging
import platform
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, Callable, Awaitable
from dataclasses import dataclass, field

import psutil
from aiohttp import web

from ..config import MonitoringConfig
from .metrics import MetricsRegistry

logger = logging.getLogger(__name__)

HealthCheck = Callable[[], Awaitable[Dict[str, Any]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class HealthStatus:
    """Health check status container."""
    status: str  # "healthy", "unhealthy"
    timestamp: datetime = field(default_factory=_utcnow)
    checks: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status,
            "timestamp": self.timestamp.isoformat(),
            "checks": self.checks,
        }


class HealthChecker:
    """Runs registered health checks."""

    def __init__(self):
        self.checks: List[HealthCheck] = []
        self.readiness_checks: List[HealthCheck] = []

    def add_check(self, check_func: HealthCheck, readiness: bool = False) -> None:
        """Add a health check; readiness checks only gate /ready."""
        if readiness:
            self.readiness_checks.append(check_func)
        else:
            self.checks.append(check_func)

    async def run_health_checks(self, include_readiness: bool = False) -> HealthStatus:
        """Run all health checks."""
        checks = list(self.checks)
        if include_readiness:
            checks.extend(self.readiness_checks)

        checks_results = {}
        overall_status = "healthy"

        for check_func in checks:
            check_name = getattr(check_func, '__name__', 'unknown_check')
            try:
                result = await check_func()
            except Exception as e:
                logger.error(f"Health check {check_name} failed: {e}")
                result = {"status": "unhealthy", "error": str(e)}

            checks_results[check_name] = result
            if result.get("status") != "healthy":
                overall_status = "unhealthy"

        checks_results["system"] = {
            "status": "healthy",
            "platform": platform.platform(),
            "python_version": platform.python_version(),
            "cpu_count": psutil.cpu_count(),
            "memory_total": psutil.virtual_memory().total,
        }

        return HealthStatus(status=overall_status, checks=checks_results)


class MonitoringService:
    """Serves /metrics, /health and /ready over HTTP."""

    def __init__(
        self,
        config: MonitoringConfig,
        metrics: MetricsRegistry,
        health_checker: Optional[HealthChecker] = None,
    ):
        self.config = config
        self.metrics = metrics
        self.health_checker = health_checker or HealthChecker()

        self.app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    def create_app(self) -> web.Application:
        """Build the aiohttp application with monitoring routes."""
        app = web.Application()
        app.router.add_get('/metrics', self.metrics_handler)
        app.router.add_get('/health', self.health_check_handler)
        app.router.add_get('/ready', self.readiness_handler)
        return app

    async def start(self) -> None:
        """Start the monitoring HTTP server."""
        if not self.config.enabled:
            logger.info("Monitoring disabled in configuration")
            return

        self.app = self.create_app()
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, self.config.host, self.config.metrics_port)
        await self.site.start()

        logger.info(f"Prometheus metrics server listening on port {self.config.metrics_port}")

    async def stop(self) -> None:
        """Stop the monitoring HTTP server."""
        if self.site:
            await self.site.stop()
            self.site = None

        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        logger.info("Monitoring service stopped")

    async def metrics_handler(self, request: web.Request) -> web.Response:
        """Prometheus scrape endpoint."""
        try:
            if self.config.collect_system_metrics:
                self.metrics.collect_system_metrics()

            return web.Response(
                body=self.metrics.get_metrics_text().encode('utf-8'),
                headers={'Content-Type': self.metrics.content_type},
            )
        except Exception as e:
            logger.error(f"Metrics collection failed: {e}")
            return web.Response(status=500, text=f"Metrics error: {e}")

    async def health_check_handler(self, request: web.Request) -> web.Response:
        """Liveness endpoint."""
        health_status = await self.health_checker.run_health_checks()
        return web.json_response(
            health_status.to_dict(),
            status=200 if health_status.healthy else 503,
        )

    async def readiness_handler(self, request: web.Request) -> web.Response:
        """Readiness endpoint; also requires the consumer to be running."""
        health_status = await self.health_checker.run_health_checks(include_readiness=True)
        return web.json_response(
            health_status.to_dict(),
            status=200 if health_status.healthy else 503,
        )
