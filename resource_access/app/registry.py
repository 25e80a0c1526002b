"""
Process-wide registry of resource clients.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel

from shared.errors import ServiceNotFoundError
from shared.logging import get_logger
from shared.metrics import ClientMetrics, MetricsCollector, get_metrics_collector
from .adapters.resource_client import ResourceClient


HealthProbe = Callable[[], Awaitable[bool]]

DEFAULT_HEALTH_TIMEOUT = 5.0
REGISTRY_VERSION = "1.0.0"


class ProbeStatus(BaseModel):
    status: Literal["up", "down"]
    response_time_ms: float
    last_check: datetime
    error: Optional[str] = None


class HealthStatus(BaseModel):
    status: Literal["healthy", "degraded", "unhealthy"]
    version: str = REGISTRY_VERSION
    timestamp: datetime
    services: Dict[str, ProbeStatus] = {}


class ServiceRegistry:
    """Named resource clients plus the health probes that watch them.

    The registry reads metrics and clears caches through each client's
    public methods; it never touches client internals.
    """

    def __init__(self,
                 health_check_timeout: float = DEFAULT_HEALTH_TIMEOUT,
                 metrics: Optional[MetricsCollector] = None):
        self.health_check_timeout = health_check_timeout
        self._services: Dict[str, ResourceClient] = {}
        self._health_checks: Dict[str, HealthProbe] = {}
        self.metrics = metrics or get_metrics_collector("registry")
        self.logger = get_logger("resource_access.registry")

    def register(self, name: str, client: ResourceClient, health_check: Optional[HealthProbe] = None) -> None:
        if name in self._services:
            self.logger.warning("Replacing registered service", name=name)
        self._services[name] = client
        self._health_checks[name] = health_check or client.health_check
        self.logger.info("Registered service", name=name, resource=client.resource_name)

    def unregister(self, name: str) -> None:
        self._services.pop(name, None)
        self._health_checks.pop(name, None)

    def get(self, name: str) -> ResourceClient:
        client = self._services.get(name)
        if client is None:
            raise ServiceNotFoundError(name)
        return client

    def add_health_check(self, name: str, probe: HealthProbe) -> None:
        """Register a probe for a dependency that is not a resource client."""
        self._health_checks[name] = probe

    def get_registered_services(self) -> List[str]:
        return list(self._services)

    # Caches and metrics

    def clear_all_caches(self) -> None:
        for client in self._services.values():
            client.clear_cache()
        self.logger.info("Cleared all service caches", services=len(self._services))

    def clear_service_cache(self, name: str) -> None:
        client = self._services.get(name)
        if client is not None:
            client.clear_cache()

    def get_all_metrics(self) -> Dict[str, ClientMetrics]:
        return {name: client.get_metrics() for name, client in self._services.items()}

    def get_service_metrics(self, name: str) -> Optional[ClientMetrics]:
        client = self._services.get(name)
        return client.get_metrics() if client is not None else None

    def reset_all_metrics(self) -> None:
        for client in self._services.values():
            client.reset_metrics()

    def get_all_cache_stats(self) -> Dict[str, Dict[str, int]]:
        return {name: client.get_cache_stats() for name, client in self._services.items()}

    # Health

    async def _run_probe(self, name: str, probe: HealthProbe) -> ProbeStatus:
        start = time.perf_counter()
        error: Optional[str] = None
        try:
            healthy = bool(await asyncio.wait_for(probe(), timeout=self.health_check_timeout))
        except asyncio.TimeoutError:
            healthy, error = False, "Health check timeout"
        except Exception as exc:
            healthy, error = False, str(exc) or type(exc).__name__

        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
        if error is not None:
            self.logger.error("Health probe failed", name=name, error=error)
        return ProbeStatus(
            status="up" if healthy else "down",
            response_time_ms=elapsed_ms,
            last_check=datetime.now(timezone.utc),
            error=error
        )

    async def get_health_status(self) -> HealthStatus:
        """Run every probe; one failing probe degrades, more or any error is unhealthy."""
        services: Dict[str, ProbeStatus] = {}
        overall = "healthy"

        for name, probe in list(self._health_checks.items()):
            result = await self._run_probe(name, probe)
            services[name] = result
            if result.status == "up":
                continue
            if result.error is not None or overall != "healthy":
                overall = "unhealthy"
            else:
                overall = "degraded"

        self.metrics.record_health_check(overall)
        return HealthStatus(status=overall, timestamp=datetime.now(timezone.utc), services=services)

    async def shutdown(self) -> None:
        """Clear caches and metrics of every registered client."""
        self.clear_all_caches()
        self.reset_all_metrics()
        self.logger.info("All services shut down")


_registry: Optional[ServiceRegistry] = None


def get_service_registry(**kwargs: Any) -> ServiceRegistry:
    """Return the process-wide registry, creating it on first use."""
    global _registry
    if _registry is None:
        _registry = ServiceRegistry(**kwargs)
    return _registry
