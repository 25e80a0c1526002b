"""
Shared metrics for the print-ops resource access layer.

Two views of the same activity are kept: Prometheus series for scraping
(``MetricsCollector``) and an in-process ``ClientMetrics`` snapshot per
resource client, which the service registry aggregates.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from prometheus_client import Counter, Histogram, CollectorRegistry


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ClientMetrics:
    """Running counters for one resource client."""

    request_count: int = 0
    error_count: int = 0
    error_rate: float = 0.0
    average_response_time_ms: float = 0.0
    cache_hits: int = 0
    cache_checks: int = 0
    cache_hit_rate: float = 0.0
    last_reset: datetime = field(default_factory=_utcnow)

    def record_response(self, duration_ms: float, success: bool = True) -> None:
        """Fold one finished attempt into the rolling mean."""
        self.request_count += 1
        if not success:
            self.error_count += 1
        n = self.request_count
        self.average_response_time_ms = (self.average_response_time_ms * (n - 1) + duration_ms) / n
        self.error_rate = self.error_count / n

    def record_cache_lookup(self, hit: bool) -> None:
        self.cache_checks += 1
        if hit:
            self.cache_hits += 1
        self.cache_hit_rate = self.cache_hits / self.cache_checks

    def reset(self) -> None:
        self.request_count = 0
        self.error_count = 0
        self.error_rate = 0.0
        self.average_response_time_ms = 0.0
        self.cache_hits = 0
        self.cache_checks = 0
        self.cache_hit_rate = 0.0
        self.last_reset = _utcnow()

    def snapshot(self) -> "ClientMetrics":
        return ClientMetrics(**asdict(self))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class MetricsCollector:
    """Prometheus series for resource clients.

    Metrics are only exported when a registry is supplied; with the default
    ``registry=None`` the series still count but are not registered, so
    several collectors can coexist in one process (and in tests).
    """

    def __init__(self, component: str, registry: Optional[CollectorRegistry] = None):
        self.component = component
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up resource client metrics."""
        self._metrics["resource_requests_total"] = Counter(
            "resource_requests_total",
            "Total resource client requests",
            ["resource", "method", "outcome"],
            registry=self.registry
        )

        self._metrics["resource_request_duration_seconds"] = Histogram(
            "resource_request_duration_seconds",
            "Resource client request duration in seconds",
            ["resource", "method"],
            registry=self.registry
        )

        self._metrics["resource_cache_lookups_total"] = Counter(
            "resource_cache_lookups_total",
            "Total resource cache lookups",
            ["resource", "result"],
            registry=self.registry
        )

        self._metrics["resource_retries_total"] = Counter(
            "resource_retries_total",
            "Total resource client retries",
            ["resource"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total registry health checks",
            ["status"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_request(self, resource: str, method: str, outcome: str, duration: float):
        """Record one finished transport attempt."""
        self._metrics["resource_requests_total"].labels(
            resource=resource,
            method=method,
            outcome=outcome
        ).inc()

        self._metrics["resource_request_duration_seconds"].labels(
            resource=resource,
            method=method
        ).observe(duration)

    def record_cache_lookup(self, resource: str, hit: bool):
        self._metrics["resource_cache_lookups_total"].labels(
            resource=resource,
            result="hit" if hit else "miss"
        ).inc()

    def record_retry(self, resource: str):
        self._metrics["resource_retries_total"].labels(resource=resource).inc()

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()


def get_metrics_collector(component: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a component."""
    return MetricsCollector(component, registry)
