"""
Composition root for the resource access core.

Reads configuration once, configures logging and wires a transport, a
shared query cache and the process registry so pages can ask for typed
clients and CRUD hooks by name.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from shared.config import ServiceConfig, get_config
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from .adapters.models import CacheConfig
from .adapters.resource_client import ResourceClient
from .adapters.transport import TransportAdapter, UnauthenticatedCallback
from .caching.query_cache import QueryCache
from .hooks.crud import CrudHooks
from .registry import ServiceRegistry, get_service_registry


@dataclass
class AccessLayer:
    config: ServiceConfig
    transport: TransportAdapter
    registry: ServiceRegistry
    metrics: MetricsCollector
    query_cache: QueryCache = field(default_factory=QueryCache)

    def default_cache_config(self) -> CacheConfig:
        return CacheConfig(
            ttl=self.config.cache_ttl,
            max_size=self.config.cache_max_size,
            enabled=self.config.cache_enabled
        )

    def resource(self, name: str, **kwargs: Any) -> ResourceClient:
        """Return the registered client for ``name``, creating it if needed."""
        if name in self.registry.get_registered_services():
            return self.registry.get(name)
        kwargs.setdefault("cache_config", self.default_cache_config())
        kwargs.setdefault("metrics", self.metrics)
        kwargs.setdefault("max_retries", self.config.max_retries)
        kwargs.setdefault("retry_base_delay", self.config.retry_base_delay)
        client = ResourceClient(name, self.transport, **kwargs)
        self.registry.register(name, client)
        return client

    def crud(self, root_key: str, base_path: Optional[str] = None, **kwargs: Any) -> CrudHooks:
        """CRUD hooks backed by the registered client for ``root_key``."""
        client_kwargs = {
            key: kwargs.pop(key)
            for key in ("entity_model", "cache_config", "health_path")
            if key in kwargs
        }
        client = self.resource(root_key, base_path=base_path, **client_kwargs)
        kwargs.setdefault("query_cache", self.query_cache)
        return CrudHooks(root_key, client.base_path, client=client, **kwargs)


def create_access_layer(service_name: str = "dashboard",
                        config: Optional[ServiceConfig] = None,
                        on_unauthenticated: Optional[UnauthenticatedCallback] = None,
                        registry: Optional[ServiceRegistry] = None,
                        **transport_kwargs: Any) -> AccessLayer:
    config = config or get_config(service_name)
    configure_logging(service_name, config.log_level, json_logs=config.env != "local")
    logger = get_logger(f"{service_name}.access_layer")

    transport = TransportAdapter.from_config(config, on_unauthenticated=on_unauthenticated, **transport_kwargs)
    registry = registry or get_service_registry(health_check_timeout=config.health_check_timeout)
    layer = AccessLayer(
        config=config,
        transport=transport,
        registry=registry,
        metrics=get_metrics_collector(service_name)
    )
    logger.info(
        "Access layer ready",
        base_url=config.api_base_url,
        cache_ttl=config.cache_ttl,
        cache_max_size=config.cache_max_size
    )
    return layer
