"""
Generic resource-access layer for the print-ops dashboard.

Every page-level data loader is built on four pieces:

- a TTL cache owned by each resource client,
- a resource client with retry/backoff, metrics and bearer auth,
- a CRUD hook factory that keeps a query cache consistent with it,
- a standalone fetch primitive with last-issued-wins cancellation.

A process-wide registry tracks the clients for health and metrics.
"""

from .app.adapters import (
    CacheConfig,
    Envelope,
    FormData,
    RequestOptions,
    ResourceClient,
    TransportAdapter,
)
from .app.auth import AuthStore
from .app.caching import QueryCache, TTLCache
from .app.cancellation import CancellationToken
from .app.hooks import AsyncFetch, CrudHooks, CrudMessages
from .app.main import AccessLayer, create_access_layer
from .app.registry import ServiceRegistry, get_service_registry
from .app.validation import Result, model_validator

__version__ = "1.0.0"

__all__ = [
    "AccessLayer",
    "AsyncFetch",
    "AuthStore",
    "CacheConfig",
    "CancellationToken",
    "CrudHooks",
    "CrudMessages",
    "Envelope",
    "FormData",
    "QueryCache",
    "RequestOptions",
    "ResourceClient",
    "Result",
    "ServiceRegistry",
    "TTLCache",
    "TransportAdapter",
    "create_access_layer",
    "get_service_registry",
    "model_validator",
]
