"""
Adapters package for the resource access core.

Contains the HTTP transport and the generic resource client built on it.
These adapters encapsulate:

- Base URLs and request shapes
- Bearer credential injection and 401 handling
- Retry policies and per-client metrics
- Error handling that maps to shared errors

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .models import (
    CacheConfig,
    DownloadedFile,
    EntityId,
    Envelope,
    FormData,
    Identifiable,
    PageMeta,
    RequestDescriptor,
    RequestOptions,
    resolve_id,
)
from .transport import TransportAdapter, serialize_params
from .resource_client import ResourceClient

__all__ = [
    "CacheConfig",
    "DownloadedFile",
    "EntityId",
    "Envelope",
    "FormData",
    "Identifiable",
    "PageMeta",
    "RequestDescriptor",
    "RequestOptions",
    "resolve_id",
    "TransportAdapter",
    "serialize_params",
    "ResourceClient",
]
