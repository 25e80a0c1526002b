"""
Data contracts shared by the transport adapter and resource clients.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Mapping, Optional, Protocol, Tuple, TypeVar, Union, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from ..cancellation import CancellationToken


T = TypeVar("T")

EntityId = Union[int, str]


@runtime_checkable
class Identifiable(Protocol):
    """Entities that expose their own identifier."""

    @property
    def id(self) -> EntityId: ...


def resolve_id(entity: Any) -> Optional[EntityId]:
    """Identifier of an entity object or a plain JSON mapping."""
    if isinstance(entity, Identifiable):
        return entity.id
    if isinstance(entity, Mapping):
        return entity.get("id")
    return None


class PageMeta(BaseModel):
    """Pagination block of a list response."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    total: Optional[int] = None
    page: Optional[int] = None
    limit: Optional[int] = None
    has_more: Optional[bool] = Field(default=None, alias="hasMore")


class Envelope(BaseModel, Generic[T]):
    """Normalized response wrapper; never mutated once built."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    success: bool
    data: Optional[T] = None
    message: Optional[str] = None
    errors: Optional[Dict[str, List[str]]] = None
    meta: Optional[PageMeta] = None

    @classmethod
    def looks_like(cls, body: Any) -> bool:
        """True when a server body already has the envelope shape."""
        return isinstance(body, Mapping) and "success" in body and "data" in body


@dataclass
class CacheConfig:
    ttl: float = 300.0
    max_size: int = 1000
    enabled: bool = True


@dataclass
class RequestOptions:
    """Per-call knobs; ``None`` falls back to the client's defaults."""

    cache_enabled: Optional[bool] = None
    cache_ttl: Optional[float] = None
    skip_cache: bool = False
    force_fresh: bool = False
    timeout: Optional[float] = None
    max_retries: Optional[int] = None
    retry_base_delay: Optional[float] = None
    cancellation_token: Optional[CancellationToken] = None


FileSpec = Union[bytes, Tuple[str, bytes], Tuple[str, bytes, str]]


@dataclass
class FormData:
    """Multipart body: plain fields plus named files."""

    fields: Dict[str, Any] = field(default_factory=dict)
    files: Dict[str, FileSpec] = field(default_factory=dict)


@dataclass
class RequestDescriptor:
    method: str
    path: str
    params: Optional[Mapping[str, Any]] = None
    body: Any = None


@dataclass
class DownloadedFile:
    filename: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)
