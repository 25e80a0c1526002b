"""
Generic resource client.

One instance per entity type. Reads go through a private TTL cache, every
call goes through the retry policy, and mutations invalidate the
resource's cache namespace before they are dispatched and again once
they complete. A read that overlaps an invalidation is returned but not
cached.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Generic, List, Mapping, Optional, Sequence, Type, TypeVar

import pydantic

from shared.errors import RequestCancelledError, ServiceError
from shared.logging import get_logger
from shared.metrics import ClientMetrics, MetricsCollector, get_metrics_collector
from shared.retry import RetryConfig, retry_async
from ..caching.query_cache import stable_serialize
from ..caching.ttl_cache import TTLCache
from .models import CacheConfig, EntityId, Envelope, RequestDescriptor, RequestOptions
from .transport import TransportAdapter, encode_json


E = TypeVar("E")
C = TypeVar("C")
U = TypeVar("U")


class ResourceClient(Generic[E, C, U]):
    """Client for one REST resource.

    Type parameters are the entity, the create payload and the update
    payload. When ``entity_model`` is given, response data is parsed into
    that pydantic model before it is cached or returned.
    """

    def __init__(self,
                 resource_name: str,
                 transport: TransportAdapter,
                 cache_config: Optional[CacheConfig] = None,
                 base_path: Optional[str] = None,
                 entity_model: Optional[Type[E]] = None,
                 metrics: Optional[MetricsCollector] = None,
                 cache: Optional[TTLCache] = None,
                 health_path: Optional[str] = None,
                 max_retries: int = 3,
                 retry_base_delay: float = 1.0,
                 sleep: Optional[Callable[[float], Awaitable[Any]]] = None):
        self.resource_name = resource_name
        self.transport = transport
        self.cache_config = cache_config or CacheConfig()
        self.base_path = "/" + (base_path or resource_name).strip("/")
        self.entity_model = entity_model
        self.health_path = health_path
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.cache: TTLCache = cache if cache is not None else TTLCache(max_size=self.cache_config.max_size)
        self.collector = metrics or get_metrics_collector("resource_access")
        self._metrics = ClientMetrics()
        self._sleep = sleep or asyncio.sleep
        self._generation = 0
        self.logger = get_logger(f"resource_access.client.{resource_name}")

    # Cache helpers

    @property
    def namespace(self) -> str:
        return f"{self.resource_name}:"

    def cache_key(self, operation: str, params: Any = None) -> str:
        suffix = stable_serialize(params) if params is not None else ""
        return f"{self.resource_name}:{operation}:{suffix}"

    def _detail_key(self, entity_id: EntityId) -> str:
        return f"{self.resource_name}:findById:{entity_id}"

    def invalidate(self, entity_id: Optional[EntityId] = None) -> None:
        """Drop the whole namespace, and the detail entry for ``entity_id``."""
        self._generation += 1
        removed = self.cache.delete_prefix(self.namespace)
        if entity_id is not None:
            self.cache.delete(self._detail_key(entity_id))
        self.logger.debug("Invalidated resource cache", removed=removed, entity_id=entity_id)

    def _path(self, suffix: str = "") -> str:
        return f"{self.base_path}{suffix}"

    # Response parsing

    def _parse_entity(self, item: Any) -> Any:
        if self.entity_model is None or item is None:
            return item
        if isinstance(item, self.entity_model):
            return item
        return self.entity_model.model_validate(item)

    def _parse(self, envelope: Envelope[Any], many: bool) -> Envelope[Any]:
        if self.entity_model is None or envelope.data is None:
            return envelope
        try:
            if many and isinstance(envelope.data, list):
                data = [self._parse_entity(item) for item in envelope.data]
            elif many:
                return envelope
            else:
                data = self._parse_entity(envelope.data)
        except pydantic.ValidationError as exc:
            self.logger.error("Response did not match entity model", error=str(exc))
            raise ServiceError(
                f"Invalid {self.resource_name} payload in response",
                code="INVALID_RESPONSE",
                details={"resource": self.resource_name}
            ) from exc
        return envelope.model_copy(update={"data": data})

    # Core request

    async def _request(self,
                       operation: str,
                       descriptor: RequestDescriptor,
                       options: Optional[RequestOptions] = None,
                       cache_key: Optional[str] = None,
                       many: bool = False) -> Envelope[Any]:
        opts = options or RequestOptions()
        cache_enabled = self.cache_config.enabled if opts.cache_enabled is None else opts.cache_enabled
        cache_ttl = self.cache_config.ttl if opts.cache_ttl is None else opts.cache_ttl
        use_cache = cache_key is not None and cache_enabled
        max_retries = self.max_retries if opts.max_retries is None else opts.max_retries
        retry_base_delay = self.retry_base_delay if opts.retry_base_delay is None else opts.retry_base_delay
        token = opts.cancellation_token
        generation = self._generation

        if use_cache and not opts.skip_cache and not opts.force_fresh:
            cached = self.cache.get(cache_key)
            hit = cached is not None
            self._metrics.record_cache_lookup(hit)
            self.collector.record_cache_lookup(self.resource_name, hit)
            if hit:
                self.logger.debug("Cache hit", operation=operation, key=cache_key)
                return cached

        async def attempt(index: int) -> Envelope[Any]:
            if token is not None:
                token.raise_if_cancelled()
            if index > 0:
                self.collector.record_retry(self.resource_name)

            start = time.perf_counter()
            try:
                envelope = await self.transport.request(descriptor, timeout=opts.timeout)
            except ServiceError:
                self._record_attempt(descriptor.method, start, success=False)
                raise
            self._record_attempt(descriptor.method, start, success=True)
            return envelope

        def should_retry(exc: BaseException) -> bool:
            if not isinstance(exc, ServiceError) or isinstance(exc, RequestCancelledError):
                return False
            if token is not None and token.cancelled:
                return False
            if exc.code == "INVALID_RESPONSE":
                return False
            return not exc.is_client_error

        envelope = await retry_async(
            attempt,
            RetryConfig.from_retries(max_retries, retry_base_delay),
            should_retry=should_retry,
            sleep=token.sleep if token is not None else self._sleep,
            name=f"{self.resource_name}.{operation}"
        )

        if token is not None:
            token.raise_if_cancelled()

        envelope = self._parse(envelope, many)
        if use_cache and envelope.success:
            if generation == self._generation:
                self.cache.set(cache_key, envelope, cache_ttl)
            else:
                self.logger.debug("Cache invalidated while in flight", operation=operation, key=cache_key)
        return envelope

    def _record_attempt(self, method: str, start: float, success: bool) -> None:
        duration = time.perf_counter() - start
        self._metrics.record_response(duration * 1000, success=success)
        self.collector.record_request(
            self.resource_name,
            method.upper(),
            "success" if success else "error",
            duration
        )

    # Reads

    async def find_many(self,
                        params: Optional[Mapping[str, Any]] = None,
                        options: Optional[RequestOptions] = None) -> Envelope[List[E]]:
        return await self._request(
            "findMany",
            RequestDescriptor("GET", self._path(), params=params),
            options,
            cache_key=self.cache_key("findMany", params),
            many=True
        )

    async def find_by_id(self, entity_id: EntityId, options: Optional[RequestOptions] = None) -> Envelope[E]:
        return await self._request(
            "findById",
            RequestDescriptor("GET", self._path(f"/{entity_id}")),
            options,
            cache_key=self._detail_key(entity_id)
        )

    # Mutations

    async def _mutate(self,
                      operation: str,
                      descriptor: RequestDescriptor,
                      options: Optional[RequestOptions],
                      entity_ids: Sequence[EntityId] = (),
                      many: bool = False) -> Envelope[Any]:
        """Dispatch a write, invalidating the namespace before and after it."""
        self._invalidate_all(entity_ids)
        try:
            return await self._request(operation, descriptor, options, many=many)
        finally:
            self._invalidate_all(entity_ids)

    def _invalidate_all(self, entity_ids: Sequence[EntityId]) -> None:
        self.invalidate()
        for entity_id in entity_ids:
            self.cache.delete(self._detail_key(entity_id))

    async def create(self, data: C, options: Optional[RequestOptions] = None) -> Envelope[E]:
        return await self._mutate("create", RequestDescriptor("POST", self._path(), body=data), options)

    async def update(self, entity_id: EntityId, data: U, options: Optional[RequestOptions] = None) -> Envelope[E]:
        return await self._mutate(
            "update",
            RequestDescriptor("PUT", self._path(f"/{entity_id}"), body=data),
            options,
            entity_ids=[entity_id]
        )

    async def delete(self, entity_id: EntityId, options: Optional[RequestOptions] = None) -> Envelope[None]:
        return await self._mutate(
            "delete", RequestDescriptor("DELETE", self._path(f"/{entity_id}")), options, entity_ids=[entity_id]
        )

    async def bulk_create(self, items: Sequence[C], options: Optional[RequestOptions] = None) -> Envelope[List[E]]:
        return await self._mutate(
            "bulkCreate",
            RequestDescriptor("POST", self._path("/bulk"), body=list(items)),
            options,
            many=True
        )

    async def bulk_update(self,
                          updates: Mapping[EntityId, U],
                          options: Optional[RequestOptions] = None) -> Envelope[List[E]]:
        body = [{"id": entity_id, "data": encode_json(data)} for entity_id, data in updates.items()]
        return await self._mutate(
            "bulkUpdate",
            RequestDescriptor("PUT", self._path("/bulk"), body=body),
            options,
            entity_ids=list(updates),
            many=True
        )

    async def bulk_delete(self, ids: Sequence[EntityId], options: Optional[RequestOptions] = None) -> Envelope[None]:
        return await self._mutate(
            "bulkDelete",
            RequestDescriptor("DELETE", self._path("/bulk"), body={"ids": list(ids)}),
            options,
            entity_ids=list(ids)
        )

    async def transport_call(self,
                             operation: str,
                             descriptor: RequestDescriptor,
                             options: Optional[RequestOptions] = None) -> Envelope[Any]:
        """Uncached, unparsed call through the retry policy and metrics."""
        return await self._request(operation, descriptor, options)

    # Introspection

    def clear_cache(self) -> None:
        self.cache.clear()

    def get_cache_stats(self) -> dict:
        return self.cache.stats()

    def get_metrics(self) -> ClientMetrics:
        return self._metrics.snapshot()

    def reset_metrics(self) -> None:
        self._metrics.reset()

    async def health_check(self) -> bool:
        """Ping ``health_path`` if configured; otherwise report local liveness."""
        if self.health_path is None:
            return True
        envelope = await self._request(
            "health",
            RequestDescriptor("GET", self.health_path),
            RequestOptions(max_retries=0, cache_enabled=False)
        )
        return envelope.success

    def __repr__(self) -> str:
        return f"<ResourceClient {self.resource_name} path={self.base_path}>"
