"""
CRUD hook factory.

Derives list/detail/create/update/delete/upload/download operations for one
entity type and keeps the query cache consistent with the resource client's
TTL cache:

- reads are keyed ``(root_key, operation, params)`` in the query cache and
  fall through to the resource client on a miss or a stale entry;
- a successful mutation seeds the detail entry it knows about and marks the
  rest of the root-key namespace (plus related keys) stale.
- query cache entries hold their own copy of the data, so callers that
  mutate a result never reach into the client's TTL cache.
"""

import copy
from typing import Any, Callable, Generic, Iterable, List, Mapping, Optional, Type, TypeVar

from shared.errors import ServiceError, get_error_message
from shared.logging import get_logger
from ..adapters.models import CacheConfig, DownloadedFile, EntityId, FormData, RequestDescriptor, RequestOptions, resolve_id
from ..adapters.resource_client import ResourceClient
from ..adapters.transport import TransportAdapter
from ..caching.query_cache import QueryCache, QueryKey, make_query_key
from ..validation import Validator
from .notifications import CrudMessages, LoggingNotifier, Notifier


E = TypeVar("E")
C = TypeVar("C")
U = TypeVar("U")

DEFAULT_STALE_TIME = 300.0


class CrudHooks(Generic[E, C, U]):
    """Operation set for one entity type."""

    def __init__(self,
                 root_key: str,
                 base_path: str,
                 *,
                 client: Optional[ResourceClient[E, C, U]] = None,
                 transport: Optional[TransportAdapter] = None,
                 query_cache: Optional[QueryCache] = None,
                 items_extractor: Optional[Callable[[Any], List[E]]] = None,
                 items_field: str = "items",
                 id_extractor: Optional[Callable[[E], Optional[EntityId]]] = None,
                 messages: Optional[CrudMessages] = None,
                 notifier: Optional[Notifier] = None,
                 related_keys: Iterable[str] = (),
                 validator: Optional[Validator] = None,
                 update_validator: Optional[Validator] = None,
                 stale_time: float = DEFAULT_STALE_TIME,
                 entity_model: Optional[Type[E]] = None,
                 cache_config: Optional[CacheConfig] = None):
        if client is None:
            if transport is None:
                raise ValueError("CrudHooks needs either a client or a transport")
            client = ResourceClient(
                root_key,
                transport,
                cache_config=cache_config,
                base_path=base_path,
                entity_model=entity_model
            )
        self.root_key = root_key
        self.client = client
        self.query_cache = query_cache if query_cache is not None else QueryCache()
        self.items_extractor = items_extractor
        self.items_field = items_field
        self.id_extractor = id_extractor or resolve_id
        self.messages = messages or CrudMessages()
        self.notifier = notifier or LoggingNotifier()
        self.related_keys = [key for key in related_keys if key != root_key]
        self.validator = validator
        self.update_validator = update_validator
        self.stale_time = stale_time
        self.logger = get_logger(f"resource_access.crud.{root_key}")

    # Keys

    def list_key(self, params: Optional[Mapping[str, Any]] = None) -> QueryKey:
        return make_query_key(self.root_key, "list", dict(params or {}))

    def detail_key(self, entity_id: EntityId) -> QueryKey:
        return make_query_key(self.root_key, "detail", entity_id)

    def extract_items(self, data: Any) -> List[E]:
        if data is None:
            return []
        if self.items_extractor is not None:
            return self.items_extractor(data)
        if isinstance(data, list):
            return data
        if isinstance(data, Mapping):
            return list(data.get(self.items_field) or [])
        return []

    def invalidate(self, exclude: Iterable[QueryKey] = ()) -> int:
        """Mark this root key and its related keys stale."""
        return self.query_cache.invalidate([self.root_key, *self.related_keys], exclude=exclude)

    # Queries

    async def list(self, params: Optional[Mapping[str, Any]] = None) -> Any:
        async def fetch(refresh: bool) -> Any:
            envelope = await self.client.find_many(params, RequestOptions(force_fresh=refresh))
            return copy.deepcopy(envelope.data)

        return await self.query_cache.fetch(self.list_key(params), fetch, self.stale_time)

    async def list_items(self, params: Optional[Mapping[str, Any]] = None) -> List[E]:
        return self.extract_items(await self.list(params))

    async def detail(self, entity_id: Optional[EntityId], enabled: bool = True) -> Optional[E]:
        if not enabled or entity_id is None:
            return None

        async def fetch(refresh: bool) -> Any:
            envelope = await self.client.find_by_id(entity_id, RequestOptions(force_fresh=refresh))
            return copy.deepcopy(envelope.data)

        return await self.query_cache.fetch(self.detail_key(entity_id), fetch, self.stale_time)

    # Mutations

    def _validate(self, data: Any, validator: Optional[Validator]) -> Any:
        if validator is None:
            return data
        result = validator(data)
        if result.ok:
            return result.value
        error = result.to_error()
        self.notifier.error(self.messages.invalid_title, error.message)
        self.logger.info("Rejected invalid payload", errors=error.errors)
        raise error

    def _fail(self, error: ServiceError, fallback: str) -> None:
        self.logger.warning("Mutation failed", code=error.code, status=error.status, error=error.message)
        self.notifier.error(self.messages.error_title, get_error_message(error, fallback))

    async def create(self, data: C) -> E:
        payload = self._validate(data, self.validator)
        try:
            envelope = await self.client.create(payload)
        except ServiceError as exc:
            self._fail(exc, self.messages.create_error)
            raise

        created = envelope.data
        seeded: List[QueryKey] = []
        entity_id = self.id_extractor(created) if created is not None else None
        if entity_id is not None:
            key = self.detail_key(entity_id)
            self.query_cache.set_data(key, created)
            seeded.append(key)
        self.invalidate(exclude=seeded)

        self.notifier.success(self.messages.success_title, self.messages.create_success)
        return created

    async def update(self, entity_id: EntityId, data: U) -> E:
        payload = self._validate(data, self.update_validator)
        try:
            envelope = await self.client.update(entity_id, payload)
        except ServiceError as exc:
            self._fail(exc, self.messages.update_error)
            raise

        updated = envelope.data
        key = self.detail_key(entity_id)
        if updated is not None:
            self.query_cache.set_data(key, updated)
            self.invalidate(exclude=[key])
        else:
            self.query_cache.remove(key)
            self.invalidate()

        self.notifier.success(self.messages.success_title, self.messages.update_success)
        return updated

    async def delete(self, entity_id: EntityId) -> None:
        try:
            await self.client.delete(entity_id)
        except ServiceError as exc:
            self._fail(exc, self.messages.delete_error)
            raise

        self.query_cache.remove(self.detail_key(entity_id))
        self.invalidate()
        self.notifier.success(self.messages.success_title, self.messages.delete_success)

    async def upload(self, form_data: FormData, sub_path: str = "/upload") -> Any:
        try:
            envelope = await self.client.transport_call(
                "upload",
                RequestDescriptor("POST", f"{self.client.base_path}{sub_path}", body=form_data),
                RequestOptions(max_retries=0)
            )
        except ServiceError as exc:
            self._fail(exc, self.messages.upload_error)
            raise

        self.client.invalidate()
        self.invalidate()
        self.notifier.success(self.messages.success_title, self.messages.upload_success)
        return envelope.data

    async def download(self, sub_path: str = "/download", filename: Optional[str] = None) -> DownloadedFile:
        try:
            downloaded = await self.client.transport.download(f"{self.client.base_path}{sub_path}", filename=filename)
        except ServiceError as exc:
            self._fail(exc, self.messages.download_error)
            raise

        self.notifier.success(self.messages.success_title, self.messages.download_success)
        return downloaded


def create_crud_hooks(root_key: str, base_path: str, **kwargs) -> CrudHooks[Any, Any, Any]:
    """Functional spelling of ``CrudHooks(...)``."""
    return CrudHooks(root_key, base_path, **kwargs)
