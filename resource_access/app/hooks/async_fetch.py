"""
Standalone fetch-with-cache-and-cancellation primitive.

Used for ad hoc data that is not modeled as a CRUD resource. Two clocks
matter here: ``cache_time`` decides whether a cached value is usable at all,
``stale_time`` decides whether reading it should also trigger a background
refresh (stale-while-revalidate).

Overlapping fetches from one instance are ordered last-issued-wins: each
fetch cancels the previous token and only commits while its own token is
still the active one.
"""

import asyncio
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from shared.errors import RequestCancelledError, ServiceError, get_error_message
from shared.logging import get_logger
from shared.retry import RetryConfig, retry_async
from ..caching.ttl_cache import TTLCache
from ..cancellation import CancellationToken


T = TypeVar("T")

Fetcher = Callable[[CancellationToken], Awaitable[T]]


@dataclass
class FetchState(Generic[T]):
    data: Optional[T] = None
    loading: bool = False
    error: Optional[str] = None
    exception: Optional[ServiceError] = None
    last_fetched_at: Optional[float] = None


def _normalize(exc: BaseException) -> ServiceError:
    if isinstance(exc, ServiceError):
        return exc
    return ServiceError(str(exc) or type(exc).__name__, code="FETCH_ERROR")


class AsyncFetch(Generic[T]):
    """Fetch one async value with caching, retry and cancellation."""

    def __init__(self,
                 fetcher: Fetcher,
                 *,
                 cache_key: Optional[str] = None,
                 cache: Optional[TTLCache] = None,
                 cache_time: float = 300.0,
                 stale_time: float = 1.0,
                 retry_count: int = 3,
                 retry_delay: float = 1.0,
                 initial_data: Optional[T] = None,
                 on_success: Optional[Callable[[T], Any]] = None,
                 on_error: Optional[Callable[[ServiceError], Any]] = None,
                 clock: Callable[[], float] = time.time):
        self._fetcher = fetcher
        self.cache_key = cache_key
        self.cache = cache if cache is not None else TTLCache(clock=clock)
        self.cache_time = cache_time
        self.stale_time = stale_time
        self.retry_count = retry_count
        self.retry_delay = retry_delay
        self.initial_data = initial_data
        self.on_success = on_success
        self.on_error = on_error
        self._clock = clock
        self.state: FetchState[T] = FetchState(data=initial_data)
        self._active_token: Optional[CancellationToken] = None
        self._background: Optional[asyncio.Task] = None
        self.logger = get_logger("resource_access.async_fetch")

    # State helpers

    def _update(self, **changes: Any) -> None:
        self.state = replace(self.state, **changes)

    def _read_cache(self) -> Optional[T]:
        if self.cache_key is None:
            return None
        return self.cache.get(self.cache_key)

    def _write_cache(self, data: T) -> None:
        if self.cache_key is not None:
            self.cache.set(self.cache_key, data, self.cache_time)

    def is_stale(self) -> bool:
        if self.cache_key is None or self.state.last_fetched_at is None:
            return True
        return self._clock() - self.state.last_fetched_at > self.stale_time

    @property
    def in_flight(self) -> bool:
        return self._active_token is not None and not self._active_token.cancelled and self.state.loading

    # Fetching

    async def _run(self) -> None:
        token = CancellationToken()
        previous, self._active_token = self._active_token, token
        if previous is not None:
            previous.cancel("superseded by a newer fetch")

        self._update(loading=True, error=None, exception=None)

        async def attempt(index: int) -> T:
            token.raise_if_cancelled()
            return await self._fetcher(token)

        def should_retry(exc: BaseException) -> bool:
            if token.cancelled or isinstance(exc, RequestCancelledError):
                return False
            return not (isinstance(exc, ServiceError) and exc.is_client_error)

        try:
            data = await retry_async(
                attempt,
                RetryConfig.from_retries(self.retry_count, self.retry_delay),
                should_retry=should_retry,
                sleep=token.sleep,
                name=f"async_fetch.{self.cache_key or 'anonymous'}"
            )
        except Exception as exc:
            # a cancellation raised by the fetcher itself still ends the load
            if token is not self._active_token:
                return
            error = _normalize(exc)
            self.logger.warning("Fetch failed", cache_key=self.cache_key, code=error.code, error=error.message)
            self._update(loading=False, error=get_error_message(error), exception=error)
            if self.on_error is not None:
                self.on_error(error)
            return

        if token is not self._active_token:
            self.logger.debug("Discarding superseded fetch result", cache_key=self.cache_key)
            return

        self._update(data=data, loading=False, error=None, exception=None, last_fetched_at=self._clock())
        self._write_cache(data)
        if self.on_success is not None:
            self.on_success(data)

    def _schedule_background(self) -> None:
        if self._background is not None and not self._background.done():
            return
        self._background = asyncio.create_task(self._run())

    async def load(self) -> FetchState[T]:
        """Read through the cache; a stale hit also refreshes in the background."""
        cached = self._read_cache()
        if cached is not None:
            self._update(data=cached, loading=False, error=None, exception=None)
            if self.is_stale():
                self._schedule_background()
            return self.state

        await self._run()
        return self.state

    async def refetch(self, force: bool = True) -> FetchState[T]:
        if not force:
            return await self.load()
        await self._run()
        return self.state

    async def wait(self) -> FetchState[T]:
        """Wait for a pending background refresh, if any."""
        if self._background is not None:
            await asyncio.shield(self._background)
        return self.state

    # Actions

    def set_data(self, data: T) -> None:
        self._update(data=data, error=None, exception=None)
        self._write_cache(data)

    def set_error(self, error: Union[str, ServiceError]) -> None:
        if isinstance(error, ServiceError):
            self._update(error=get_error_message(error), exception=error, loading=False)
        else:
            self._update(error=error, loading=False)

    def _cancel_pending(self) -> None:
        if self._active_token is not None:
            self._active_token.cancel("disposed")
            self._active_token = None
        if self._background is not None and not self._background.done():
            self._background.cancel()
        self._background = None

    def reset(self) -> None:
        self._cancel_pending()
        if self.cache_key is not None:
            self.cache.delete(self.cache_key)
        self.state = FetchState(data=self.initial_data)

    def dispose(self) -> None:
        """Cancel any in-flight fetch and pending retry wait."""
        self._cancel_pending()
        if self.state.loading:
            self._update(loading=False)

    async def __aenter__(self) -> "AsyncFetch[T]":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.dispose()


def async_fetch(fetcher: Fetcher, **options: Any) -> AsyncFetch[Any]:
    """Build an ``AsyncFetch``; options mirror the constructor keywords."""
    return AsyncFetch(fetcher, **options)
