"""
Data hooks consumed by dashboard pages.
"""

from .async_fetch import AsyncFetch, FetchState, async_fetch
from .crud import CrudHooks, create_crud_hooks
from .notifications import CrudMessages, LoggingNotifier, Notifier

__all__ = [
    "AsyncFetch",
    "FetchState",
    "async_fetch",
    "CrudHooks",
    "create_crud_hooks",
    "CrudMessages",
    "LoggingNotifier",
    "Notifier",
]
