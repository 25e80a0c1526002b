"""
Credential persistence for outbound requests.
"""

from .storage import AuthStore, JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore, create_auth_store

__all__ = [
    "AuthStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "create_auth_store",
]
