"""Infra layer utilities (key-value storage, UA pool)."""

from .storage import KeyValueStore, SQLiteManager
from .ua_pool import UserAgentPool

__all__ = ["KeyValueStore", "SQLiteManager", "UserAgentPool"]
