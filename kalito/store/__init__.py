"""Persistence for messages, summaries and pins."""

from kalito.store.base import MemoryStore, StoreError
from kalito.store.sqlite import SQLiteMemoryStore

__all__ = ["MemoryStore", "StoreError", "SQLiteMemoryStore"]
