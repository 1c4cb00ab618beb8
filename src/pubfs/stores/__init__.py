"""Object stores — ObjectStore protocol implementations."""

from pubfs.stores.database import DatabaseObjectStore
from pubfs.stores.http import HttpObjectStore
from pubfs.stores.memory import MemoryObjectStore

__all__ = [
    "DatabaseObjectStore",
    "HttpObjectStore",
    "MemoryObjectStore",
]
