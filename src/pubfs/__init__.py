"""pubfs: a hierarchical file browser over a flat remote object store.

Directories reconstructed from key prefixes, an expiring cache, capability
checks and binary blobs described by JSON metadata records.
"""

__version__ = "0.1.0"

from pubfs.events import EventBus, EventType, FileEvent
from pubfs.fs.blobs import BlobMetadataRecord, BlobService
from pubfs.fs.cache import TTLCache
from pubfs.fs.config import FileSystemConfig
from pubfs.fs.exceptions import (
    AccessDeniedError,
    ErrorKind,
    InvalidCapabilityError,
    InvalidKeyError,
    PubfsError,
    StorageError,
)
from pubfs.fs.filesystem import FileSystem
from pubfs.fs.permissions import CapabilitySet, Permission
from pubfs.fs.protocol import ObjectStore
from pubfs.fs.types import FileNode, ListResult, ReadResult, WriteResult
from pubfs.stores import DatabaseObjectStore, HttpObjectStore, MemoryObjectStore

__all__ = [
    "AccessDeniedError",
    "BlobMetadataRecord",
    "BlobService",
    "CapabilitySet",
    "DatabaseObjectStore",
    "ErrorKind",
    "EventBus",
    "EventType",
    "FileEvent",
    "FileNode",
    "FileSystem",
    "FileSystemConfig",
    "HttpObjectStore",
    "InvalidCapabilityError",
    "InvalidKeyError",
    "ListResult",
    "MemoryObjectStore",
    "ObjectStore",
    "Permission",
    "PubfsError",
    "ReadResult",
    "StorageError",
    "TTLCache",
    "WriteResult",
    "__version__",
]
