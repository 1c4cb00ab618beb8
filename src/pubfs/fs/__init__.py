"""Filesystem layer — cache, capabilities, directory reconstruction, blobs."""

from pubfs.fs.blobs import (
    BlobMetadataRecord,
    BlobService,
    generate_blob_id,
    is_blob_metadata,
    parse_blob_metadata,
)
from pubfs.fs.cache import TTLCache
from pubfs.fs.config import FileSystemConfig
from pubfs.fs.directories import DirectoryService
from pubfs.fs.exceptions import (
    AccessDeniedError,
    BlobMetadataError,
    ErrorKind,
    InvalidCapabilityError,
    InvalidKeyError,
    PubfsError,
    StorageError,
)
from pubfs.fs.filesystem import FileSystem
from pubfs.fs.permissions import (
    CapabilityGrant,
    CapabilityMatch,
    CapabilitySet,
    Permission,
    authorize,
    parse_capabilities,
    parse_capability,
)
from pubfs.fs.protocol import ObjectStore
from pubfs.fs.types import (
    CacheStats,
    DeleteResult,
    FileNode,
    ListResult,
    LoadResult,
    MkdirResult,
    MoveResult,
    ReadBytesResult,
    ReadResult,
    ReconcileResult,
    ReplaceResult,
    UploadResult,
    WriteResult,
)

__all__ = [
    "AccessDeniedError",
    "BlobMetadataError",
    "BlobMetadataRecord",
    "BlobService",
    "CacheStats",
    "CapabilityGrant",
    "CapabilityMatch",
    "CapabilitySet",
    "DeleteResult",
    "DirectoryService",
    "ErrorKind",
    "FileNode",
    "FileSystem",
    "FileSystemConfig",
    "InvalidCapabilityError",
    "InvalidKeyError",
    "ListResult",
    "LoadResult",
    "MkdirResult",
    "MoveResult",
    "ObjectStore",
    "Permission",
    "PubfsError",
    "ReadBytesResult",
    "ReadResult",
    "ReconcileResult",
    "ReplaceResult",
    "StorageError",
    "TTLCache",
    "UploadResult",
    "WriteResult",
    "authorize",
    "generate_blob_id",
    "is_blob_metadata",
    "parse_blob_metadata",
    "parse_capabilities",
    "parse_capability",
]
