"""Result types: FileNode, ReadResult, WriteResult, ListResult, etc."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from .blobs import BlobMetadataRecord
    from .exceptions import ErrorKind


@dataclass(frozen=True)
class FileNode:
    """One entry in a directory listing. Directories carry no size."""

    name: str
    path: str
    is_directory: bool
    size: int | None = None
    modified_at: datetime | None = None


@dataclass
class CacheStats:
    """Snapshot of cache occupancy."""

    total_entries: int
    valid_entries: int


@dataclass
class ReadResult:
    """Result of a text read. ``content`` is ``""`` for empty files."""

    success: bool
    message: str
    path: str | None = None
    content: str | None = None
    error: ErrorKind | None = None
    from_cache: bool = False


@dataclass
class ReadBytesResult:
    """Result of a binary read."""

    success: bool
    message: str
    path: str | None = None
    data: bytes | None = None
    error: ErrorKind | None = None


@dataclass
class WriteResult:
    """Result of a create, update or copy."""

    success: bool
    message: str
    path: str | None = None
    error: ErrorKind | None = None


@dataclass
class DeleteResult:
    """Result of a delete operation."""

    success: bool
    message: str
    path: str | None = None
    error: ErrorKind | None = None


@dataclass
class MkdirResult:
    """Result of a create_directory operation."""

    success: bool
    message: str
    path: str | None = None
    placeholder: str | None = None
    error: ErrorKind | None = None


@dataclass
class MoveResult:
    """Result of a move operation."""

    success: bool
    message: str
    old_path: str | None = None
    new_path: str | None = None
    error: ErrorKind | None = None


@dataclass
class ListResult:
    """Result of a list directory operation."""

    success: bool
    message: str
    path: str = ""
    entries: list[FileNode] = field(default_factory=list)
    error: ErrorKind | None = None
    from_cache: bool = False


@dataclass
class UploadResult:
    """Result of uploading binary content as a blob + metadata pair."""

    success: bool
    message: str
    blob_key: str | None = None
    metadata_key: str | None = None
    record: BlobMetadataRecord | None = None
    error: ErrorKind | None = None


@dataclass
class ReplaceResult:
    """Result of replacing the blob behind an existing metadata record."""

    success: bool
    message: str
    blob_key: str | None = None
    record: BlobMetadataRecord | None = None
    old_blob_deleted: bool = False
    error: ErrorKind | None = None


@dataclass
class LoadResult:
    """Result of resolving a key to blob content and its record."""

    success: bool
    message: str
    record: BlobMetadataRecord | None = None
    data: bytes | None = None
    via_metadata: bool = False
    error: ErrorKind | None = None


@dataclass
class ReconcileResult:
    """Result of an orphaned-blob scan."""

    success: bool
    message: str
    orphaned: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    error: ErrorKind | None = None
