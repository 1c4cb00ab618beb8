"""BlobService — binary content as a (blob, metadata record) pair.

The store has no content-type attribute, so binary files are written as
two objects under a base path::

    <base>/blobs/<blob-id>      raw bytes
    <base>/files/<record-id>    JSON record pointing at the blob

A record is recognised purely by its structure (see
:func:`parse_blob_metadata`); anything that does not validate is treated
as ordinary content. The two writes are sequential and not atomic.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import secrets
import time
from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from .exceptions import BlobMetadataError, ErrorKind
from .types import LoadResult, ReconcileResult, ReplaceResult, UploadResult
from .utils import DEFAULT_SCHEME, join_key, key_name, owner_root, resolve_content_type

if TYPE_CHECKING:
    from .filesystem import FileSystem

logger = logging.getLogger(__name__)

BLOB_ID_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
BLOB_ID_LENGTH = 26
BLOBS_DIR = "blobs"
FILES_DIR = "files"

_METADATA_KEY_RE = re.compile(rf"^(?P<base>.*)/{FILES_DIR}/[^/]+$")
_RECORD_FIELDS = frozenset({"name", "created_at", "src", "content_type", "size"})


@dataclass(frozen=True)
class BlobMetadataRecord:
    """Descriptor naming, typing and sizing one blob.

    ``created_at`` is microseconds since the epoch. ``src`` is the blob's
    key; it referenced an existing object when the record was written and
    is not re-checked afterwards. Any other fields found in a stored record
    are kept in ``extra`` and written back by :meth:`to_json`.
    """

    name: str
    created_at: int | float
    src: str
    content_type: str
    size: int | float
    extra: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def created(self) -> datetime:
        return datetime.fromtimestamp(self.created_at / 1_000_000, tz=UTC)

    def to_json(self) -> str:
        fields = asdict(self)
        extra = fields.pop("extra")
        return json.dumps({**fields, **extra}, indent=2)

    @classmethod
    def from_json(cls, content: str | bytes, scheme: str = DEFAULT_SCHEME) -> BlobMetadataRecord:
        """Strict parse. Raises :class:`BlobMetadataError` if *content* is not a record.

        All five fields must be present with the right JSON types and ``src``
        must be a key of *scheme*.
        """
        if isinstance(content, (bytes, bytearray)):
            try:
                content = content.decode()
            except UnicodeDecodeError as e:
                raise BlobMetadataError("Record is not UTF-8 text") from e
        try:
            raw = json.loads(content)
        except (json.JSONDecodeError, TypeError) as e:
            raise BlobMetadataError(f"Record is not JSON: {e}") from e
        if not isinstance(raw, dict):
            raise BlobMetadataError("Record must be a JSON object")

        name = raw.get("name")
        created_at = raw.get("created_at")
        src = raw.get("src")
        content_type = raw.get("content_type")
        size = raw.get("size")
        if not isinstance(name, str) or not isinstance(content_type, str):
            raise BlobMetadataError("Record needs string 'name' and 'content_type'")
        if not _is_number(created_at) or not _is_number(size):
            raise BlobMetadataError("Record needs numeric 'created_at' and 'size'")
        if not isinstance(src, str) or not src.startswith(f"{scheme}://"):
            raise BlobMetadataError(f"Record 'src' must be a {scheme}:// key")
        return cls(
            name=name,
            created_at=created_at,  # type: ignore[arg-type]
            src=src,
            content_type=content_type,
            size=size,  # type: ignore[arg-type]
            extra={k: v for k, v in raw.items() if k not in _RECORD_FIELDS},
        )


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_blob_metadata(
    content: str | bytes | None,
    scheme: str = DEFAULT_SCHEME,
) -> BlobMetadataRecord | None:
    """Return the record encoded in *content*, or None if it is not one.

    This is a structural guess, not a guarantee.
    """
    if content is None:
        return None
    try:
        return BlobMetadataRecord.from_json(content, scheme)
    except BlobMetadataError:
        return None


def is_blob_metadata(content: str | bytes | None, scheme: str = DEFAULT_SCHEME) -> bool:
    return parse_blob_metadata(content, scheme) is not None


def generate_blob_id(length: int = BLOB_ID_LENGTH) -> str:
    """Random identifier over a Crockford base32 alphabet (130 bits at 26 chars)."""
    return "".join(secrets.choice(BLOB_ID_ALPHABET) for _ in range(length))


def now_micros() -> int:
    return time.time_ns() // 1000


class BlobService:
    """Uploads, replaces and resolves blob + metadata pairs through a FileSystem.

    All store traffic goes through the filesystem, so blob writes get the
    same timeouts, capability checks and cache invalidation as any file.
    """

    def __init__(self, fs: FileSystem) -> None:
        self.fs = fs

    @property
    def scheme(self) -> str:
        return self.fs.config.scheme

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def parse(self, content: str | bytes | None) -> BlobMetadataRecord | None:
        return parse_blob_metadata(content, self.scheme)

    def is_metadata(self, content: str | bytes | None) -> bool:
        return self.parse(content) is not None

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def base_key(self, base_path: str, owner_id: str) -> str:
        """``pubky://<owner>/pub/app`` for base path ``/pub/app``."""
        return owner_root(owner_id, self.scheme) + base_path.strip("/")

    def blob_key(self, base_path: str, owner_id: str, blob_id: str) -> str:
        return join_key(self.base_key(base_path, owner_id), f"{BLOBS_DIR}/{blob_id}")

    def metadata_key(self, base_path: str, owner_id: str, record_id: str) -> str:
        return join_key(self.base_key(base_path, owner_id), f"{FILES_DIR}/{record_id}")

    def base_path_of(self, metadata_key: str, owner_id: str) -> str | None:
        """Recover the base path from ``<root><base>/files/<id>``."""
        root = owner_root(owner_id, self.scheme)
        if not metadata_key.startswith(root):
            return None
        match = _METADATA_KEY_RE.match(metadata_key[len(root) - 1:])
        return match.group("base") if match else None

    # ------------------------------------------------------------------
    # Upload / Replace
    # ------------------------------------------------------------------

    async def upload_binary(
        self,
        data: bytes,
        base_path: str,
        owner_id: str,
        *,
        name: str | None = None,
        content_type: str | None = None,
    ) -> UploadResult:
        """Write the blob, then a metadata record pointing at it.

        If the record write fails the blob stays behind as an orphan and the
        result reports ``PARTIAL_FAILURE``.
        """
        blob_id = generate_blob_id()
        blob_key = self.blob_key(base_path, owner_id, blob_id)
        metadata_key = self.metadata_key(base_path, owner_id, generate_blob_id())
        name = name or blob_id
        record = BlobMetadataRecord(
            name=name,
            created_at=now_micros(),
            src=blob_key,
            content_type=content_type or resolve_content_type(name, data),
            size=len(data),
        )

        blob = await self.fs.create_binary_file(blob_key, data)
        if not blob.success:
            return UploadResult(
                success=False,
                message=f"Blob upload failed: {blob.message}",
                error=blob.error,
            )

        written = await self.fs.create_file(metadata_key, record.to_json())
        if not written.success:
            logger.warning("Metadata write failed, blob %s is orphaned: %s", blob_key, written.message)
            return UploadResult(
                success=False,
                message=f"Blob written but metadata failed: {written.message}",
                blob_key=blob_key,
                metadata_key=metadata_key,
                record=record,
                error=ErrorKind.PARTIAL_FAILURE,
            )

        return UploadResult(
            success=True,
            message=f"Uploaded {name} ({record.size} bytes)",
            blob_key=blob_key,
            metadata_key=metadata_key,
            record=record,
        )

    async def replace_binary(
        self,
        data: bytes,
        existing_metadata_key: str,
        owner_id: str,
        *,
        name: str | None = None,
        content_type: str | None = None,
    ) -> ReplaceResult:
        """Point an existing record at a freshly written blob.

        The record keeps its key. The previous blob is deleted best-effort;
        a failed delete is logged and does not fail the replacement.
        """
        read = await self.fs.read_file(existing_metadata_key, use_cache=False)
        if not read.success:
            return ReplaceResult(
                success=False,
                message=f"Cannot read existing metadata: {read.message}",
                error=read.error,
            )
        try:
            existing = BlobMetadataRecord.from_json(read.content or "", self.scheme)
        except BlobMetadataError as e:
            return ReplaceResult(
                success=False,
                message=f"Not a blob metadata record: {existing_metadata_key} ({e})",
                error=ErrorKind.VALIDATION,
            )
        base_path = self.base_path_of(existing_metadata_key, owner_id)
        if base_path is None:
            return ReplaceResult(
                success=False,
                message=f"Metadata key is not under {owner_id}'s {FILES_DIR}/: {existing_metadata_key}",
                error=ErrorKind.VALIDATION,
            )

        new_blob_key = self.blob_key(base_path, owner_id, generate_blob_id())
        name = name or existing.name
        record = replace(
            existing,
            name=name,
            created_at=now_micros(),
            src=new_blob_key,
            content_type=content_type or resolve_content_type(name, data),
            size=len(data),
        )

        blob = await self.fs.create_binary_file(new_blob_key, data)
        if not blob.success:
            return ReplaceResult(
                success=False,
                message=f"Blob upload failed: {blob.message}",
                error=blob.error,
            )

        updated = await self.fs.update_file(existing_metadata_key, record.to_json())
        if not updated.success:
            logger.warning("Metadata update failed, blob %s is orphaned: %s", new_blob_key, updated.message)
            return ReplaceResult(
                success=False,
                message=f"New blob written but metadata update failed: {updated.message}",
                blob_key=new_blob_key,
                record=record,
                error=ErrorKind.PARTIAL_FAILURE,
            )

        old_deleted = False
        if existing.src != new_blob_key:
            deleted = await self.fs.delete_file(existing.src)
            old_deleted = deleted.success
            if not deleted.success:
                logger.warning("Could not delete old blob %s: %s", existing.src, deleted.message)

        return ReplaceResult(
            success=True,
            message=f"Replaced blob for {existing_metadata_key}",
            blob_key=new_blob_key,
            record=record,
            old_blob_deleted=old_deleted,
        )

    # ------------------------------------------------------------------
    # Resolve
    # ------------------------------------------------------------------

    async def load(self, key: str) -> LoadResult:
        """Resolve *key* to bytes, following a metadata record if it is one.

        Keys that are not records are loaded as direct blobs with a
        synthesised record (content type from extension, then magic bytes).
        """
        text = await self.fs.read_file(key, use_cache=False)
        record = self.parse(text.content) if text.success else None
        if record is not None:
            blob = await self.fs.read_binary_file(record.src)
            if not blob.success:
                return LoadResult(
                    success=False,
                    message=f"Metadata found but blob unreadable: {blob.message}",
                    record=record,
                    via_metadata=True,
                    error=blob.error,
                )
            return LoadResult(
                success=True,
                message=f"Loaded {record.name} via metadata",
                record=record,
                data=blob.data,
                via_metadata=True,
            )

        raw = await self.fs.read_binary_file(key)
        if not raw.success:
            return LoadResult(success=False, message=raw.message, error=raw.error)
        if not raw.data:
            return LoadResult(success=False, message=f"File is empty: {key}", error=ErrorKind.VALIDATION)

        name = key_name(key)
        direct = BlobMetadataRecord(
            name=name,
            created_at=now_micros(),
            src=key,
            content_type=resolve_content_type(name, raw.data),
            size=len(raw.data),
        )
        return LoadResult(success=True, message=f"Loaded {name}", record=direct, data=raw.data)

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------

    async def collect_orphans(
        self,
        base_path: str,
        owner_id: str,
        *,
        delete: bool = False,
    ) -> ReconcileResult:
        """Find blobs under ``<base>/blobs/`` that no record in ``<base>/files/`` references.

        Aborts without deleting anything if any record could not be read for
        a reason other than absence or non-record content.
        """
        base = self.base_key(base_path, owner_id)
        blobs = await self.fs.list_files(join_key(base, BLOBS_DIR), use_cache=False)
        files = await self.fs.list_files(join_key(base, FILES_DIR), use_cache=False)
        for listing in (blobs, files):
            if not listing.success:
                return ReconcileResult(success=False, message=listing.message, error=listing.error)

        reads = await asyncio.gather(
            *(self.fs.read_file(node.path, use_cache=False) for node in files.entries if not node.is_directory)
        )
        referenced: set[str] = set()
        for read in reads:
            if read.success:
                record = self.parse(read.content)
                if record is not None:
                    referenced.add(record.src)
            elif read.error not in (ErrorKind.NOT_FOUND, ErrorKind.VALIDATION):
                return ReconcileResult(
                    success=False,
                    message=f"Cannot read record {read.path}: {read.message}",
                    error=read.error,
                )

        orphaned = [node.path for node in blobs.entries if not node.is_directory and node.path not in referenced]
        deleted: list[str] = []
        if delete:
            for blob_key in orphaned:
                result = await self.fs.delete_file(blob_key)
                if result.success:
                    deleted.append(blob_key)
                else:
                    logger.warning("Could not delete orphaned blob %s: %s", blob_key, result.message)

        return ReconcileResult(
            success=True,
            message=f"Found {len(orphaned)} orphaned blobs under {base}",
            orphaned=orphaned,
            deleted=deleted,
        )
