"""FileSystem — file and directory operations over a flat object store."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pubfs.events import EventBus, EventType, FileEvent

from .blobs import parse_blob_metadata
from .cache import WILDCARD, TTLCache
from .config import FileSystemConfig
from .directories import DirectoryService
from .exceptions import ErrorKind, classify_error
from .permissions import CapabilitySet
from .types import (
    DeleteResult,
    FileNode,
    ListResult,
    MkdirResult,
    MoveResult,
    ReadBytesResult,
    ReadResult,
    WriteResult,
)
from .utils import dir_key, normalize_key, parent_key, validate_key

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable
    from typing import TypeVar

    from .protocol import ObjectStore

    T = TypeVar("T")

logger = logging.getLogger(__name__)

FILE_NAMESPACE = "file:"
LIST_NAMESPACE = "list:"


class FileSystem:
    """Create, read, update, delete, list, copy and move over an :class:`ObjectStore`.

    Every operation is one store round trip (two for copy, three for move),
    optionally short-circuited by the cache. Failures never raise: they are
    logged and returned as results carrying an :class:`ErrorKind`.

    Cache coherency is driven by the event bus. Each successful mutation
    emits a :class:`FileEvent`; handlers registered in ``__init__`` update
    the cached value and drop the cached listings of every ancestor
    directory. Callers can register further handlers on ``events``.

    Construct one instance at startup and share it::

        store = HttpObjectStore()
        async with FileSystem(store) as fs:
            await fs.create_file("pubky://<owner>/pub/app/notes.md", "# hi")

    When *capabilities* is given, writes outside them fail with
    ``ErrorKind.UNAUTHORIZED`` before the store is contacted. Without it
    no client-side check is made.
    """

    def __init__(
        self,
        store: ObjectStore,
        *,
        config: FileSystemConfig | None = None,
        cache: TTLCache | None = None,
        events: EventBus | None = None,
        capabilities: CapabilitySet | None = None,
    ) -> None:
        self.store = store
        self.config = config or FileSystemConfig()
        self.cache = cache if cache is not None else TTLCache(self.config.cache_ttl)
        self.events = events or EventBus()
        self.capabilities = capabilities
        self.directories = DirectoryService(self.config.sentinel, self.config.placeholder_name)
        self._sweeper: asyncio.Task[None] | None = None
        self._handlers: list[tuple[EventType, Callable[[FileEvent], Awaitable[None]]]] = [
            (EventType.FILE_WRITTEN, self._on_file_written),
            (EventType.FILE_UPDATED, self._on_file_updated),
            (EventType.FILE_DELETED, self._on_file_deleted),
            (EventType.DIRECTORY_CREATED, self._on_directory_created),
        ]
        self._attached = False
        self._attach_handlers()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Open the store and start the cache sweeper if configured."""
        self._attach_handlers()
        await self.store.open()
        interval = self.config.cache_sweep_interval
        if interval is not None and self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_cache(interval))

    async def close(self) -> None:
        """Stop the sweeper and close the store. The cache is discarded.

        The cache handlers are detached from ``events``, so a bus shared
        with other components stops calling into a closed instance.
        """
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        self._detach_handlers()
        self.cache.clear()
        await self.store.close()

    async def __aenter__(self) -> FileSystem:
        await self.open()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _sweep_cache(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.cache.cleanup()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _call(self, awaitable: Awaitable[T]) -> T:
        """Await one store call under the configured timeout."""
        return await asyncio.wait_for(awaitable, timeout=self.config.timeout)

    def _prepare(self, path: str) -> tuple[str, str]:
        """Normalize *path* into a key. Returns ``(key, error_message)``."""
        key = normalize_key(path)
        valid, error = validate_key(key)
        if not valid:
            return key, error
        if self.config.sentinel and self.config.sentinel in key:
            return key, f"Key refers to a store entry, not a file: {key}"
        return key, ""

    def use_capabilities(self, owner_id: str, capabilities: Iterable[str]) -> CapabilitySet:
        """Enforce ``"path:perm"`` capabilities held by *owner_id* on writes.

        Scheme and matching mode come from the config. Raises
        ``InvalidCapabilityError`` on a malformed string.
        """
        self.capabilities = CapabilitySet.from_strings(
            owner_id,
            capabilities,
            scheme=self.config.scheme,
            match=self.config.capability_match,
        )
        return self.capabilities

    def _write_denied(self, key: str) -> bool:
        return self.capabilities is not None and not self.capabilities.can_write(key)

    def _failure(self, exc: BaseException) -> tuple[str, ErrorKind]:
        if isinstance(exc, TimeoutError):
            return f"timed out after {self.config.timeout}s", ErrorKind.NETWORK_FAILURE
        return str(exc) or type(exc).__name__, classify_error(exc)

    def _invalidate_listings(self, key: str) -> None:
        """Drop cached listings of every ancestor directory of *key*."""
        parent = parent_key(key)
        while parent is not None:
            self.cache.delete(LIST_NAMESPACE + parent)
            parent = parent_key(parent)

    # ------------------------------------------------------------------
    # Cache coherency handlers
    # ------------------------------------------------------------------

    def _attach_handlers(self) -> None:
        if self._attached:
            return
        for event_type, handler in self._handlers:
            self.events.register(event_type, handler)
        self._attached = True

    def _detach_handlers(self) -> None:
        if not self._attached:
            return
        for event_type, handler in self._handlers:
            self.events.unregister(event_type, handler)
        self._attached = False
        logger.debug("Detached cache handlers, %d remain on the bus", self.events.handler_count)

    async def _on_file_written(self, event: FileEvent) -> None:
        await self._on_file_updated(event)
        self._invalidate_listings(event.key)

    async def _on_file_updated(self, event: FileEvent) -> None:
        if event.content is None:
            self.cache.delete(FILE_NAMESPACE + event.key)
        else:
            self.cache.set(FILE_NAMESPACE + event.key, event.content)

    async def _on_file_deleted(self, event: FileEvent) -> None:
        self.cache.delete(FILE_NAMESPACE + event.key)
        self._invalidate_listings(event.key)

    async def _on_directory_created(self, event: FileEvent) -> None:
        self.cache.delete(LIST_NAMESPACE + event.key)
        self._invalidate_listings(event.key)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def _put(
        self,
        path: str,
        data: bytes,
        event_type: EventType,
        verb: str,
        content: str | None = None,
    ) -> WriteResult:
        key, error = self._prepare(path)
        if error:
            return WriteResult(success=False, message=error, path=key, error=ErrorKind.VALIDATION)
        if self._write_denied(key):
            return WriteResult(
                success=False,
                message=f"No write capability for {key}",
                path=key,
                error=ErrorKind.UNAUTHORIZED,
            )

        try:
            ok = await self._call(self.store.put(key, data))
        except Exception as e:
            message, kind = self._failure(e)
            logger.error("%s failed for %s: %s", verb, key, message, exc_info=True)
            return WriteResult(success=False, message=f"{verb} failed: {message}", path=key, error=kind)

        if not ok:
            logger.error("%s rejected by store for %s", verb, key)
            return WriteResult(
                success=False,
                message=f"Store rejected write: {key}",
                path=key,
                error=ErrorKind.NETWORK_FAILURE,
            )

        await self.events.emit(FileEvent(event_type, key, content=content))
        return WriteResult(success=True, message=f"{verb}: {key} ({len(data)} bytes)", path=key)

    async def create_file(self, path: str, content: str) -> WriteResult:
        """Write a new text file, cache it and invalidate the parent listing."""
        return await self._put(path, content.encode(), EventType.FILE_WRITTEN, "Created", content)

    async def update_file(self, path: str, content: str) -> WriteResult:
        """Overwrite a text file. Directory membership is assumed unchanged."""
        return await self._put(path, content.encode(), EventType.FILE_UPDATED, "Updated", content)

    async def create_binary_file(self, path: str, data: bytes) -> WriteResult:
        """Write raw bytes. Binary content is never cached."""
        return await self._put(path, bytes(data), EventType.FILE_WRITTEN, "Created")

    async def update_binary_file(self, path: str, data: bytes) -> WriteResult:
        return await self._put(path, bytes(data), EventType.FILE_UPDATED, "Updated")

    async def create_directory(self, path: str) -> MkdirResult:
        """Materialise a directory by writing an empty placeholder inside it."""
        key, error = self._prepare(path)
        if error:
            return MkdirResult(success=False, message=error, path=key, error=ErrorKind.VALIDATION)

        directory = dir_key(key)
        placeholder = self.directories.placeholder_key(directory)
        written = await self.create_file(placeholder, "")
        if not written.success:
            return MkdirResult(
                success=False,
                message=f"Cannot create directory {directory}: {written.message}",
                path=directory,
                error=written.error,
            )

        await self.events.emit(FileEvent(EventType.DIRECTORY_CREATED, directory))
        return MkdirResult(
            success=True,
            message=f"Created directory: {directory}",
            path=directory,
            placeholder=placeholder,
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def read_file(self, path: str, use_cache: bool = True) -> ReadResult:
        """Read a text file. Empty files read as ``""``; missing ones as ``None``."""
        key, error = self._prepare(path)
        if error:
            return ReadResult(success=False, message=error, path=key, error=ErrorKind.VALIDATION)

        if use_cache:
            cached = self.cache.get(FILE_NAMESPACE + key)
            if cached is not None:
                return ReadResult(
                    success=True,
                    message=f"Read {key} from cache",
                    path=key,
                    content=cached,
                    from_cache=True,
                )

        try:
            data = await self._call(self.store.get(key))
            if data is None:
                return ReadResult(
                    success=False,
                    message=f"File not found: {key}",
                    path=key,
                    error=ErrorKind.NOT_FOUND,
                )
            content = data.decode() if data else ""
        except Exception as e:
            message, kind = self._failure(e)
            logger.error("Read failed for %s: %s", key, message, exc_info=True)
            return ReadResult(success=False, message=f"Read failed: {message}", path=key, error=kind)

        self.cache.set(FILE_NAMESPACE + key, content)
        return ReadResult(success=True, message=f"Read {key}", path=key, content=content)

    async def read_binary_file(self, path: str) -> ReadBytesResult:
        """Read raw bytes straight from the store, bypassing the cache."""
        key, error = self._prepare(path)
        if error:
            return ReadBytesResult(success=False, message=error, path=key, error=ErrorKind.VALIDATION)

        try:
            data = await self._call(self.store.get(key))
        except Exception as e:
            message, kind = self._failure(e)
            logger.error("Binary read failed for %s: %s", key, message, exc_info=True)
            return ReadBytesResult(success=False, message=f"Read failed: {message}", path=key, error=kind)

        if data is None:
            return ReadBytesResult(
                success=False,
                message=f"File not found: {key}",
                path=key,
                error=ErrorKind.NOT_FOUND,
            )
        return ReadBytesResult(success=True, message=f"Read {len(data)} bytes", path=key, data=data)

    async def file_exists(self, path: str) -> bool:
        """True if content is cached for or stored at *path*."""
        key, error = self._prepare(path)
        if error:
            return False
        if self.cache.get(FILE_NAMESPACE + key) is not None:
            return True
        try:
            return await self._call(self.store.get(key)) is not None
        except Exception as e:
            message, _ = self._failure(e)
            logger.error("Exists check failed for %s: %s", key, message, exc_info=True)
            return False

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_file(self, path: str) -> DeleteResult:
        """Delete one object, evict it and invalidate the parent listing."""
        key, error = self._prepare(path)
        if error:
            return DeleteResult(success=False, message=error, path=key, error=ErrorKind.VALIDATION)
        if self._write_denied(key):
            return DeleteResult(
                success=False,
                message=f"No write capability for {key}",
                path=key,
                error=ErrorKind.UNAUTHORIZED,
            )

        try:
            deleted = await self._call(self.store.delete(key))
        except Exception as e:
            message, kind = self._failure(e)
            logger.error("Delete failed for %s: %s", key, message, exc_info=True)
            return DeleteResult(success=False, message=f"Delete failed: {message}", path=key, error=kind)

        if not deleted:
            return DeleteResult(
                success=False,
                message=f"File not found: {key}",
                path=key,
                error=ErrorKind.NOT_FOUND,
            )

        await self.events.emit(FileEvent(EventType.FILE_DELETED, key))
        return DeleteResult(success=True, message=f"Deleted: {key}", path=key)

    # ------------------------------------------------------------------
    # List
    # ------------------------------------------------------------------

    async def list_files(
        self,
        path: str,
        use_cache: bool = True,
        *,
        probe: bool = False,
    ) -> ListResult:
        """List the immediate children of a directory.

        With *probe*, every file entry is fetched concurrently to fill in
        ``size`` and ``modified_at``. Probed details are not cached.
        """
        key, error = self._prepare(path)
        directory = dir_key(key)
        if error:
            return ListResult(success=False, message=error, path=directory, error=ErrorKind.VALIDATION)

        entries: list[FileNode] | None = None
        from_cache = False
        if use_cache:
            cached = self.cache.get(LIST_NAMESPACE + directory)
            if cached is not None:
                entries, from_cache = list(cached), True

        if entries is None:
            try:
                keys = await self._call(self.store.list(directory))
            except Exception as e:
                message, kind = self._failure(e)
                logger.error("List failed for %s: %s", directory, message, exc_info=True)
                return ListResult(
                    success=False,
                    message=f"List failed: {message}",
                    path=directory,
                    error=kind,
                )
            entries = self.directories.reconstruct(directory, keys)
            self.cache.set(LIST_NAMESPACE + directory, tuple(entries))

        if probe:
            entries = await self._probe(entries)

        return ListResult(
            success=True,
            message=f"Listed {len(entries)} entries in {directory}",
            path=directory,
            entries=entries,
            from_cache=from_cache,
        )

    async def _probe(self, entries: list[FileNode]) -> list[FileNode]:
        return list(await asyncio.gather(*(self._probe_one(node) for node in entries)))

    async def _probe_one(self, node: FileNode) -> FileNode:
        if node.is_directory:
            return node
        try:
            data = await self._call(self.store.get(node.path))
        except Exception as e:
            logger.debug("Probe failed for %s: %s", node.path, e)
            return node
        if data is None:
            return node

        record = parse_blob_metadata(data, self.config.scheme)
        if record is None:
            return replace(node, size=len(data))
        return replace(
            node,
            size=record.size,
            modified_at=datetime.fromtimestamp(record.created_at / 1_000_000, tz=UTC),
        )

    # ------------------------------------------------------------------
    # Copy / Move
    # ------------------------------------------------------------------

    async def copy_file(self, src: str, dest: str) -> WriteResult:
        """Read *src* (cache allowed) and create *dest*. Not atomic.

        Content that is not UTF-8 text is copied as bytes.
        """
        read = await self.read_file(src, use_cache=True)
        if read.success and read.content is not None:
            written = await self.create_file(dest, read.content)
        elif read.error is ErrorKind.VALIDATION and read.path and validate_key(read.path)[0]:
            raw = await self.read_binary_file(src)
            if not raw.success or raw.data is None:
                return WriteResult(
                    success=False,
                    message=f"Cannot copy {src}: {raw.message}",
                    path=dest,
                    error=raw.error,
                )
            written = await self.create_binary_file(dest, raw.data)
        else:
            return WriteResult(
                success=False,
                message=f"Cannot copy {src}: {read.message}",
                path=dest,
                error=read.error,
            )

        if not written.success:
            return written
        return WriteResult(success=True, message=f"Copied {read.path} to {written.path}", path=written.path)

    async def move_file(self, src: str, dest: str) -> MoveResult:
        """Copy then delete. A failed delete leaves both objects and is reported
        as ``PARTIAL_FAILURE``; nothing is rolled back.

        Moving a key onto itself is rejected as ``VALIDATION`` without
        touching the store.
        """
        key = normalize_key(src)
        if key == normalize_key(dest):
            return MoveResult(
                success=False,
                message=f"Source and destination are the same: {key}",
                old_path=key,
                new_path=key,
                error=ErrorKind.VALIDATION,
            )

        copied = await self.copy_file(src, dest)
        if not copied.success:
            return MoveResult(
                success=False,
                message=copied.message,
                old_path=src,
                new_path=dest,
                error=copied.error,
            )

        deleted = await self.delete_file(src)
        if not deleted.success:
            logger.warning("Move left source behind: %s -> %s (%s)", src, dest, deleted.message)
            return MoveResult(
                success=False,
                message=f"Copied {src} to {dest} but could not delete source: {deleted.message}",
                old_path=deleted.path,
                new_path=copied.path,
                error=ErrorKind.PARTIAL_FAILURE,
            )

        await self.events.emit(FileEvent(EventType.FILE_MOVED, copied.path or dest, old_key=deleted.path))
        return MoveResult(
            success=True,
            message=f"Moved {deleted.path} to {copied.path}",
            old_path=deleted.path,
            new_path=copied.path,
        )

    # ------------------------------------------------------------------
    # Cache control
    # ------------------------------------------------------------------

    def clear_cache(self, pattern: str | None = None) -> int:
        """Drop cached files and listings whose key matches *pattern*.

        A plain pattern matches any key containing it, so
        ``clear_cache("<owner>")`` drops everything cached for that owner.
        A pattern with ``*`` matches the whole key, ``*`` standing for any
        substring. With no pattern the whole cache is cleared. Returns the
        number of entries removed.
        """
        if pattern is None:
            removed = len(self.cache)
            self.cache.clear()
            return removed
        if WILDCARD not in pattern:
            pattern = f"{WILDCARD}{pattern}{WILDCARD}"
        removed = self.cache.invalidate_pattern(FILE_NAMESPACE + pattern)
        removed += self.cache.invalidate_pattern(LIST_NAMESPACE + pattern)
        return removed
