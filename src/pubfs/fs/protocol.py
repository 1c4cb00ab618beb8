"""ObjectStore protocol — the flat remote key/value boundary.

Stores address objects only by full key (``<scheme>://<owner>/<path>``)
and know nothing about directories, caching or metadata records. Those
live in the layers above.

Error contract for implementations:

- ``get`` returns ``None`` when the key does not exist.
- ``put`` / ``delete`` return ``False`` when the store rejects the request.
- Refusals for the current identity raise ``AccessDeniedError``.
- Transport or backend failures raise ``StorageError``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ObjectStore(Protocol):
    """Core interface every object store must implement."""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Called when the filesystem opens.  No-op if not needed."""
        ...

    async def close(self) -> None:
        """Called on shutdown."""
        ...

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    async def get(self, key: str) -> bytes | None: ...

    async def put(self, key: str, data: bytes) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def list(
        self,
        prefix: str,
        cursor: str | None = None,
        reverse: bool = False,
        limit: int | None = None,
    ) -> list[str]:
        """Full keys under *prefix* at any depth, in the store's own order."""
        ...
