"""MemoryObjectStore — dict-backed store for tests and local development."""

from __future__ import annotations

import bisect


class MemoryObjectStore:
    """In-process object store.

    ``list`` returns keys in sorted order, which is also how the remote
    homeserver orders them. Implements the ``ObjectStore`` protocol.
    """

    def __init__(self, objects: dict[str, bytes] | None = None) -> None:
        self._objects: dict[str, bytes] = dict(objects or {})

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, key: str) -> bool:
        return key in self._objects

    async def open(self) -> None:
        """No-op: nothing to connect to."""

    async def close(self) -> None:
        """No-op. Objects stay in memory until the store is dropped."""

    async def get(self, key: str) -> bytes | None:
        return self._objects.get(key)

    async def put(self, key: str, data: bytes) -> bool:
        self._objects[key] = bytes(data)
        return True

    async def delete(self, key: str) -> bool:
        return self._objects.pop(key, None) is not None

    async def list(
        self,
        prefix: str,
        cursor: str | None = None,
        reverse: bool = False,
        limit: int | None = None,
    ) -> list[str]:
        keys = sorted(k for k in self._objects if k.startswith(prefix))
        if cursor is not None:
            if reverse:
                keys = keys[: bisect.bisect_left(keys, cursor)]
            else:
                keys = keys[bisect.bisect_right(keys, cursor):]
        if reverse:
            keys.reverse()
        if limit is not None:
            keys = keys[:limit]
        return keys
