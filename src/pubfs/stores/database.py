"""DatabaseObjectStore — object store on a SQL table via async SQLAlchemy."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete as sa_delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import select

from pubfs.fs.exceptions import StorageError
from pubfs.models.objects import StoredObject

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from pubfs.models.objects import StoredObjectBase

logger = logging.getLogger(__name__)

DEFAULT_URL = "sqlite+aiosqlite://"


def _escape_like(prefix: str) -> str:
    return prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class DatabaseObjectStore:
    """Keys and bytes in one SQL table. Works with SQLite, PostgreSQL, etc.

    The engine is created lazily on first use (or on ``open()``) and the
    table is created if missing. Pass *engine* to share an existing engine;
    the store then leaves disposing it to the caller.

    Implements the ``ObjectStore`` protocol. SQLAlchemy errors surface as
    ``StorageError``.
    """

    def __init__(
        self,
        url: str = DEFAULT_URL,
        *,
        engine: AsyncEngine | None = None,
        object_model: type[StoredObjectBase] | None = None,
    ) -> None:
        self.url = url
        self._object_model: type[StoredObjectBase] = object_model or StoredObject
        self._engine = engine
        self._owns_engine = engine is None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._init_lock = asyncio.Lock()

    @property
    def object_model(self) -> type[StoredObjectBase]:
        return self._object_model

    @property
    def engine(self) -> AsyncEngine | None:
        """The async engine, available after ``open()``."""
        return self._engine

    # ------------------------------------------------------------------
    # Database Management
    # ------------------------------------------------------------------

    async def _ensure_db(self) -> async_sessionmaker[AsyncSession]:
        """Initialize engine, table and session factory if needed."""
        if self._session_factory is not None:
            return self._session_factory
        async with self._init_lock:
            if self._session_factory is not None:
                return self._session_factory

            table = self._object_model.__table__  # type: ignore[unresolved-attribute]
            try:
                if self._engine is None:
                    self._engine = create_async_engine(self.url, echo=False)
                async with self._engine.begin() as conn:
                    await conn.run_sync(lambda c: table.create(c, checkfirst=True))
            except (SQLAlchemyError, ImportError) as e:
                raise StorageError(f"Cannot initialise object table: {e}") from e

            self._session_factory = async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
            return self._session_factory

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        await self._ensure_db()

    async def close(self) -> None:
        """Dispose the engine if this store created it."""
        if self._engine is not None and self._owns_engine:
            await self._engine.dispose()
            self._engine = None
        self._session_factory = None

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    async def get(self, key: str) -> bytes | None:
        factory = await self._ensure_db()
        model = self._object_model
        try:
            async with factory() as session:
                result = await session.execute(
                    select(model.data).where(model.key == key)  # type: ignore[arg-type]
                )
                row = result.first()
        except SQLAlchemyError as e:
            raise StorageError(f"Get failed for {key}: {e}") from e
        return bytes(row[0]) if row else None

    async def put(self, key: str, data: bytes) -> bool:
        factory = await self._ensure_db()
        model = self._object_model
        now = datetime.now(UTC)
        try:
            async with factory() as session:
                existing = await session.get(model, key)
                if existing is None:
                    session.add(model(key=key, data=bytes(data), size=len(data), created_at=now, updated_at=now))
                else:
                    existing.data = bytes(data)
                    existing.size = len(data)
                    existing.updated_at = now
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Put failed for {key}: {e}") from e
        logger.debug("Stored %d bytes at %s", len(data), key)
        return True

    async def delete(self, key: str) -> bool:
        factory = await self._ensure_db()
        model = self._object_model
        try:
            async with factory() as session:
                result = await session.execute(
                    sa_delete(model).where(model.key == key)  # type: ignore[arg-type]
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Delete failed for {key}: {e}") from e
        return result.rowcount > 0  # type: ignore[union-attr]

    async def list(
        self,
        prefix: str,
        cursor: str | None = None,
        reverse: bool = False,
        limit: int | None = None,
    ) -> list[str]:
        factory = await self._ensure_db()
        model = self._object_model
        column = model.key  # type: ignore[assignment]

        query = select(column).where(
            column.like(_escape_like(prefix) + "%", escape="\\"),  # type: ignore[union-attr]
        )
        if cursor is not None:
            query = query.where(column < cursor if reverse else column > cursor)  # type: ignore[operator]
        query = query.order_by(column.desc() if reverse else column.asc())  # type: ignore[union-attr]
        if limit is not None:
            query = query.limit(limit)

        try:
            async with factory() as session:
                result = await session.execute(query)
                keys = [row[0] for row in result.all()]
        except SQLAlchemyError as e:
            raise StorageError(f"List failed for {prefix}: {e}") from e

        # LIKE is case-insensitive on some dialects; keys are case-sensitive.
        return [k for k in keys if k.startswith(prefix)]
