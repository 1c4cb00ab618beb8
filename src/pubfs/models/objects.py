"""StoredObject model — one row per key for the database-backed object store.

Provides ``StoredObjectBase`` (non-table) and ``StoredObject`` (concrete table).
Subclass ``StoredObjectBase`` with ``table=True`` and a custom ``__tablename__``
to use a different table name.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, LargeBinary
from sqlmodel import Field, SQLModel


class StoredObjectBase(SQLModel):
    """Base fields for a stored object. Subclass with ``table=True`` for a concrete table."""

    key: str = Field(primary_key=True)
    data: bytes = Field(default=b"", sa_type=LargeBinary)  # type: ignore[invalid-argument-type]
    size: int = Field(default=0)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class StoredObject(StoredObjectBase, table=True):
    """Default object table: ``pubfs_objects``."""

    __tablename__ = "pubfs_objects"
