"""SQLModel tables used by the database-backed object store."""

from pubfs.models.objects import StoredObject, StoredObjectBase

__all__ = [
    "StoredObject",
    "StoredObjectBase",
]
