"""DirectoryService — one level of directory listing from a flat key list."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .types import FileNode
from .utils import SEPARATOR, dir_key

if TYPE_CHECKING:
    from collections.abc import Iterable

DEFAULT_SENTINEL = "Pubky Homeserver"
DEFAULT_PLACEHOLDER = ".placeholder"


class DirectoryService:
    """Derives directory semantics the object store does not have.

    The store only answers "all keys under this prefix, at any depth".
    :meth:`reconstruct` folds that into the immediate children of the
    prefix; deeper levels need another call with the child as prefix.
    Directories are materialised by a hidden placeholder object.
    """

    def __init__(
        self,
        sentinel: str = DEFAULT_SENTINEL,
        placeholder_name: str = DEFAULT_PLACEHOLDER,
    ) -> None:
        self.sentinel = sentinel
        self.placeholder_name = placeholder_name

    def placeholder_key(self, directory: str) -> str:
        """Key of the placeholder that makes *directory* visible."""
        return dir_key(directory) + self.placeholder_name

    def _child(self, prefix: str, key: str) -> tuple[str, bool] | None:
        """Return ``(name, is_directory)`` for *key*, or None if it is filtered out."""
        if not key or key == prefix or not key.startswith(prefix):
            return None
        if self.sentinel and self.sentinel in key:
            return None

        relative = key[len(prefix):]
        if not relative or relative.startswith(".") or SEPARATOR * 2 in relative:
            return None

        segments = relative.split(SEPARATOR)
        name = segments[0]
        if not name.strip():
            return None
        return name, len(segments) > 1

    def reconstruct(self, prefix: str, keys: Iterable[str]) -> list[FileNode]:
        """Convert full keys under *prefix* into its immediate children.

        Skips the prefix itself, sentinel entries, dot-entries and keys
        with doubled separators. A directory seen through many descendants
        yields one node; a file and a directory sharing a name stay
        distinct. Directories sort before files, each group by name.
        """
        prefix = dir_key(prefix)
        children: set[tuple[str, bool]] = set()
        for key in keys:
            child = self._child(prefix, key)
            if child is not None:
                children.add(child)

        nodes = [
            FileNode(
                name=name,
                path=prefix + name + (SEPARATOR if is_directory else ""),
                is_directory=is_directory,
            )
            for name, is_directory in children
        ]
        nodes.sort(key=lambda node: (not node.is_directory, node.name))
        return nodes
