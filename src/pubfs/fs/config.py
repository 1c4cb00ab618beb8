"""FileSystemConfig — settings shared by the filesystem, cache and blob layers."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING

from .cache import DEFAULT_TTL
from .directories import DEFAULT_PLACEHOLDER, DEFAULT_SENTINEL
from .permissions import CapabilityMatch
from .utils import DEFAULT_SCHEME

if TYPE_CHECKING:
    from collections.abc import Mapping

DEFAULT_TIMEOUT = 30.0


@dataclass
class FileSystemConfig:
    """Configuration for one :class:`~pubfs.fs.filesystem.FileSystem`."""

    scheme: str = DEFAULT_SCHEME
    """Key scheme, e.g. ``pubky`` in ``pubky://<owner>/pub/...``."""

    timeout: float = DEFAULT_TIMEOUT
    """Seconds allowed for each store call; a timeout counts as a failure."""

    cache_ttl: float = DEFAULT_TTL
    """Seconds a cached file or listing stays valid."""

    sentinel: str = DEFAULT_SENTINEL
    """Substring marking store entries that are not files."""

    placeholder_name: str = DEFAULT_PLACEHOLDER
    """Name of the empty object that materialises a directory."""

    cache_sweep_interval: float | None = None
    """If set, sweep expired cache entries this often while open."""

    capability_match: CapabilityMatch = CapabilityMatch.BIDIRECTIONAL
    """How capability paths are compared with target paths."""

    def __post_init__(self) -> None:
        self.scheme = self.scheme.strip().removesuffix("://")
        if not self.scheme:
            raise ValueError("scheme must not be empty")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")
        if self.cache_ttl < 0:
            raise ValueError(f"cache_ttl must be >= 0, got {self.cache_ttl}")
        if self.cache_sweep_interval is not None and self.cache_sweep_interval <= 0:
            raise ValueError(
                f"cache_sweep_interval must be > 0, got {self.cache_sweep_interval}"
            )
        if not self.placeholder_name.startswith("."):
            raise ValueError(
                f"placeholder_name must be a dot-file so listings hide it: {self.placeholder_name!r}"
            )
        self.capability_match = CapabilityMatch(self.capability_match)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        prefix: str = "PUBFS_",
    ) -> FileSystemConfig:
        """Build a config from ``PUBFS_*`` variables, defaulting the rest.

        ``PUBFS_CACHE_SWEEP_INTERVAL`` may be empty to disable sweeping.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for f in fields(cls):
            raw = env.get(prefix + f.name.upper())
            if raw is None:
                continue
            raw = raw.strip()
            if f.name in ("timeout", "cache_ttl"):
                values[f.name] = _parse_float(f.name, raw)
            elif f.name == "cache_sweep_interval":
                values[f.name] = _parse_float(f.name, raw) if raw else None
            else:
                values[f.name] = raw
        return cls(**values)  # type: ignore[arg-type]


def _parse_float(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Invalid number for {name}: {raw!r}") from None
