"""Capabilities: parsing ``"path:perm"`` strings and authorizing keys against them.

Authorization here is a client-side hint. The remote store enforces its own
rules; this layer only decides whether the UI should offer a write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from .exceptions import InvalidCapabilityError
from .utils import DEFAULT_SCHEME, owner_root

if TYPE_CHECKING:
    from collections.abc import Iterable

PUBLIC_PREFIX = "/pub/"


class Permission(str, Enum):
    """A single permission a capability can grant."""

    READ = "r"
    WRITE = "w"


class CapabilityMatch(str, Enum):
    """How a grant path is compared with a target path.

    ``BIDIRECTIONAL`` authorizes when either path is a prefix of the other,
    so a grant on ``/pub/app/sub/`` also covers the ancestor ``/pub/app/``.
    ``CONTAINMENT`` only authorizes targets inside the grant.
    """

    BIDIRECTIONAL = "bidirectional"
    CONTAINMENT = "containment"


@dataclass(frozen=True)
class CapabilityGrant:
    """``{path_prefix, permissions}`` parsed from ``"/pub/app/:rw"``."""

    path_prefix: str
    permissions: frozenset[Permission]

    def __post_init__(self) -> None:
        if not self.path_prefix.startswith(PUBLIC_PREFIX):
            raise InvalidCapabilityError(
                f"Capability path must start with {PUBLIC_PREFIX}: {self.path_prefix!r}"
            )
        if not self.permissions:
            raise InvalidCapabilityError(f"Capability grants no permissions: {self.path_prefix!r}")

    def allows(self, permission: Permission) -> bool:
        return permission in self.permissions

    def matches(self, target_path: str, match: CapabilityMatch = CapabilityMatch.BIDIRECTIONAL) -> bool:
        if target_path.startswith(self.path_prefix):
            return True
        return match is CapabilityMatch.BIDIRECTIONAL and self.path_prefix.startswith(target_path)

    def __str__(self) -> str:
        perms = "".join(p.value for p in Permission if p in self.permissions)
        return f"{self.path_prefix}:{perms}"


def parse_capability(capability: str) -> CapabilityGrant:
    """Parse one ``"path:perm"`` string, e.g. ``"/pub/app/:rw"``.

    Raises :class:`InvalidCapabilityError` instead of silently granting nothing.
    """
    text = capability.strip()
    path, sep, perms = text.rpartition(":")
    if not sep or not path:
        raise InvalidCapabilityError(
            f"Capability must look like '/pub/path/:rw', got {capability!r}"
        )
    if not perms:
        raise InvalidCapabilityError(f"Capability has no permissions: {capability!r}")

    permissions: set[Permission] = set()
    for ch in perms:
        try:
            permissions.add(Permission(ch))
        except ValueError:
            raise InvalidCapabilityError(
                f"Unknown permission {ch!r} in capability {capability!r}"
            ) from None
    return CapabilityGrant(path_prefix=path, permissions=frozenset(permissions))


def parse_capabilities(capabilities: Iterable[str]) -> list[CapabilityGrant]:
    """Parse several capability strings, dropping exact duplicates."""
    grants: list[CapabilityGrant] = []
    for capability in capabilities:
        grant = parse_capability(capability)
        if grant not in grants:
            grants.append(grant)
    return grants


def authorize(
    capabilities: Iterable[CapabilityGrant],
    owner_id: str,
    target_key: str,
    required: Permission,
    *,
    scheme: str = DEFAULT_SCHEME,
    match: CapabilityMatch = CapabilityMatch.BIDIRECTIONAL,
) -> bool:
    """Check whether *capabilities* let *owner_id* perform *required* on *target_key*.

    Only keys under the owner's own ``/pub/`` subtree can be authorized;
    every other owner's key is denied. No network access.
    """
    own_public = owner_root(owner_id, scheme) + PUBLIC_PREFIX.lstrip("/")
    if not target_key.startswith(own_public):
        return False

    target_path = PUBLIC_PREFIX + target_key[len(own_public):]
    return any(
        grant.allows(required) and grant.matches(target_path, match)
        for grant in capabilities
    )


@dataclass
class CapabilitySet:
    """The capabilities held by one identity."""

    owner_id: str
    grants: list[CapabilityGrant] = field(default_factory=list)
    scheme: str = DEFAULT_SCHEME
    match: CapabilityMatch = CapabilityMatch.BIDIRECTIONAL

    @classmethod
    def from_strings(
        cls,
        owner_id: str,
        capabilities: Iterable[str],
        *,
        scheme: str = DEFAULT_SCHEME,
        match: CapabilityMatch = CapabilityMatch.BIDIRECTIONAL,
    ) -> CapabilitySet:
        return cls(owner_id, parse_capabilities(capabilities), scheme, match)

    def authorize(self, target_key: str, required: Permission) -> bool:
        return authorize(
            self.grants,
            self.owner_id,
            target_key,
            required,
            scheme=self.scheme,
            match=self.match,
        )

    def can_read(self, target_key: str) -> bool:
        return self.authorize(target_key, Permission.READ)

    def can_write(self, target_key: str) -> bool:
        return self.authorize(target_key, Permission.WRITE)

    def to_strings(self) -> list[str]:
        return [str(grant) for grant in self.grants]
