"""Custom exception hierarchy and error kinds for the pubfs filesystem layer."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Why an operation failed, carried on every result type."""

    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    NETWORK_FAILURE = "network_failure"
    VALIDATION = "validation"
    PARTIAL_FAILURE = "partial_failure"


class PubfsError(Exception):
    """Base exception for all pubfs errors."""


class StorageError(PubfsError):
    """Raised on object store failures (transport, database, I/O)."""


class AccessDeniedError(StorageError):
    """Raised when the object store refuses a request for the current identity."""


class InvalidKeyError(PubfsError, ValueError):
    """Raised when a key is not of the form ``<scheme>://<owner>/<path>``."""


class InvalidCapabilityError(PubfsError, ValueError):
    """Raised when a capability string cannot be parsed."""


class BlobMetadataError(PubfsError):
    """Raised when a blob metadata record is missing or malformed."""


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception raised below the facade to an :class:`ErrorKind`."""
    if isinstance(exc, AccessDeniedError):
        return ErrorKind.UNAUTHORIZED
    if isinstance(exc, (InvalidKeyError, BlobMetadataError, UnicodeDecodeError)):
        return ErrorKind.VALIDATION
    return ErrorKind.NETWORK_FAILURE
