"""Key utilities and content-type resolution."""

from __future__ import annotations

import mimetypes
import re
from dataclasses import dataclass

from .exceptions import InvalidKeyError

DEFAULT_SCHEME = "pubky"
SEPARATOR = "/"
OCTET_STREAM = "application/octet-stream"

_KEY_RE = re.compile(r"^(?P<scheme>[A-Za-z][A-Za-z0-9+.-]*)://(?P<owner>[^/]+)(?P<path>/.*)?$")
_DUPLICATE_SLASHES_RE = re.compile(r"([^:]/)/+")

# =============================================================================
# Content types
# =============================================================================

EXTENSION_CONTENT_TYPES = {
    # Images
    "jpg": "image/jpeg", "jpeg": "image/jpeg", "png": "image/png",
    "gif": "image/gif", "webp": "image/webp", "svg": "image/svg+xml",
    "bmp": "image/bmp", "ico": "image/x-icon", "tiff": "image/tiff",
    "tif": "image/tiff",
    # Video
    "mp4": "video/mp4", "webm": "video/webm", "ogv": "video/ogg",
    "avi": "video/x-msvideo", "mov": "video/quicktime", "wmv": "video/x-ms-wmv",
    "flv": "video/x-flv", "mkv": "video/x-matroska",
    # Audio
    "mp3": "audio/mpeg", "wav": "audio/wav", "flac": "audio/flac",
    "ogg": "audio/ogg", "m4a": "audio/mp4",
    # Documents / archives
    "pdf": "application/pdf", "zip": "application/zip",
    "json": "application/json", "txt": "text/plain", "md": "text/markdown",
}

_ZIP_TRAILERS = (b"\x03\x04", b"\x05\x06", b"\x07\x08")


# =============================================================================
# Key Utilities
# =============================================================================


@dataclass(frozen=True)
class ParsedKey:
    """A key split into scheme, owner and absolute path."""

    scheme: str
    owner_id: str
    path: str

    @property
    def root(self) -> str:
        return owner_root(self.owner_id, self.scheme)


def parse_key(key: str) -> ParsedKey:
    """Split ``<scheme>://<owner>/<path>`` into its parts.

    Examples:
        parse_key("pubky://alice/pub/a.txt") -> ParsedKey("pubky", "alice", "/pub/a.txt")
        parse_key("pubky://alice") -> ParsedKey("pubky", "alice", "/")
    """
    match = _KEY_RE.match(key.strip()) if key else None
    if match is None:
        raise InvalidKeyError(f"Not a valid key: {key!r}")
    return ParsedKey(
        scheme=match.group("scheme"),
        owner_id=match.group("owner"),
        path=match.group("path") or SEPARATOR,
    )


def validate_key(key: str) -> tuple[bool, str]:
    """Validate a key. Returns ``(is_valid, error_message)``."""
    if not key:
        return False, "Key is empty"
    if "\x00" in key:
        return False, "Key contains null bytes"
    try:
        parse_key(key)
    except InvalidKeyError as e:
        return False, str(e)
    return True, ""


def owner_root(owner_id: str, scheme: str = DEFAULT_SCHEME) -> str:
    """Return ``<scheme>://<owner>/``."""
    return f"{scheme}://{owner_id}/"


def normalize_key(key: str) -> str:
    """Collapse duplicate slashes after the scheme separator.

    Examples:
        normalize_key("pubky://alice//pub///a.txt") -> "pubky://alice/pub/a.txt"
    """
    if not key:
        return key
    return _DUPLICATE_SLASHES_RE.sub(r"\1", key.strip())


def dir_key(key: str) -> str:
    """Ensure *key* ends with the separator."""
    return key if key.endswith(SEPARATOR) else key + SEPARATOR


def join_key(directory: str, name: str) -> str:
    """Join a directory key and a child name."""
    return dir_key(directory) + name.lstrip(SEPARATOR)


def parent_key(key: str) -> str | None:
    """Return the parent directory key (with trailing separator).

    Returns ``None`` for the owner root, which has no parent.

    Examples:
        parent_key("pubky://alice/pub/a/b.txt") -> "pubky://alice/pub/a/"
        parent_key("pubky://alice/pub/a/") -> "pubky://alice/pub/"
        parent_key("pubky://alice/") -> None
    """
    parsed = parse_key(key)
    path = parsed.path.rstrip(SEPARATOR)
    if not path:
        return None
    parent_path = path[: path.rindex(SEPARATOR) + 1]
    return parsed.root + parent_path.lstrip(SEPARATOR)


def key_name(key: str) -> str:
    """Return the last segment of *key*, without any trailing separator."""
    return key.rstrip(SEPARATOR).rsplit(SEPARATOR, 1)[-1]


def is_own_key(owner_id: str, key: str, scheme: str = DEFAULT_SCHEME) -> bool:
    """Check whether *key* lives under *owner_id*'s root."""
    return key.startswith(owner_root(owner_id, scheme))


def get_extension(name: str) -> str:
    """Lower-cased extension without the dot, or ``""``."""
    if "." not in name or name.endswith("."):
        return ""
    return name.rsplit(".", 1)[-1].lower()


# =============================================================================
# Content-type resolution
# =============================================================================


def guess_content_type(name: str) -> str | None:
    """Content type from the file extension, or ``None`` if unknown."""
    ext = get_extension(name)
    if not ext:
        return None
    if ext in EXTENSION_CONTENT_TYPES:
        return EXTENSION_CONTENT_TYPES[ext]
    mime_type, _ = mimetypes.guess_type(f"file.{ext}")
    return mime_type


def sniff_content_type(data: bytes) -> str:
    """Content type from the leading magic bytes of *data*."""
    header = bytes(data[:12])

    if header.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if header.startswith(b"\x89PNG"):
        return "image/png"
    if header.startswith(b"GIF8"):
        return "image/gif"
    if header.startswith(b"RIFF") and header[8:12] == b"WEBP":
        return "image/webp"
    if header.startswith(b"BM"):
        return "image/bmp"
    if header.startswith(b"%PDF"):
        return "application/pdf"
    if header[4:8] == b"ftyp":
        return "video/mp4"
    if header.startswith(b"PK") and header[2:4] in _ZIP_TRAILERS:
        return "application/zip"
    return OCTET_STREAM


def resolve_content_type(name: str, data: bytes) -> str:
    """Prefer the extension mapping; fall back to magic bytes."""
    return guess_content_type(name) or sniff_content_type(data)
