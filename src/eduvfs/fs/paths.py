"""VirtualPath and path/name utilities."""

from __future__ import annotations

import mimetypes
import posixpath
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

# =============================================================================
# Names
# =============================================================================

# Characters the access protocol reserves or that Windows clients reject
RESERVED_CHARACTERS = frozenset('\\/:*?"<>|')

# Documents the backend creates itself (empty office template)
OFFICE_EXTENSIONS = {".docx", ".xlsx", ".pptx"}


def normalize_path(path: str) -> str:
    """Normalize a virtual file system path.

    - Ensures leading /
    - Resolves .. and . references
    - Removes double slashes
    - Removes trailing slash (except for root)

    Examples:
        normalize_path("foo.txt") -> "/foo.txt"
        normalize_path("/foo//bar.txt") -> "/foo/bar.txt"
        normalize_path("/foo/../bar.txt") -> "/bar.txt"
        normalize_path("/foo/") -> "/foo"
        normalize_path("") -> "/"
    """
    if not path:
        return "/"

    path = path.strip()

    if not path.startswith("/"):
        path = "/" + path

    path = posixpath.normpath(path)

    # posixpath keeps a leading "//" as-is
    if path.startswith("//"):
        path = "/" + path.lstrip("/")

    if path != "/" and path.endswith("/"):
        path = path[:-1]

    return path


def validate_name(name: str) -> tuple[bool, str]:
    """Validate a single path segment for creation or renaming.

    Returns:
        (is_valid, error_message) - error_message is empty if valid
    """
    if not name or name in (".", ".."):
        return False, "Name must not be empty"

    for ch in name:
        if ch in RESERVED_CHARACTERS:
            return False, f"Name contains reserved character: {ch!r}"
        if ord(ch) < 0x20:
            return False, f"Name contains control character: 0x{ord(ch):02x}"

    if len(name) > 255:
        return False, "Name too long (max 255 characters)"

    return True, ""


def is_office_document(name: str) -> bool:
    """True when the backend can create *name* from an office template."""
    return PurePosixPath(name).suffix.lower() in OFFICE_EXTENSIONS


def guess_mime_type(filename: str) -> str:
    """Guess the MIME type of a file based on its name."""
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or "application/octet-stream"


# =============================================================================
# VirtualPath
# =============================================================================


@dataclass(frozen=True, slots=True)
class VirtualPath:
    """Immutable path inside one mount, stored as name segments.

    ``str(path)`` is the normalized form and doubles as the cache key.
    """

    segments: tuple[str, ...] = ()

    @classmethod
    def parse(cls, path: str | VirtualPath) -> VirtualPath:
        """Build a VirtualPath from a string, normalizing it first."""
        if isinstance(path, VirtualPath):
            return path
        normalized = normalize_path(path)
        if normalized == "/":
            return cls()
        return cls(tuple(normalized.strip("/").split("/")))

    @property
    def is_root(self) -> bool:
        return not self.segments

    @property
    def has_parent(self) -> bool:
        return bool(self.segments)

    @property
    def depth(self) -> int:
        return len(self.segments)

    @property
    def name(self) -> str:
        """Last segment, empty for the root."""
        return self.segments[-1] if self.segments else ""

    @property
    def parent(self) -> VirtualPath:
        """Parent path; the root is its own parent."""
        return VirtualPath(self.segments[:-1])

    @property
    def top_level(self) -> VirtualPath:
        """First-segment ancestor (``/A`` for ``/A/b/c``); root for root."""
        return VirtualPath(self.segments[:1])

    def child(self, name: str) -> VirtualPath:
        return VirtualPath((*self.segments, name))

    def with_name(self, name: str) -> VirtualPath:
        """Sibling path with the last segment replaced."""
        if self.is_root:
            raise ValueError("The root path has no name")
        return self.parent.child(name)

    def ancestors(self) -> Iterator[VirtualPath]:
        """Yield every proper ancestor, nearest first, ending with the root."""
        for i in range(len(self.segments) - 1, -1, -1):
            yield VirtualPath(self.segments[:i])

    def is_relative_to(self, other: VirtualPath) -> bool:
        """True when *other* is this path or one of its ancestors."""
        return self.segments[: len(other.segments)] == other.segments

    def relative_to(self, other: VirtualPath) -> tuple[str, ...]:
        """Segments below *other*; raises if *other* is not an ancestor."""
        if not self.is_relative_to(other):
            raise ValueError(f"{self} is not below {other}")
        return self.segments[len(other.segments) :]

    def __str__(self) -> str:
        return "/" + "/".join(self.segments)

    def __repr__(self) -> str:
        return f"VirtualPath({str(self)!r})"
