"""ResourceCache — per-user, path-keyed store of backend metadata.

Each user owns a segment with its own lock, so operations for different
users never contend.  Every public method is atomic with respect to its
segment, including the subtree operations used by delete and rekey: a
directory's cached descendants are removed or moved together with it, so
no descendant is ever left without its ancestors.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .paths import VirtualPath

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from .types import Resource

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    resource: Resource
    stored_at: float


@dataclass
class _Segment:
    entries: dict[str, _Entry] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def subtree_keys(self, key: str) -> list[str]:
        if key == "/":
            return list(self.entries)
        prefix = key + "/"
        return [k for k in self.entries if k == key or k.startswith(prefix)]

    def drop_subtree(self, key: str) -> int:
        keys = self.subtree_keys(key)
        for k in keys:
            del self.entries[k]
        return len(keys)


def _key(path: VirtualPath | str) -> str:
    return str(VirtualPath.parse(path))


class ResourceCache:
    """Keyed store of ``(user_id, path) -> Resource``.

    Args:
        ttl: Seconds an entry stays trusted.  ``None`` or ``0`` disables
            expiry; entries then live until deleted or invalidated.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl if ttl else None
        self._clock = clock
        self._segments: dict[str, _Segment] = {}
        self._segments_lock = threading.Lock()

    @property
    def ttl(self) -> float | None:
        return self._ttl

    def _segment(self, user_id: str) -> _Segment:
        segment = self._segments.get(user_id)
        if segment is None:
            with self._segments_lock:
                segment = self._segments.setdefault(user_id, _Segment())
        return segment

    def _expired(self, entry: _Entry) -> bool:
        return self._ttl is not None and self._clock() - entry.stored_at > self._ttl

    # ------------------------------------------------------------------
    # Single entries
    # ------------------------------------------------------------------

    def get(self, user_id: str, path: VirtualPath | str) -> Resource | None:
        """Return the cached resource, or None when absent or expired.

        An expired entry is dropped together with its descendants.
        """
        key = _key(path)
        segment = self._segment(user_id)
        with segment.lock:
            entry = segment.entries.get(key)
            if entry is None:
                return None
            if self._expired(entry):
                dropped = segment.drop_subtree(key)
                logger.debug("Expired %s for %s (%d entries)", key, user_id, dropped)
                return None
            return entry.resource

    def has(self, user_id: str, path: VirtualPath | str) -> bool:
        return self.get(user_id, path) is not None

    def put(self, user_id: str, path: VirtualPath | str, resource: Resource) -> None:
        segment = self._segment(user_id)
        with segment.lock:
            segment.entries[_key(path)] = _Entry(resource, self._clock())

    def add(self, user_id: str, path: VirtualPath | str, resource: Resource) -> bool:
        """Insert *resource* only while its parent is cached.  True on success."""
        vpath = VirtualPath.parse(path)
        segment = self._segment(user_id)
        with segment.lock:
            if not vpath.is_root and str(vpath.parent) not in segment.entries:
                return False
            segment.entries[str(vpath)] = _Entry(resource, self._clock())
            return True

    def delete(self, user_id: str, path: VirtualPath | str) -> bool:
        """Remove *path* and everything cached below it.  True if it was present."""
        key = _key(path)
        segment = self._segment(user_id)
        with segment.lock:
            present = key in segment.entries
            segment.drop_subtree(key)
            return present

    def move_key(
        self,
        user_id: str,
        src: VirtualPath | str,
        dest: VirtualPath | str,
    ) -> bool:
        """Rekey *src* (and its cached subtree) to *dest*, preserving entries.

        Anything previously cached at *dest* is replaced.  Returns False and
        changes nothing when *src* is not cached.
        """
        src_key = _key(src)
        dest_key = _key(dest)
        if src_key == dest_key:
            return self.has(user_id, src_key)
        segment = self._segment(user_id)
        with segment.lock:
            if src_key not in segment.entries:
                return False
            moved = {
                dest_key + k[len(src_key) :]: segment.entries[k]
                for k in segment.subtree_keys(src_key)
            }
            segment.drop_subtree(src_key)
            segment.drop_subtree(dest_key)
            segment.entries.update(moved)
            return True

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def put_children(
        self,
        user_id: str,
        parent: VirtualPath | str,
        children: Mapping[str, Resource],
    ) -> bool:
        """Replace the cached children of *parent* with a fresh listing.

        Children no longer returned by the backend are dropped along with
        their subtrees.  Cached descendants of children that are still
        present are kept, and *parent* itself is renewed.  Refuses (returns
        False) when *parent* is no longer cached, so a listing never lands
        below a missing ancestor.
        """
        parent_path = VirtualPath.parse(parent)
        parent_key = str(parent_path)
        segment = self._segment(user_id)
        with segment.lock:
            if parent_key not in segment.entries:
                return False
            now = self._clock()
            segment.entries[parent_key].stored_at = now
            fresh = {str(parent_path.child(name)) for name in children}
            for key in self._child_keys(segment, parent_path):
                if key not in fresh:
                    segment.drop_subtree(key)
            for name, resource in children.items():
                segment.entries[str(parent_path.child(name))] = _Entry(resource, now)
            return True

    def children(self, user_id: str, parent: VirtualPath | str) -> dict[str, Resource]:
        """Return the cached direct children of *parent*, keyed by name."""
        parent_path = VirtualPath.parse(parent)
        segment = self._segment(user_id)
        with segment.lock:
            return {
                key.rsplit("/", 1)[-1]: segment.entries[key].resource
                for key in self._child_keys(segment, parent_path)
                if not self._expired(segment.entries[key])
            }

    @staticmethod
    def _child_keys(segment: _Segment, parent: VirtualPath) -> list[str]:
        depth = parent.depth + 1
        return [
            key
            for key in segment.subtree_keys(str(parent))
            if key != "/" and key.count("/") == depth
        ]

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def clear(self, user_id: str | None = None) -> None:
        """Drop one user's segment, or every segment when *user_id* is None."""
        with self._segments_lock:
            if user_id is None:
                self._segments.clear()
            else:
                self._segments.pop(user_id, None)

    def paths(self, user_id: str) -> list[str]:
        """All cached keys for *user_id*, sorted."""
        segment = self._segment(user_id)
        with segment.lock:
            return sorted(segment.entries)

    def __len__(self) -> int:
        return sum(len(s.entries) for s in list(self._segments.values()))
