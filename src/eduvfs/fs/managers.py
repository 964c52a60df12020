"""In-memory property and lock managers.

The filesystem does not implement dead properties or locking itself; the
protocol server stores them here, per path, for the mount's lifetime.
Locks are recorded and listed but never enforced.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


class PropertyManager:
    """Dead properties of one path."""

    def __init__(self) -> None:
        self._props: dict[str, Any] = {}

    def get_property(self, name: str) -> Any:
        return self._props.get(name)

    def set_property(self, name: str, value: Any) -> None:
        self._props[name] = value

    def remove_property(self, name: str) -> bool:
        return self._props.pop(name, None) is not None

    def get_properties(self) -> dict[str, Any]:
        return dict(self._props)


@dataclass(frozen=True)
class LockInfo:
    """A lock recorded by the protocol server."""

    owner: str
    token: str = field(default_factory=lambda: f"opaquelocktoken:{uuid.uuid4()}")
    exclusive: bool = True
    depth: int = 0
    timeout: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class LockManager:
    """Locks recorded on one path."""

    def __init__(self) -> None:
        self._locks: dict[str, LockInfo] = {}

    def add_lock(self, lock: LockInfo) -> None:
        self._locks[lock.token] = lock

    def remove_lock(self, token: str) -> bool:
        return self._locks.pop(token, None) is not None

    def get_lock(self, token: str) -> LockInfo | None:
        return self._locks.get(token)

    def get_locks(self) -> list[LockInfo]:
        return list(self._locks.values())


class ManagerRegistry:
    """Lazily creates one property manager and one lock manager per path."""

    def __init__(self) -> None:
        self._props: dict[str, PropertyManager] = {}
        self._locks: dict[str, LockManager] = {}
        self._lock = threading.Lock()

    def property_manager(self, path: str) -> PropertyManager:
        with self._lock:
            return self._props.setdefault(path, PropertyManager())

    def lock_manager(self, path: str) -> LockManager:
        with self._lock:
            return self._locks.setdefault(path, LockManager())

    def move(self, src: str, dest: str) -> None:
        """Carry properties and locks along with a rename or move."""
        with self._lock:
            for store in (self._props, self._locks):
                if src in store:
                    store[dest] = store.pop(src)

    def forget(self, path: str) -> None:
        with self._lock:
            self._props.pop(path, None)
            self._locks.pop(path, None)
