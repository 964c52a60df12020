"""MountRegistry and MountConfig."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .exceptions import MountNotFoundError
from .paths import VirtualPath, normalize_path

if TYPE_CHECKING:
    from .web_fs import WebFileSystem


@dataclass
class MountConfig:
    """Configuration for a single mount point."""

    mount_path: str
    """Virtual path prefix, e.g. "/courses", "/my"."""

    filesystem: WebFileSystem
    """Filesystem serving everything below the prefix."""

    label: str = ""
    """Display name for the mount."""

    def __post_init__(self) -> None:
        self.mount_path = normalize_path(self.mount_path).rstrip("/")
        if not self.mount_path:
            raise ValueError("A mount cannot be placed at the tree root")
        if not self.label:
            self.label = self.mount_path.lstrip("/")

    @property
    def name(self) -> str:
        return self.mount_path.lstrip("/")


class MountRegistry:
    """Registry of active mount points.

    Resolves virtual paths to (MountConfig, relative path) tuples.
    """

    def __init__(self) -> None:
        self._mounts: dict[str, MountConfig] = {}

    def add_mount(self, config: MountConfig) -> None:
        """Add or replace a mount point."""
        self._mounts[config.mount_path] = config

    def resolve(self, virtual_path: str) -> tuple[MountConfig, VirtualPath]:
        """Resolve a virtual path to its mount and mount-relative path.

        Finds the longest matching mount prefix and strips it.
        """
        virtual_path = normalize_path(virtual_path)

        best_match: MountConfig | None = None
        best_len = 0

        for mount_path, config in self._mounts.items():
            if (virtual_path == mount_path or virtual_path.startswith(mount_path + "/")) and len(
                mount_path
            ) > best_len:
                best_match = config
                best_len = len(mount_path)

        if best_match is None:
            raise MountNotFoundError(f"No mount found for path: {virtual_path}")

        return best_match, VirtualPath.parse(virtual_path[best_len:])

    def list_mounts(self) -> list[MountConfig]:
        """List all registered mounts, sorted by mount_path."""
        return sorted(self._mounts.values(), key=lambda m: m.mount_path)

