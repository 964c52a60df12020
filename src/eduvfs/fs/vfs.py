"""VFS — mount router presenting all mounts as one tree."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import AuthenticationRequiredError, ForbiddenError, ResourceExistsError
from .managers import ManagerRegistry
from .paths import normalize_path
from .types import FileInfo, ResourceType

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from datetime import datetime

    from eduvfs.auth.user import User

    from .managers import LockManager, PropertyManager
    from .mounts import MountConfig, MountRegistry
    from .types import Resource
    from .upload import UploadStream

logger = logging.getLogger(__name__)


class VFS:
    """Routes operations to mount filesystems via the mount registry.

    The tree root is virtual: it lists the mounts as directories
    and cannot be modified.  Moves between mounts are not supported
    because owner and parent ids mean different things per mount.
    """

    def __init__(self, registry: MountRegistry) -> None:
        self._registry = registry
        self._root_managers = ManagerRegistry()

    @property
    def registry(self) -> MountRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Path Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _is_root(path: str) -> bool:
        return normalize_path(path) == "/"

    @staticmethod
    def _require_user(user: User | None) -> User:
        if user is None:
            raise AuthenticationRequiredError("An authenticated session is required")
        return user

    def _resolve(self, path: str) -> tuple[MountConfig, str]:
        mount, relative = self._registry.resolve(path)
        return mount, str(relative)

    def _prefix_entries(self, entries: list[FileInfo], mount: MountConfig) -> list[FileInfo]:
        for entry in entries:
            entry.path = mount.mount_path + entry.path
        return entries

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def list_dir(self, path: str, user: User | None) -> list[FileInfo]:
        user = self._require_user(user)
        if self._is_root(path):
            return [
                FileInfo(path=m.mount_path, name=m.name, is_directory=True)
                for m in self._registry.list_mounts()
            ]
        mount, rel = self._resolve(path)
        return self._prefix_entries(await mount.filesystem.list_dir(rel, user), mount)

    async def exists(self, path: str, user: User | None) -> bool:
        user = self._require_user(user)
        if self._is_root(path):
            return True
        mount, rel = self._resolve(path)
        return await mount.filesystem.exists(rel, user)

    async def open_read(self, path: str, user: User | None) -> AsyncIterator[bytes]:
        mount, rel = self._resolve(path)
        return await mount.filesystem.open_read(rel, user)

    async def read_bytes(self, path: str, user: User | None) -> bytes:
        mount, rel = self._resolve(path)
        return await mount.filesystem.read_bytes(rel, user)

    async def type(self, path: str, user: User | None) -> ResourceType | None:
        if self._is_root(path):
            self._require_user(user)
            return ResourceType.DIRECTORY
        mount, rel = self._resolve(path)
        return await mount.filesystem.type(rel, user)

    async def size(self, path: str, user: User | None) -> int | None:
        if self._is_root(path):
            self._require_user(user)
            return None
        mount, rel = self._resolve(path)
        return await mount.filesystem.size(rel, user)

    async def creation_date(self, path: str, user: User | None) -> datetime | None:
        if self._is_root(path):
            self._require_user(user)
            return None
        mount, rel = self._resolve(path)
        return await mount.filesystem.creation_date(rel, user)

    async def last_modified_date(self, path: str, user: User | None) -> datetime | None:
        if self._is_root(path):
            self._require_user(user)
            return None
        mount, rel = self._resolve(path)
        return await mount.filesystem.last_modified_date(rel, user)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def create(
        self, path: str, user: User | None, kind: ResourceType = ResourceType.FILE
    ) -> Resource:
        if self._is_root(path):
            raise ResourceExistsError("The root already exists")
        mount, rel = self._resolve(path)
        if rel == "/":
            raise ResourceExistsError(f"{mount.mount_path} already exists")
        return await mount.filesystem.create(rel, user, kind)

    async def open_write(self, path: str, user: User | None) -> UploadStream:
        if self._is_root(path):
            raise ForbiddenError("The root is a directory")
        mount, rel = self._resolve(path)
        return await mount.filesystem.open_write(rel, user)

    async def write_bytes(self, path: str, content: bytes, user: User | None) -> Resource:
        if self._is_root(path):
            raise ForbiddenError("The root is a directory")
        mount, rel = self._resolve(path)
        return await mount.filesystem.write_bytes(rel, content, user)

    async def delete(self, path: str, user: User | None) -> None:
        if self._is_root(path):
            raise ForbiddenError("The root cannot be deleted")
        mount, rel = self._resolve(path)
        await mount.filesystem.delete(rel, user)

    async def rename(self, path: str, new_name: str, user: User | None) -> None:
        if self._is_root(path):
            raise ForbiddenError("The root cannot be renamed")
        mount, rel = self._resolve(path)
        await mount.filesystem.rename(rel, new_name, user)

    async def move(self, src: str, dest: str, user: User | None) -> None:
        if self._is_root(src) or self._is_root(dest):
            raise ForbiddenError("The root cannot be moved or replaced")
        src_mount, src_rel = self._resolve(src)
        dest_mount, dest_rel = self._resolve(dest)
        if src_mount.mount_path != dest_mount.mount_path:
            raise ForbiddenError(
                f"Cannot move between mounts ({src_mount.mount_path} -> {dest_mount.mount_path})"
            )
        await src_mount.filesystem.move(src_rel, dest_rel, user)

    # ------------------------------------------------------------------
    # Pass-throughs
    # ------------------------------------------------------------------

    def property_manager(self, path: str) -> PropertyManager:
        if self._is_root(path):
            return self._root_managers.property_manager("/")
        mount, rel = self._resolve(path)
        return mount.filesystem.property_manager(rel)

    def lock_manager(self, path: str) -> LockManager:
        if self._is_root(path):
            return self._root_managers.lock_manager("/")
        mount, rel = self._resolve(path)
        return mount.filesystem.lock_manager(rel)
