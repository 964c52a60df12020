"""WebFileSystem — one mount of the backend exposed as a file tree.

Each public method is one protocol verb.  Paths are relative to the mount
(``/A/sub/doc.txt`` inside ``/courses``).  Every method:

1. requires an authenticated ``User``,
2. resolves the path through the cache, loading ancestors lazily,
3. checks permissions locally before any mutating backend call,
4. calls the backend and updates the cache only on success.

Backend errors are translated: 401/403 become ``ForbiddenError``, 404
invalidates the cached entry and becomes ``ResourceNotFoundError``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from eduvfs.api.client import ApiError

from .cache import ResourceCache
from .exceptions import (
    AuthenticationRequiredError,
    BackendError,
    EduVFSError,
    ForbiddenError,
    InvalidOperationError,
    ResourceExistsError,
    ResourceNotFoundError,
)
from .managers import ManagerRegistry
from .paths import VirtualPath, is_office_document, validate_name
from .permissions import Permission
from .resolver import PathResolver
from .types import FileInfo, ResourceType
from .upload import UploadPipeline, UploadTarget, resource_for_new_object
from .views import VIEWS, RootView

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from datetime import datetime

    from eduvfs.api.client import CloudClient
    from eduvfs.auth.user import User

    from .managers import LockManager, PropertyManager
    from .types import Resource
    from .upload import UploadStream

logger = logging.getLogger(__name__)

DEFAULT_DELETE_PERMISSION = "FILESTORAGE_REMOVE"


class WebFileSystem:
    """Capability implementation for one mount (personal, courses, teams, shared).

    Args:
        client: Backend REST client.
        view: Root view policy, or its name (``"my"``, ``"courses"``,
            ``"teams"``, ``"shared"``).
        cache: Resource cache owned by this mount.  Created if omitted.
        cache_ttl: Freshness of cache entries in seconds when *cache* is
            omitted.  ``None`` keeps entries until invalidated.
        delete_permission: Coarse session flag required to delete.
    """

    def __init__(
        self,
        client: CloudClient,
        view: RootView | str,
        *,
        cache: ResourceCache | None = None,
        cache_ttl: float | None = None,
        delete_permission: str = DEFAULT_DELETE_PERMISSION,
    ) -> None:
        if isinstance(view, str):
            try:
                view = VIEWS[view]()
            except KeyError:
                raise ValueError(f"Unknown view {view!r}; expected one of {sorted(VIEWS)}") from None
        self._client = client
        self._view = view
        self._cache = cache if cache is not None else ResourceCache(cache_ttl)
        self._resolver = PathResolver(client, view, self._cache)
        self._uploads = UploadPipeline(client, view, self._cache)
        self._managers = ManagerRegistry()
        self._delete_permission = delete_permission

    @property
    def name(self) -> str:
        return self._view.name

    @property
    def view(self) -> RootView:
        return self._view

    @property
    def cache(self) -> ResourceCache:
        return self._cache

    @property
    def resolver(self) -> PathResolver:
        return self._resolver

    def __repr__(self) -> str:
        return f"WebFileSystem({self._view.name!r})"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_user(user: User | None) -> User:
        if user is None or not user.uid:
            raise AuthenticationRequiredError("An authenticated session is required")
        return user

    @staticmethod
    def _check_name(name: str) -> None:
        valid, message = validate_name(name)
        if not valid:
            raise ForbiddenError(message)

    def _translate(
        self,
        error: ApiError,
        user: User,
        path: VirtualPath,
        *,
        rename: bool = False,
    ) -> EduVFSError:
        """Map a backend error to the filesystem taxonomy."""
        if error.is_not_found:
            self._resolver.invalidate(user, path)
            return ResourceNotFoundError(f"{self.name}:{path} no longer exists")
        if error.is_forbidden:
            return ForbiddenError(f"Backend denied access to {self.name}:{path}")
        if rename:
            return InvalidOperationError(f"Backend rejected renaming {self.name}:{path}: {error}")
        logger.warning("Backend failure on %s:%s: %s", self.name, path, error)
        return BackendError(f"Backend failure on {self.name}:{path}: {error}")

    async def _resolve(self, user: User, path: VirtualPath) -> Resource:
        """Cached Resource for *path*; raises ``ResourceNotFoundError``."""
        try:
            resource = await self._resolver.resolve(path, user)
        except ApiError as e:
            raise self._translate(e, user, path) from e
        if resource is None:
            raise ResourceNotFoundError(f"{self.name}:{path} does not exist")
        return resource

    async def _resolve_directory(self, user: User, path: VirtualPath) -> Resource:
        """Resolve *path* as a directory with its permissions hydrated."""
        resource = await self._resolve(user, path)
        if not resource.is_directory:
            raise ForbiddenError(f"{self.name}:{path} is not a directory")
        try:
            return await self._resolver.hydrate(user, resource)
        except ApiError as e:
            raise self._translate(e, user, path) from e

    async def _siblings(self, user: User, directory: VirtualPath) -> dict[str, Resource]:
        """Fresh listing of *directory*, used for name-collision checks."""
        try:
            children = await self._resolver.load_directory(user, directory)
        except ApiError as e:
            raise self._translate(e, user, directory) from e
        if children is None:
            raise ResourceNotFoundError(f"{self.name}:{directory} does not exist")
        return children

    def _require(self, resource: Resource, permission: Permission, path: VirtualPath) -> None:
        if not resource.permissions.allows(permission):
            raise ForbiddenError(f"No {permission.value} permission on {self.name}:{path}")

    def _require_mutable(self, path: VirtualPath) -> None:
        """Mount roots and synthesized course/team directories are fixed."""
        if path.is_root:
            raise ForbiddenError(f"The root of {self.name} cannot be changed")
        if self._view.synthesized_top_level and path.depth == 1:
            raise ForbiddenError(f"{self.name}:{path} is managed by the backend")

    def _new_file_target(self, user: User, path: VirtualPath, parent: Resource) -> UploadTarget:
        """Upload target for a new file below the already-resolved *parent*."""
        owner = self._view.owner_id(user, path, self._cache)
        if owner is None:
            raise ForbiddenError(f"Cannot determine the owner of {self.name}:{path}")
        return UploadTarget(
            path,
            owner=owner,
            parent_id=self._view.directory_id(path.parent, parent),
            permissions=parent.permissions,
            team_role=self._view.team_role(user, path, self._cache),
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def list_dir(self, path: str | VirtualPath, user: User | None) -> list[FileInfo]:
        """Children of a directory.

        The mount root lists the view's top level as-is; other directories
        only return children the user may read.
        """
        user = self._require_user(user)
        vpath = VirtualPath.parse(path)

        if vpath.is_root:
            try:
                children = await self._resolver.refresh_top_level(user)
            except ApiError as e:
                raise self._translate(e, user, vpath) from e
            return [
                FileInfo.from_resource(str(vpath.child(name)), resource)
                for name, resource in sorted(children.items())
            ]

        resource = await self._resolve(user, vpath)
        if not resource.is_directory:
            raise InvalidOperationError(f"{self.name}:{vpath} is not a directory")
        children = await self._siblings(user, vpath)
        return [
            FileInfo.from_resource(str(vpath.child(name)), child)
            for name, child in sorted(children.items())
            if child.permissions.read
        ]

    async def exists(self, path: str | VirtualPath, user: User | None) -> bool:
        user = self._require_user(user)
        try:
            return await self._resolver.load_path(VirtualPath.parse(path), user)
        except ApiError as e:
            raise self._translate(e, user, VirtualPath.parse(path)) from e

    async def open_read(self, path: str | VirtualPath, user: User | None) -> AsyncIterator[bytes]:
        """Return an iterator over the file's bytes.

        Permission and signed-URL errors are raised here, before the first
        byte is streamed.
        """
        user = self._require_user(user)
        vpath = VirtualPath.parse(path)
        resource = await self._resolve(user, vpath)
        if resource.is_directory:
            raise InvalidOperationError(f"{self.name}:{vpath} is a directory")
        self._require(resource, Permission.READ, vpath)

        try:
            url = await self._client.get_download_url(user, resource.id)
        except ApiError as e:
            raise self._translate(e, user, vpath) from e
        return self._client.download_blob(url)

    async def read_bytes(self, path: str | VirtualPath, user: User | None) -> bytes:
        """Read a whole file into memory."""
        stream = await self.open_read(path, user)
        chunks: list[bytes] = []
        try:
            async for chunk in stream:
                chunks.append(chunk)
        except ApiError as e:
            raise BackendError(f"Download of {self.name}:{path} failed: {e}") from e
        return b"".join(chunks)

    async def _stat(self, path: str | VirtualPath, user: User | None) -> Resource:
        user = self._require_user(user)
        return await self._resolve(user, VirtualPath.parse(path))

    async def type(self, path: str | VirtualPath, user: User | None) -> ResourceType | None:
        return (await self._stat(path, user)).kind

    async def size(self, path: str | VirtualPath, user: User | None) -> int | None:
        resource = await self._stat(path, user)
        if resource.size is None or resource.size < 0:
            return None
        return resource.size

    async def creation_date(self, path: str | VirtualPath, user: User | None) -> datetime | None:
        return (await self._stat(path, user)).created_at

    async def last_modified_date(
        self, path: str | VirtualPath, user: User | None
    ) -> datetime | None:
        return (await self._stat(path, user)).updated_at

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(
        self,
        path: str | VirtualPath,
        user: User | None,
        kind: ResourceType = ResourceType.FILE,
    ) -> Resource:
        """Create an empty file or a directory at *path*."""
        user = self._require_user(user)
        vpath = VirtualPath.parse(path)
        if vpath.is_root:
            raise ResourceExistsError(f"The root of {self.name} already exists")
        self._check_name(vpath.name)

        parent_path = vpath.parent
        parent = await self._resolve_directory(user, parent_path)
        self._require(parent, Permission.CREATE, parent_path)

        if vpath.name in await self._siblings(user, parent_path):
            raise ResourceExistsError(f"{self.name}:{vpath} already exists")

        if kind != ResourceType.DIRECTORY and not is_office_document(vpath.name):
            return await self._uploads.run(user, self._new_file_target(user, vpath, parent), b"")

        owner = self._view.owner_id(user, vpath, self._cache)
        if owner is None:
            raise ResourceNotFoundError(f"{self.name}:{parent_path} does not exist")
        create = (
            self._client.create_directory
            if kind == ResourceType.DIRECTORY
            else self._client.create_office_document
        )
        try:
            data = await create(
                user,
                vpath.name,
                owner=owner,
                parent=self._view.directory_id(parent_path, parent),
            )
        except ApiError as e:
            raise self._translate(e, user, parent_path) from e

        resource = resource_for_new_object(
            data,
            user,
            team_role=self._view.team_role(user, vpath, self._cache),
            fallback=parent.permissions,
        )
        if not self._cache.add(user.uid, vpath, resource):
            logger.debug("Parent of %s:%s left the cache during create", self.name, vpath)
        logger.info("Created %s %s:%s", resource.kind.value, self.name, vpath)
        return resource

    async def open_write(self, path: str | VirtualPath, user: User | None) -> UploadStream:
        """Open *path* for writing; bytes are uploaded when the stream closes.

        Overwriting needs write permission on the file, creating needs
        create permission on the parent.
        """
        user = self._require_user(user)
        vpath = VirtualPath.parse(path)
        if vpath.is_root:
            raise ForbiddenError(f"The root of {self.name} is a directory")
        self._check_name(vpath.name)

        try:
            exists = await self._resolver.load_path(vpath, user)
        except ApiError as e:
            raise self._translate(e, user, vpath) from e

        resource = self._cache.get(user.uid, vpath) if exists else None
        if resource is not None:
            if resource.is_directory:
                raise ForbiddenError(f"{self.name}:{vpath} is a directory")
            self._require(resource, Permission.WRITE, vpath)
            return self._uploads.open(user, UploadTarget(vpath, existing=resource))

        parent = await self._resolve_directory(user, vpath.parent)
        self._require(parent, Permission.CREATE, vpath.parent)
        return self._uploads.open(user, self._new_file_target(user, vpath, parent))

    async def write_bytes(
        self, path: str | VirtualPath, content: bytes, user: User | None
    ) -> Resource:
        """Write a whole file through the upload pipeline."""
        stream = await self.open_write(path, user)
        stream.write(content)
        return await stream.close()

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete(self, path: str | VirtualPath, user: User | None) -> None:
        """Delete a file or directory.

        Requires the session's coarse delete flag, not the per-resource
        delete bit.
        """
        user = self._require_user(user)
        vpath = VirtualPath.parse(path)
        self._require_mutable(vpath)
        if not user.has_permission(self._delete_permission):
            raise ForbiddenError(f"{user.username!r} may not delete files")

        resource = await self._resolve(user, vpath)
        try:
            if resource.is_directory:
                await self._client.delete_directory(user, resource.id)
            else:
                await self._client.delete_file(user, resource.id)
        except ApiError as e:
            raise self._translate(e, user, vpath) from e

        self._cache.delete(user.uid, vpath)
        self._managers.forget(str(vpath))
        logger.info("Deleted %s:%s", self.name, vpath)

    # ------------------------------------------------------------------
    # Rename / Move
    # ------------------------------------------------------------------

    async def rename(
        self, path: str | VirtualPath, new_name: str, user: User | None
    ) -> None:
        """Rename in place; id, kind, size and permissions are preserved."""
        user = self._require_user(user)
        vpath = VirtualPath.parse(path)
        self._require_mutable(vpath)
        self._check_name(new_name)

        resource = await self._resolve(user, vpath)
        self._require(resource, Permission.WRITE, vpath)
        if new_name == vpath.name:
            return

        siblings = await self._siblings(user, vpath.parent)
        if vpath.name not in siblings:
            # The fresh listing already dropped the stale entry
            raise ResourceNotFoundError(f"{self.name}:{vpath} no longer exists")
        if new_name in siblings:
            raise ResourceExistsError(f"{self.name}:{vpath.with_name(new_name)} already exists")

        resource = siblings[vpath.name]
        self._require(resource, Permission.WRITE, vpath)
        try:
            if resource.is_directory:
                await self._client.rename_directory(user, resource.id, new_name)
            else:
                await self._client.rename_file(user, resource.id, new_name)
        except ApiError as e:
            raise self._translate(e, user, vpath, rename=True) from e

        dest = vpath.with_name(new_name)
        resource.name = new_name
        self._cache.move_key(user.uid, vpath, dest)
        self._managers.move(str(vpath), str(dest))
        logger.info("Renamed %s:%s to %s", self.name, vpath, new_name)

    async def move(
        self, src: str | VirtualPath, dest: str | VirtualPath, user: User | None
    ) -> None:
        """Move *src* to *dest*, possibly under a different parent.

        Only the recorded owner or creator may move across directories.
        """
        user = self._require_user(user)
        src_path = VirtualPath.parse(src)
        dest_path = VirtualPath.parse(dest)
        if not dest_path.has_parent:
            raise ForbiddenError("The root cannot be a move target")
        self._require_mutable(src_path)
        self._require_mutable(dest_path)

        if src_path.parent == dest_path.parent:
            await self.rename(src_path, dest_path.name, user)
            return
        if dest_path.is_relative_to(src_path):
            raise ForbiddenError(f"Cannot move {src_path} into itself")
        self._check_name(dest_path.name)

        resource = await self._resolve(user, src_path)
        dest_parent = await self._resolve_directory(user, dest_path.parent)
        if user.uid not in (resource.owner, resource.creator):
            raise ForbiddenError(f"Only the owner may move {self.name}:{src_path}")

        if dest_path.name in await self._siblings(user, dest_path.parent):
            raise ResourceExistsError(f"{self.name}:{dest_path} already exists")

        try:
            await self._client.move(
                user,
                resource.id,
                owner=self._view.owner_id(user, dest_path, self._cache),
                parent=self._view.directory_id(dest_path.parent, dest_parent),
                name=dest_path.name if dest_path.name != src_path.name else None,
            )
        except ApiError as e:
            raise self._translate(e, user, src_path) from e

        resource.name = dest_path.name
        if self._cache.has(user.uid, dest_path.parent):
            self._cache.move_key(user.uid, src_path, dest_path)
        else:
            self._cache.delete(user.uid, src_path)
        self._managers.move(str(src_path), str(dest_path))
        logger.info("Moved %s:%s to %s", self.name, src_path, dest_path)

    # ------------------------------------------------------------------
    # Pass-throughs
    # ------------------------------------------------------------------

    def property_manager(self, path: str | VirtualPath) -> PropertyManager:
        return self._managers.property_manager(str(VirtualPath.parse(path)))

    def lock_manager(self, path: str | VirtualPath) -> LockManager:
        return self._managers.lock_manager(str(VirtualPath.parse(path)))
