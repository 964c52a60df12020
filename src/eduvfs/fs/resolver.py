"""PathResolver — lazy, on-demand materialization of the remote tree.

Only the ancestor chain of a requested path and the contents of the
directories actually traversed are ever loaded.  Every listing caches all
children it returns, so later sibling lookups are cache hits.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from eduvfs.api.client import ApiError

from .paths import VirtualPath
from .types import Resource, ResourceType
from .views import fetch_children

if TYPE_CHECKING:
    from eduvfs.api.client import CloudClient
    from eduvfs.auth.user import User

    from .cache import ResourceCache
    from .views import RootView

logger = logging.getLogger(__name__)

ROOT = VirtualPath()


class PathResolver:
    """Resolves mount-relative paths to cached Resources for one mount."""

    def __init__(self, client: CloudClient, view: RootView, cache: ResourceCache) -> None:
        self._client = client
        self._view = view
        self._cache = cache

    # ------------------------------------------------------------------
    # Top level
    # ------------------------------------------------------------------

    async def refresh_top_level(self, user: User) -> dict[str, Resource]:
        """List the mount's top level and cache it under the mount root."""
        children = await self._view.list_top_level(self._client, user)
        previous = self._cache.children(user.uid, ROOT)
        for name, child in children.items():
            old = previous.get(name)
            if (
                old is not None
                and old.id == child.id
                and old.permissions_resolved
                and not child.permissions_resolved
            ):
                child.permissions = old.permissions
                child.permissions_resolved = True
        root = Resource(
            id="",
            kind=ResourceType.DIRECTORY,
            permissions=self._view.root_permissions(),
        )
        self._cache.put(user.uid, ROOT, root)
        self._cache.put_children(user.uid, ROOT, children)
        logger.debug(
            "Loaded %d top-level entries of %r for %s", len(children), self._view.name, user.uid
        )
        return children

    async def ensure_top_level(self, user: User) -> None:
        """Load the top level once; the cached root marks it as loaded."""
        if not self._cache.has(user.uid, ROOT):
            await self.refresh_top_level(user)

    async def hydrate(self, user: User, resource: Resource) -> Resource:
        """Resolve permissions of a synthesized top-level entry in place."""
        if not resource.permissions_resolved:
            resource.permissions = await self._view.resolve_top_level(
                self._client, user, resource
            )
            resource.permissions_resolved = True
        return resource

    # ------------------------------------------------------------------
    # Directories
    # ------------------------------------------------------------------

    async def load_directory(
        self, user: User, directory: VirtualPath
    ) -> dict[str, Resource] | None:
        """List *directory* from the backend and cache its children.

        Returns the children by name, or None when *directory* is not a
        cached directory or the backend reports it missing (the stale entry
        is then invalidated).  Other backend errors propagate.
        """
        if directory.is_root:
            return await self.refresh_top_level(user)

        resource = self._cache.get(user.uid, directory)
        if resource is None or not resource.is_directory:
            return None

        try:
            await self.hydrate(user, resource)
            owner = self._view.owner_id(user, directory, self._cache)
            if owner is None:
                return None
            children = await fetch_children(
                self._client,
                user,
                owner=owner,
                parent=self._view.directory_id(directory, resource),
                team_role=self._view.team_role(user, directory, self._cache),
            )
        except ApiError as e:
            if e.is_not_found:
                self.invalidate(user, directory)
                return None
            raise

        if not self._cache.put_children(user.uid, directory, children):
            # Invalidated while the listing was in flight
            return None
        return children

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    async def load_path(self, path: VirtualPath, user: User) -> bool:
        """Make *path* and all of its ancestors present in the cache.

        Returns False when some segment does not exist.  An already-cached
        path returns immediately without any backend call.
        """
        uid = user.uid
        if self._cache.has(uid, path):
            return True

        await self.ensure_top_level(user)
        if path.is_root or self._cache.has(uid, path):
            return True

        ancestor = next((a for a in path.ancestors() if self._cache.has(uid, a)), None)
        if ancestor is None:
            return False

        current = ancestor
        for segment in path.relative_to(ancestor):
            if current.is_root:
                # Top level was ensured above; no need to list it again
                children: dict[str, Resource] | None = self._cache.children(uid, ROOT)
            else:
                children = await self.load_directory(user, current)
            if children is None or segment not in children:
                logger.debug("%s: %r not found below %s", self._view.name, segment, current)
                return False
            current = current.child(segment)

        return self._cache.has(uid, path)

    async def resolve(self, path: VirtualPath, user: User) -> Resource | None:
        """Cached Resource for *path*, loading it if needed."""
        if not await self.load_path(path, user):
            return None
        return self._cache.get(user.uid, path)

    def invalidate(self, user: User, path: VirtualPath) -> None:
        """Forget *path* (and its subtree) after the backend reported it missing."""
        if self._cache.delete(user.uid, path):
            logger.info("Invalidated stale entry %s:%s for %s", self._view.name, path, user.uid)
