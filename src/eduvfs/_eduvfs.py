"""EduVFS — wires the backend client, sessions and the four mounts."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from eduvfs.api.client import CloudClient
from eduvfs.auth.users import UserManager
from eduvfs.config import Settings
from eduvfs.fs.mounts import MountConfig, MountRegistry
from eduvfs.fs.vfs import VFS
from eduvfs.fs.views import VIEWS
from eduvfs.fs.web_fs import WebFileSystem

if TYPE_CHECKING:
    import httpx

    from eduvfs.auth.user import User

logger = logging.getLogger(__name__)

_MOUNT_LABELS = {
    "my": "My files",
    "courses": "Courses",
    "teams": "Teams",
    "shared": "Shared with me",
}


class EduVFS:
    """Async facade over the whole file tree.

    Usage::

        settings = Settings.from_env()
        async with EduVFS(settings) as vfs:
            user = await vfs.authenticate("alice", "secret")
            entries = await vfs.tree.list_dir("/courses", user)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        mounts: tuple[str, ...] = ("my", "courses", "teams", "shared"),
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._client = CloudClient(
            self._settings.base_url,
            timeout=self._settings.request_timeout,
            transport=transport,
        )
        self._users = UserManager(self._client)
        self._registry = MountRegistry()
        for name in mounts:
            if name not in VIEWS:
                raise ValueError(f"Unknown mount {name!r}; expected one of {sorted(VIEWS)}")
            filesystem = WebFileSystem(
                self._client,
                name,
                cache_ttl=self._settings.cache_ttl,
                delete_permission=self._settings.delete_permission,
            )
            self._registry.add_mount(
                MountConfig(f"/{name}", filesystem, label=_MOUNT_LABELS.get(name, ""))
            )
            logger.info("Mounted %r file system", name)
        self._tree = VFS(self._registry)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def client(self) -> CloudClient:
        return self._client

    @property
    def users(self) -> UserManager:
        return self._users

    @property
    def tree(self) -> VFS:
        return self._tree

    def filesystem(self, name: str) -> WebFileSystem:
        """The mount filesystem named *name* (``"courses"``, ...)."""
        mount, _ = self._registry.resolve(f"/{name}")
        return mount.filesystem

    async def authenticate(self, username: str, password: str) -> User:
        return await self._users.get_user_by_name_password(username, password)

    async def close(self) -> None:
        await self._client.close()

    async def __aenter__(self) -> EduVFS:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
