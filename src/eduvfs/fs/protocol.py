"""FileSystemCapability protocol — what the protocol server may call.

Every mount filesystem and the cross-mount ``VFS`` router implement this.
Paths are mount- or tree-relative strings; ``user`` is the authenticated
session or ``None`` when the request carried no credentials.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from datetime import datetime

    from eduvfs.auth.user import User

    from .managers import LockManager, PropertyManager
    from .types import FileInfo, Resource, ResourceType
    from .upload import UploadStream


@runtime_checkable
class FileSystemCapability(Protocol):
    """Core capability set exposed to the access protocol."""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def list_dir(self, path: str, user: User | None) -> list[FileInfo]: ...

    async def open_read(self, path: str, user: User | None) -> AsyncIterator[bytes]: ...

    async def type(self, path: str, user: User | None) -> ResourceType | None: ...

    async def size(self, path: str, user: User | None) -> int | None: ...

    async def creation_date(self, path: str, user: User | None) -> datetime | None: ...

    async def last_modified_date(self, path: str, user: User | None) -> datetime | None: ...

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def open_write(self, path: str, user: User | None) -> UploadStream: ...

    async def create(self, path: str, user: User | None, kind: ResourceType) -> Resource: ...

    async def delete(self, path: str, user: User | None) -> None: ...

    async def rename(self, path: str, new_name: str, user: User | None) -> None: ...

    async def move(self, src: str, dest: str, user: User | None) -> None: ...

    # ------------------------------------------------------------------
    # Pass-throughs
    # ------------------------------------------------------------------

    def property_manager(self, path: str) -> PropertyManager: ...

    def lock_manager(self, path: str) -> LockManager: ...
