"""Two-phase upload: signed URL, blob PUT, metadata registration.

The backend never receives file bytes directly.  A write first asks the
backend for a signed blob-store URL, pushes the bytes there, and then
registers (new file) or patches (existing file) the metadata.  The
registration is authoritative for what clients see afterwards, so a
failed blob PUT is only logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from eduvfs.api.client import ApiError

from .exceptions import ForbiddenError
from .paths import guess_mime_type
from .permissions import PermissionSet, parse_entries, resolve_permissions
from .types import Resource, parse_timestamp

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from eduvfs.api.client import CloudClient, SignedUrl
    from eduvfs.auth.user import User

    from .cache import ResourceCache
    from .paths import VirtualPath
    from .views import RootView

logger = logging.getLogger(__name__)


class UploadState(Enum):
    """Progress of one upload."""

    PENDING = "pending"
    REQUEST_URL = "request_url"
    UPLOAD_BYTES = "upload_bytes"
    REGISTER = "register"
    DONE = "done"
    FAILED = "failed"


def resource_for_new_object(
    data: dict[str, Any],
    user: User,
    *,
    team_role: str | None,
    fallback: PermissionSet,
) -> Resource:
    """Resource for an object the backend just created.

    Uses the object's own permission entries when the backend returned
    any, otherwise *fallback* (the parent's permissions).
    """
    raw = data.get("permissions")
    if raw:
        permissions = resolve_permissions(parse_entries(raw), user, team_role)
    else:
        permissions = fallback
    return Resource.from_json(data, permissions)


@dataclass(frozen=True)
class UploadTarget:
    """Where an upload lands, fixed when the write is opened.

    Either *existing* is set (the upload patches that file) or *owner*,
    *parent_id* and *permissions* describe the directory receiving a new
    file.  Nothing is looked up again when the upload runs.
    """

    path: VirtualPath
    existing: Resource | None = None
    owner: str | None = None
    parent_id: str | None = None
    """Backend id of the receiving directory; None at the mount root."""

    permissions: PermissionSet = field(default_factory=PermissionSet)
    """Parent permissions, inherited when the backend returns no entries."""

    team_role: str | None = None


class UploadPipeline:
    """Runs the three upload steps for one mount."""

    def __init__(self, client: CloudClient, view: RootView, cache: ResourceCache) -> None:
        self._client = client
        self._view = view
        self._cache = cache

    def open(self, user: User, target: UploadTarget) -> UploadStream:
        return UploadStream(self, user, target)

    async def run(
        self,
        user: User,
        target: UploadTarget,
        content: bytes,
        *,
        on_state: Callable[[UploadState], None] | None = None,
    ) -> Resource:
        """Upload *content* to *target* and return the resulting Resource.

        Raises ``ForbiddenError`` when requesting the URL or registering
        the object fails, or when a new file has no owner.
        """

        def enter(state: UploadState) -> None:
            if on_state is not None:
                on_state(state)

        path = target.path
        if target.existing is None and target.owner is None:
            raise ForbiddenError(f"No owner for {self._view.name}:{path}")

        enter(UploadState.REQUEST_URL)
        try:
            signed = await self._request_url(user, target)
        except ApiError as e:
            logger.error("Signed URL request for %s failed: %s", path, e)
            raise ForbiddenError(f"Cannot upload to {path}") from e

        enter(UploadState.UPLOAD_BYTES)
        try:
            await self._client.upload_blob(signed, content)
        except ApiError as e:
            logger.warning("Blob upload for %s failed, registering anyway: %s", path, e)

        enter(UploadState.REGISTER)
        try:
            if target.existing is not None:
                resource = await self._patch(user, target.existing, len(content))
            else:
                resource = await self._register(user, target, signed, len(content))
        except ApiError as e:
            logger.error("Registering upload of %s failed: %s", path, e)
            raise ForbiddenError(f"Cannot register {path}") from e

        logger.debug("Uploaded %d bytes to %s:%s", len(content), self._view.name, path)
        return resource

    async def _request_url(self, user: User, target: UploadTarget) -> SignedUrl:
        if target.existing is not None:
            return await self._client.request_update_url(user, target.existing.id)
        return await self._client.request_upload_url(
            user,
            target.path.name,
            file_type=guess_mime_type(target.path.name),
            parent=target.parent_id,
        )

    async def _patch(self, user: User, existing: Resource, size: int) -> Resource:
        now = datetime.now(UTC)
        data = await self._client.patch_file_size(user, existing.id, size, now) or {}
        existing.size = size
        existing.updated_at = parse_timestamp(data.get("updatedAt")) or now
        return existing

    async def _register(
        self, user: User, target: UploadTarget, signed: SignedUrl, size: int
    ) -> Resource:
        path = target.path
        if target.owner is None:
            raise ForbiddenError(f"No owner for {self._view.name}:{path}")
        data = await self._client.register_file(
            user,
            path.name,
            owner=target.owner,
            parent=target.parent_id,
            file_type=guess_mime_type(path.name),
            size=size,
            storage_file_name=signed.storage_file_name,
        )
        resource = resource_for_new_object(
            data, user, team_role=target.team_role, fallback=target.permissions
        )
        if resource.size is None:
            resource.size = size
        if not self._cache.add(user.uid, path, resource):
            logger.debug("Parent of %s left the cache during upload", path)
        return resource


class UploadStream:
    """Write handle given to the protocol layer.

    Bytes are buffered until ``close()``, which runs the upload.  Used as
    an async context manager, the upload only runs when the block exits
    without an exception.
    """

    def __init__(self, pipeline: UploadPipeline, user: User, target: UploadTarget) -> None:
        self._pipeline = pipeline
        self._user = user
        self._target = target
        self._buffer = bytearray()
        self._state = UploadState.PENDING
        self._result: Resource | None = None

    @property
    def state(self) -> UploadState:
        return self._state

    @property
    def path(self) -> VirtualPath:
        return self._target.path

    @property
    def target(self) -> UploadTarget:
        return self._target

    @property
    def closed(self) -> bool:
        return self._state in (UploadState.DONE, UploadState.FAILED)

    def write(self, data: bytes) -> int:
        if self._state != UploadState.PENDING:
            raise ValueError("I/O operation on closed upload stream")
        self._buffer.extend(data)
        return len(data)

    def _set_state(self, state: UploadState) -> None:
        self._state = state

    async def close(self) -> Resource:
        """Run the upload; returns the resulting Resource.  Idempotent."""
        if self._state == UploadState.DONE and self._result is not None:
            return self._result
        if self._state != UploadState.PENDING:
            raise ValueError("Upload already closed")
        try:
            self._result = await self._pipeline.run(
                self._user, self._target, bytes(self._buffer), on_state=self._set_state
            )
        except Exception:
            self._state = UploadState.FAILED
            raise
        self._state = UploadState.DONE
        return self._result

    def abort(self) -> None:
        """Discard buffered bytes without uploading."""
        self._buffer.clear()
        self._state = UploadState.FAILED

    async def __aenter__(self) -> UploadStream:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            self.abort()
            return
        await self.close()
