"""Cached resource metadata and listing result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .permissions import PermissionSet


class ResourceType(str, Enum):
    """Kind of a backend object as seen by the access protocol."""

    DIRECTORY = "directory"
    FILE = "file"


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a backend ISO-8601 timestamp, returning None when absent or invalid."""
    if isinstance(value, datetime):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


@dataclass
class Resource:
    """Per-user cached metadata for one backend object at one path."""

    id: str
    kind: ResourceType
    name: str = ""
    size: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    permissions: PermissionSet = field(default_factory=PermissionSet)
    team_role: str | None = None
    """The user's role inside the team (teams mount, top-level entries only)."""

    owner: str | None = None
    """Backend owner id (user, course or team) when the backend reported one."""

    creator: str | None = None
    permissions_resolved: bool = True
    """False for synthesized top-level entries until first descent."""

    @property
    def is_directory(self) -> bool:
        return self.kind == ResourceType.DIRECTORY

    @classmethod
    def from_json(
        cls,
        data: dict[str, Any],
        permissions: PermissionSet,
        *,
        team_role: str | None = None,
    ) -> Resource:
        """Build a Resource from a backend file object."""
        is_directory = bool(data.get("isDirectory", False))
        size = data.get("size")
        return cls(
            id=str(data["_id"]),
            kind=ResourceType.DIRECTORY if is_directory else ResourceType.FILE,
            name=str(data.get("name", "")),
            size=int(size) if isinstance(size, int | float) and not is_directory else None,
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
            permissions=permissions,
            team_role=team_role,
            owner=_optional_id(data.get("owner")),
            creator=_optional_id(data.get("creator")),
        )


def _optional_id(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("_id")
    return str(value) if value is not None else None


@dataclass
class FileInfo:
    """Listing entry returned to the protocol layer."""

    path: str
    name: str
    is_directory: bool
    size_bytes: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    permissions: PermissionSet | None = None

    @classmethod
    def from_resource(cls, path: str, resource: Resource) -> FileInfo:
        return cls(
            path=path,
            name=resource.name or path.rsplit("/", 1)[-1],
            is_directory=resource.is_directory,
            size_bytes=resource.size,
            created_at=resource.created_at,
            updated_at=resource.updated_at,
            permissions=resource.permissions,
        )
