"""Permission bits, backend access-control entries and their resolution."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from eduvfs.auth.user import User

logger = logging.getLogger(__name__)


class Permission(str, Enum):
    """A single permission bit on a backend object."""

    READ = "read"
    WRITE = "write"
    CREATE = "create"
    DELETE = "delete"


class RefModel(str, Enum):
    """What an access-control entry's ``ref_id`` points at."""

    USER = "user"
    ROLE = "role"


@dataclass(frozen=True, slots=True)
class PermissionSet:
    """Effective read/write/create/delete bits for one user on one object."""

    read: bool = False
    write: bool = False
    create: bool = False
    delete: bool = False

    @classmethod
    def all(cls) -> PermissionSet:
        return cls(read=True, write=True, create=True, delete=True)

    def allows(self, permission: Permission) -> bool:
        return bool(getattr(self, permission.value))

    def __or__(self, other: PermissionSet) -> PermissionSet:
        return PermissionSet(
            read=self.read or other.read,
            write=self.write or other.write,
            create=self.create or other.create,
            delete=self.delete or other.delete,
        )


@dataclass(frozen=True, slots=True)
class PermissionEntry:
    """One backend grant record, scoped to a user or a role."""

    ref_id: str
    ref_model: RefModel
    read: bool = False
    write: bool = False
    create: bool = False
    delete: bool = False

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> PermissionEntry:
        """Parse the backend's ``{refId, refPermModel, read, ...}`` form."""
        return cls(
            ref_id=str(data.get("refId", "")),
            ref_model=RefModel(data.get("refPermModel", "user")),
            read=bool(data.get("read", False)),
            write=bool(data.get("write", False)),
            create=bool(data.get("create", False)),
            delete=bool(data.get("delete", False)),
        )

    @property
    def bits(self) -> PermissionSet:
        return PermissionSet(
            read=self.read, write=self.write, create=self.create, delete=self.delete
        )

    def matches(self, user: User, team_role: str | None = None) -> bool:
        """Whether this entry applies to *user*.

        Role entries match the global role set, or only *team_role* when
        resolving inside a team.
        """
        if self.ref_model == RefModel.USER:
            return self.ref_id == user.uid
        if team_role is not None:
            return self.ref_id == team_role
        return self.ref_id in user.roles


def parse_entries(raw: Iterable[dict[str, Any]] | None) -> list[PermissionEntry]:
    """Parse backend permission dicts, skipping entries with unknown models."""
    entries: list[PermissionEntry] = []
    for item in raw or ():
        try:
            entries.append(PermissionEntry.from_json(item))
        except ValueError:
            logger.debug("Skipping permission entry with unknown model: %r", item)
    return entries


def resolve_permissions(
    entries: Iterable[PermissionEntry],
    user: User,
    team_role: str | None = None,
) -> PermissionSet:
    """OR together the bits of every entry that matches *user*.

    No matching entry yields an all-false set.
    """
    result = PermissionSet()
    for entry in entries:
        if entry.matches(user, team_role):
            result = result | entry.bits
    return result
