"""User — the authenticated session the filesystem acts on behalf of."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class User:
    """Authenticated backend session.

    Attributes:
        uid: Backend user id.
        username: Login name the session was created with.
        jwt: Bearer credential for backend calls.
        display_name: Human-readable name, may be empty.
        roles: Every role id reachable from the user's direct roles.
        permissions: Coarse permission flags granted by those roles.
    """

    uid: str
    username: str
    jwt: str
    display_name: str = ""
    roles: set[str] = field(default_factory=set)
    permissions: set[str] = field(default_factory=set)

    def has_permission(self, flag: str) -> bool:
        return flag in self.permissions

    def __repr__(self) -> str:
        return f"User(uid={self.uid!r}, username={self.username!r})"
