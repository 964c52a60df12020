"""UserManager — logs users in against the backend and caches their sessions."""

from __future__ import annotations

import hashlib
import logging
import threading
from typing import TYPE_CHECKING

from eduvfs.api.client import ApiError
from eduvfs.fs.exceptions import AuthenticationRequiredError, BackendError

from .user import User

if TYPE_CHECKING:
    from collections.abc import Iterable

    from eduvfs.api.client import CloudClient

logger = logging.getLogger(__name__)


async def load_role_tree(
    client: CloudClient,
    jwt: str,
    role_ids: Iterable[str],
) -> tuple[set[str], set[str]]:
    """Collect every role reachable from *role_ids* and their permission flags.

    Roles may reference nested roles.  Each role id is fetched at most once,
    so cycles in the role graph terminate.

    Returns:
        (role_ids, permission_flags)
    """
    visited: set[str] = set()
    permissions: set[str] = set()
    pending = [str(r) for r in role_ids]

    while pending:
        role_id = pending.pop()
        if role_id in visited:
            continue
        visited.add(role_id)
        role = await client.get_role(jwt, role_id)
        permissions.update(str(p) for p in role.get("permissions") or ())
        pending.extend(str(r) for r in role.get("roles") or () if str(r) not in visited)

    return visited, permissions


def _digest(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


class UserManager:
    """Session provider backed by the backend's login and role endpoints.

    Sessions are cached by username.  A cached session is reused only when
    the same password is presented again.
    """

    def __init__(self, client: CloudClient) -> None:
        self._client = client
        self._sessions: dict[str, tuple[str, User]] = {}
        self._lock = threading.Lock()

    async def get_user_by_name_password(self, name: str, password: str) -> User:
        """Authenticate *name* and return its session.

        Raises ``AuthenticationRequiredError`` when the backend rejects the
        credentials.
        """
        digest = _digest(password)
        cached = self._sessions.get(name)
        if cached is not None and cached[0] == digest:
            return cached[1]

        try:
            auth = await self._client.authenticate(name, password)
        except ApiError as e:
            if e.status in (400, 401, 403, 404):
                logger.info("Login rejected for %s: %s", name, e.message)
                raise AuthenticationRequiredError(f"Invalid credentials for {name!r}") from e
            raise BackendError(f"Login failed for {name!r}: {e}") from e

        user = await self._load_user(name, auth)
        with self._lock:
            self._sessions[name] = (digest, user)
        logger.info("Authenticated %s (%s) with %d role(s)", name, user.uid, len(user.roles))
        return user

    async def _load_user(self, name: str, auth: dict) -> User:
        jwt = auth.get("accessToken")
        account = auth.get("account") or {}
        uid = account.get("userId") or (auth.get("user") or {}).get("_id")
        if not jwt or not uid:
            raise AuthenticationRequiredError(f"Login response for {name!r} lacks a session")
        uid = str(uid)

        try:
            record = await self._client.get_user(jwt, uid)
            roles, permissions = await load_role_tree(
                self._client, jwt, record.get("roles") or ()
            )
        except ApiError as e:
            raise BackendError(f"Could not load roles for {name!r}: {e}") from e

        display_name = " ".join(
            part for part in (record.get("firstName"), record.get("lastName")) if part
        )
        return User(
            uid=uid,
            username=name,
            jwt=jwt,
            display_name=display_name,
            roles=roles,
            permissions=permissions,
        )

    def get_user_by_name(self, name: str) -> User | None:
        """Return the cached session for *name*, if any."""
        cached = self._sessions.get(name)
        return cached[1] if cached is not None else None

    def list_users(self) -> list[User]:
        return [user for _, user in self._sessions.values()]

    def forget(self, name: str) -> None:
        """Drop the cached session for *name*."""
        with self._lock:
            self._sessions.pop(name, None)
