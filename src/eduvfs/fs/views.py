"""Root view policies — how each mount lists its top level and addresses the backend.

A mount's tree below the top level always looks the same (directories
listed by owner and parent id).  What differs per mount is where the top
level comes from and which backend id acts as the *owner* of everything
below it:

- ``PersonalView`` — the user's own files; the owner is always the user.
- ``CoursesView`` — one directory per course; the course owns its files.
- ``TeamsView`` — one directory per team; role grants match the user's
  role inside that team.
- ``SharedView`` — files other users shared with this user.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, ClassVar

from .permissions import PermissionSet, parse_entries, resolve_permissions
from .types import Resource, ResourceType, parse_timestamp

if TYPE_CHECKING:
    from eduvfs.api.client import CloudClient
    from eduvfs.auth.user import User

    from .cache import ResourceCache
    from .paths import VirtualPath

logger = logging.getLogger(__name__)


def resources_from_listing(
    items: list[dict[str, Any]],
    user: User,
    team_role: str | None = None,
) -> dict[str, Resource]:
    """Convert backend file objects to Resources keyed by name.

    Each object's permission entries are resolved for *user*.
    """
    resources: dict[str, Resource] = {}
    for item in items:
        name = item.get("name")
        if not name or "_id" not in item:
            logger.debug("Skipping unnamed backend object %r", item.get("_id"))
            continue
        if name in resources:
            logger.warning("Duplicate name %r in listing; keeping the last entry", name)
        permissions = resolve_permissions(
            parse_entries(item.get("permissions")), user, team_role
        )
        resources[name] = Resource.from_json(item, permissions)
    return resources


async def fetch_children(
    client: CloudClient,
    user: User,
    *,
    owner: str,
    parent: str | None,
    team_role: str | None = None,
) -> dict[str, Resource]:
    """List one backend directory and resolve permissions for each child."""
    items = await client.list_files(user, owner=owner, parent=parent)
    return resources_from_listing(items, user, team_role)


def _member_ids(values: Any) -> set[str]:
    """Normalize a list of ids or ``{userId}`` / ``{_id}`` objects."""
    ids: set[str] = set()
    for value in values or ():
        if isinstance(value, dict):
            value = value.get("userId") or value.get("_id")
            if isinstance(value, dict):
                value = value.get("_id")
        if value is not None:
            ids.add(str(value))
    return ids


class RootView:
    """Base policy.  Subclasses override the top-level behaviour."""

    name: ClassVar[str] = ""
    synthesized_top_level: ClassVar[bool] = False
    """True when top-level entries are not backend files (courses, teams)."""

    def root_permissions(self) -> PermissionSet:
        """Permissions on the mount root itself."""
        return PermissionSet(read=True)

    async def list_top_level(self, client: CloudClient, user: User) -> dict[str, Resource]:
        raise NotImplementedError

    async def resolve_top_level(
        self, client: CloudClient, user: User, resource: Resource
    ) -> PermissionSet:
        """Compute permissions for a synthesized top-level entry on first descent."""
        return resource.permissions

    def owner_id(self, user: User, path: VirtualPath, cache: ResourceCache) -> str | None:
        """Owner id for requests about *path*: the top-level ancestor's owner."""
        if path.is_root:
            return None
        top = cache.get(user.uid, path.top_level)
        if top is None:
            return None
        return top.owner or top.id

    def parent_id(self, user: User, directory: VirtualPath, cache: ResourceCache) -> str | None:
        """Parent id for listing or creating inside *directory*."""
        resource = cache.get(user.uid, directory)
        if resource is None:
            return None
        return self.directory_id(directory, resource)

    def directory_id(self, directory: VirtualPath, resource: Resource) -> str | None:
        """Backend parent id of an already-resolved *directory*.

        None at the mount root and directly inside a synthesized
        course or team directory.
        """
        if directory.is_root:
            return None
        if self.synthesized_top_level and directory.depth == 1:
            return None
        return resource.id

    def team_role(self, user: User, path: VirtualPath, cache: ResourceCache) -> str | None:
        """Role used to match role-tagged entries below *path* (teams only)."""
        return None


class PersonalView(RootView):
    """The user's own files, owned by the user at every depth."""

    name = "my"

    def root_permissions(self) -> PermissionSet:
        return PermissionSet(read=True, write=True, create=True)

    async def list_top_level(self, client: CloudClient, user: User) -> dict[str, Resource]:
        return await fetch_children(client, user, owner=user.uid, parent=None)

    def owner_id(self, user: User, path: VirtualPath, cache: ResourceCache) -> str | None:
        return user.uid


class CoursesView(RootView):
    """One directory per course the user is enrolled in."""

    name = "courses"
    synthesized_top_level = True

    async def list_top_level(self, client: CloudClient, user: User) -> dict[str, Resource]:
        courses = await client.list_courses(user)
        return {
            course["name"]: _synthesized_directory(course)
            for course in courses
            if course.get("name") and course.get("_id")
        }

    async def resolve_top_level(
        self, client: CloudClient, user: User, resource: Resource
    ) -> PermissionSet:
        course = await client.get_course(user, resource.id)
        teachers = _member_ids(course.get("teacherIds")) | _member_ids(
            course.get("substitutionIds")
        )
        if user.uid in teachers:
            return PermissionSet.all()
        if user.uid in _member_ids(course.get("userIds")):
            return PermissionSet(read=True)
        return PermissionSet()


class TeamsView(RootView):
    """One directory per team; role grants use the user's team role."""

    name = "teams"
    synthesized_top_level = True

    async def list_top_level(self, client: CloudClient, user: User) -> dict[str, Resource]:
        teams = [t for t in await client.list_teams(user) if t.get("name") and t.get("_id")]
        details = await asyncio.gather(*(client.get_team(user, str(t["_id"])) for t in teams))
        resources: dict[str, Resource] = {}
        for team, detail in zip(teams, details, strict=True):
            resource = _synthesized_directory(team)
            resource.team_role = self._role_in(detail, user)
            resources[team["name"]] = resource
        return resources

    @staticmethod
    def _role_in(team: dict[str, Any], user: User) -> str | None:
        for member in team.get("userIds") or ():
            if not isinstance(member, dict):
                continue
            member_id = member.get("userId")
            if isinstance(member_id, dict):
                member_id = member_id.get("_id")
            if str(member_id) == user.uid:
                role = member.get("role")
                if isinstance(role, dict):
                    role = role.get("_id")
                return str(role) if role is not None else None
        return None

    async def resolve_top_level(
        self, client: CloudClient, user: User, resource: Resource
    ) -> PermissionSet:
        team = await client.get_team(user, resource.id)
        entries = parse_entries(team.get("filePermission"))
        return resolve_permissions(entries, user, resource.team_role)

    def team_role(self, user: User, path: VirtualPath, cache: ResourceCache) -> str | None:
        if path.is_root:
            return None
        top = cache.get(user.uid, path.top_level)
        return top.team_role if top is not None else None


class SharedView(RootView):
    """Files shared with the user, hydrated with permissions at listing time."""

    name = "shared"

    async def list_top_level(self, client: CloudClient, user: User) -> dict[str, Resource]:
        return resources_from_listing(await client.list_shared(user), user)


def _synthesized_directory(data: dict[str, Any]) -> Resource:
    """Bare directory for a course or team; permissions come on first descent."""
    return Resource(
        id=str(data["_id"]),
        kind=ResourceType.DIRECTORY,
        name=str(data["name"]),
        created_at=parse_timestamp(data.get("createdAt")),
        updated_at=parse_timestamp(data.get("updatedAt")),
        permissions=PermissionSet(),
        permissions_resolved=False,
    )


VIEWS: dict[str, type[RootView]] = {
    view.name: view for view in (PersonalView, CoursesView, TeamsView, SharedView)
}
