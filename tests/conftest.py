"""Shared fixtures: an in-memory backend served through ``httpx.MockTransport``."""

from __future__ import annotations

import itertools
import json
import re
from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest

from eduvfs.api.client import CloudClient
from eduvfs.auth.user import User
from eduvfs.fs.web_fs import WebFileSystem

API_URL = "https://api.test"
BLOB_HOST = "blob.test"
STAMP = "2024-05-01T10:00:00+00:00"

ALL = {"read": True, "write": True, "create": True, "delete": True}


def grant(ref_id: str, model: str = "user", **bits: bool) -> dict[str, Any]:
    """Backend permission entry; ``grant("alice", read=True)``."""
    return {"refId": ref_id, "refPermModel": model, **bits}


# =========================================================================
# FakeCloud: the backend REST API plus a blob store
# =========================================================================


class FakeCloud:
    """Minimal stand-in for the backend, enough to drive every endpoint.

    Every request is recorded in ``requests``.  ``fail()`` makes the next
    matching request(s) answer with an error status instead.
    """

    def __init__(self) -> None:
        self.accounts: dict[str, tuple[str, str]] = {}
        self.users: dict[str, dict[str, Any]] = {}
        self.roles: dict[str, dict[str, Any]] = {}
        self.tokens: dict[str, str] = {}
        self.files: dict[str, dict[str, Any]] = {}
        self.courses: dict[str, dict[str, Any]] = {}
        self.teams: dict[str, dict[str, Any]] = {}
        self.blobs: dict[str, bytes] = {}
        self.requests: list[httpx.Request] = []
        self._failures: dict[tuple[str, str], list[int]] = {}
        self._ids = itertools.count(1)
        self._routes: list[tuple[str, re.Pattern[str], Any]] = [
            ("POST", re.compile(r"/authentication"), self._authenticate),
            ("GET", re.compile(r"/users/(?P<id>[^/]+)"), self._get_user),
            ("GET", re.compile(r"/roles/(?P<id>[^/]+)"), self._get_role),
            ("GET", re.compile(r"/courses"), self._list_courses),
            ("GET", re.compile(r"/courses/(?P<id>[^/]+)"), self._get_course),
            ("GET", re.compile(r"/teams"), self._list_teams),
            ("GET", re.compile(r"/teams/(?P<id>[^/]+)"), self._get_team),
            ("GET", re.compile(r"/files"), self._list_shared),
            ("PATCH", re.compile(r"/files/(?P<id>[^/]+)"), self._patch_size),
            ("GET", re.compile(r"/fileStorage"), self._list_files),
            ("POST", re.compile(r"/fileStorage"), self._register),
            ("DELETE", re.compile(r"/fileStorage"), self._delete),
            ("DELETE", re.compile(r"/fileStorage/directories"), self._delete),
            ("POST", re.compile(r"/fileStorage/directories"), self._create_directory),
            ("POST", re.compile(r"/fileStorage/files/new"), self._create_document),
            ("POST", re.compile(r"/fileStorage/rename"), self._rename),
            ("POST", re.compile(r"/fileStorage/directories/rename"), self._rename),
            ("GET", re.compile(r"/fileStorage/signedUrl"), self._download_url),
            ("POST", re.compile(r"/fileStorage/signedUrl"), self._upload_url),
            ("PATCH", re.compile(r"/fileStorage/signedUrl/(?P<id>[^/]+)"), self._update_url),
            ("PATCH", re.compile(r"/fileStorage/(?P<id>[^/]+)"), self._move),
        ]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def add_account(self, username: str, password: str, uid: str, roles: list[str]) -> None:
        self.accounts[username] = (password, uid)
        self.users[uid] = {"_id": uid, "firstName": username.title(), "lastName": "Tester",
                           "roles": roles}
        self.tokens[f"token-{uid}"] = uid

    def add_role(
        self, role_id: str, permissions: list[str], roles: tuple[str, ...] | list[str] = ()
    ) -> None:
        self.roles[role_id] = {"_id": role_id, "permissions": permissions, "roles": list(roles)}

    def add_file(
        self,
        name: str,
        *,
        owner: str,
        parent: str | None = None,
        creator: str | None = None,
        permissions: list[dict[str, Any]] | None = None,
        content: bytes = b"",
        is_directory: bool = False,
        file_id: str | None = None,
    ) -> str:
        file_id = file_id or f"f{next(self._ids)}"
        record: dict[str, Any] = {
            "_id": file_id,
            "name": name,
            "isDirectory": is_directory,
            "owner": owner,
            "parent": parent,
            "creator": creator or owner,
            "permissions": permissions or [],
            "createdAt": STAMP,
            "updatedAt": STAMP,
        }
        if not is_directory:
            record["size"] = len(content)
            record["storageFileName"] = f"blob-{file_id}"
            self.blobs[record["storageFileName"]] = content
        self.files[file_id] = record
        return file_id

    def add_course(
        self,
        course_id: str,
        name: str,
        *,
        students: tuple[str, ...] | list[str] = (),
        teachers: tuple[str, ...] | list[str] = (),
        substitutes: tuple[str, ...] | list[str] = (),
    ) -> None:
        self.courses[course_id] = {
            "_id": course_id,
            "name": name,
            "userIds": list(students),
            "teacherIds": list(teachers),
            "substitutionIds": list(substitutes),
            "createdAt": STAMP,
        }

    def add_team(
        self,
        team_id: str,
        name: str,
        *,
        members: dict[str, str],
        file_permission: list[dict[str, Any]],
    ) -> None:
        self.teams[team_id] = {
            "_id": team_id,
            "name": name,
            "userIds": [{"userId": uid, "role": role} for uid, role in members.items()],
            "filePermission": file_permission,
        }

    def fail(self, method: str, path: str, status: int, times: int = 1) -> None:
        """Answer the next *times* ``method path`` requests with *status*."""
        self._failures.setdefault((method, path), []).extend([status] * times)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def count(self, method: str | None = None, path: str | None = None) -> int:
        return sum(
            1
            for r in self.requests
            if (method is None or r.method == method) and (path is None or r.url.path == path)
        )

    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host != BLOB_HOST]

    def find(self, name: str, parent: str | None = None) -> dict[str, Any] | None:
        for record in self.files.values():
            if record["name"] == name and record["parent"] == parent:
                return record
        return None

    def content_of(self, file_id: str) -> bytes:
        return self.blobs[self.files[file_id]["storageFileName"]]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        pending = self._failures.get((request.method, path))
        if pending:
            status = pending.pop(0)
            return _error(status, "Injected failure")

        if request.url.host == BLOB_HOST:
            return self._blob(request)

        uid: str | None = None
        if path != "/authentication":
            auth = request.headers.get("Authorization", "")
            uid = self.tokens.get(auth.removeprefix("Bearer "))
            if uid is None:
                return _error(401, "Not authenticated")

        for method, pattern, route in self._routes:
            match = pattern.fullmatch(path)
            if method == request.method and match:
                return route(request, uid, **match.groupdict())
        return _error(404, f"No route for {request.method} {path}")

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def _authenticate(self, request: httpx.Request, uid: None) -> httpx.Response:
        body = json.loads(request.content)
        account = self.accounts.get(body.get("username"))
        if account is None or account[0] != body.get("password"):
            return _error(401, "Invalid login")
        user_id = account[1]
        return httpx.Response(
            201, json={"accessToken": f"token-{user_id}", "account": {"userId": user_id}}
        )

    def _get_user(self, request: httpx.Request, uid: str, id: str) -> httpx.Response:
        if id not in self.users:
            return _error(404, "No such user")
        return httpx.Response(200, json=self.users[id])

    def _get_role(self, request: httpx.Request, uid: str, id: str) -> httpx.Response:
        if id not in self.roles:
            return _error(404, "No such role")
        return httpx.Response(200, json=self.roles[id])

    def _list_courses(self, request: httpx.Request, uid: str) -> httpx.Response:
        member = request.url.params.get("$or[0][userIds]")
        data = [
            c
            for c in self.courses.values()
            if member in c["userIds"] or member in c["teacherIds"]
            or member in c["substitutionIds"]
        ]
        return httpx.Response(200, json={"total": len(data), "data": data})

    def _get_course(self, request: httpx.Request, uid: str, id: str) -> httpx.Response:
        if id not in self.courses:
            return _error(404, "No such course")
        return httpx.Response(200, json=self.courses[id])

    def _list_teams(self, request: httpx.Request, uid: str) -> httpx.Response:
        member = request.url.params.get("userIds.userId")
        data = [
            {"_id": t["_id"], "name": t["name"]}
            for t in self.teams.values()
            if any(m["userId"] == member for m in t["userIds"])
        ]
        return httpx.Response(200, json={"data": data})

    def _get_team(self, request: httpx.Request, uid: str, id: str) -> httpx.Response:
        if id not in self.teams:
            return _error(404, "No such team")
        return httpx.Response(200, json=self.teams[id])

    def _list_shared(self, request: httpx.Request, uid: str) -> httpx.Response:
        ref = request.url.params.get("permissions.refId")
        not_creator = request.url.params.get("creator[$ne]")
        data = [
            f
            for f in self.files.values()
            if f["parent"] is None
            and f["creator"] != not_creator
            and any(p["refId"] == ref for p in f["permissions"])
        ]
        return httpx.Response(200, json=data)

    def _list_files(self, request: httpx.Request, uid: str) -> httpx.Response:
        owner = request.url.params.get("owner")
        parent = request.url.params.get("parent")
        if parent is not None and parent not in self.files:
            return _error(404, "No such directory")
        data = [
            f for f in self.files.values() if f["owner"] == owner and f["parent"] == parent
        ]
        return httpx.Response(200, json=data)

    def _new_object(self, uid: str, body: dict[str, Any], *, is_directory: bool) -> dict:
        file_id = self.add_file(
            body["name"],
            owner=body["owner"],
            parent=body.get("parent"),
            creator=uid,
            permissions=[grant(uid, **ALL)],
            is_directory=is_directory,
        )
        return self.files[file_id]

    def _register(self, request: httpx.Request, uid: str) -> httpx.Response:
        body = json.loads(request.content)
        record = self._new_object(uid, body, is_directory=False)
        record["size"] = body["size"]
        record["type"] = body["type"]
        del self.blobs[record["storageFileName"]]
        record["storageFileName"] = body["storageFileName"]
        return httpx.Response(201, json=record)

    def _create_directory(self, request: httpx.Request, uid: str) -> httpx.Response:
        body = json.loads(request.content)
        return httpx.Response(201, json=self._new_object(uid, body, is_directory=True))

    def _create_document(self, request: httpx.Request, uid: str) -> httpx.Response:
        body = json.loads(request.content)
        return httpx.Response(201, json=self._new_object(uid, body, is_directory=False))

    def _patch_size(self, request: httpx.Request, uid: str, id: str) -> httpx.Response:
        if id not in self.files:
            return _error(404, "No such file")
        body = json.loads(request.content)
        record = self.files[id]
        record["size"] = body["size"]
        record["updatedAt"] = body["updatedAt"]
        return httpx.Response(200, json=record)

    def _delete(self, request: httpx.Request, uid: str) -> httpx.Response:
        file_id = request.url.params.get("_id")
        if file_id not in self.files:
            return _error(404, "No such file")
        doomed = [file_id]
        while doomed:
            current = doomed.pop()
            self.files.pop(current, None)
            doomed.extend(k for k, f in self.files.items() if f["parent"] == current)
        return httpx.Response(200, json={"_id": file_id})

    def _rename(self, request: httpx.Request, uid: str) -> httpx.Response:
        body = json.loads(request.content)
        record = self.files.get(body["_id"])
        if record is None:
            return _error(404, "No such file")
        record["name"] = body["newName"]
        return httpx.Response(200, json=record)

    def _move(self, request: httpx.Request, uid: str, id: str) -> httpx.Response:
        record = self.files.get(id)
        if record is None:
            return _error(404, "No such file")
        record.update(json.loads(request.content))
        return httpx.Response(200, json=record)

    def _download_url(self, request: httpx.Request, uid: str) -> httpx.Response:
        record = self.files.get(request.url.params.get("file"))
        if record is None:
            return _error(404, "No such file")
        return httpx.Response(200, json={"url": f"https://{BLOB_HOST}/{record['storageFileName']}"})

    def _upload_url(self, request: httpx.Request, uid: str) -> httpx.Response:
        body = json.loads(request.content)
        flat = f"upload-{next(self._ids)}"
        return httpx.Response(
            200,
            json={
                "url": f"https://{BLOB_HOST}/{flat}",
                "header": {"Content-Type": body["fileType"], "x-amz-meta-flat-name": flat},
            },
        )

    def _update_url(self, request: httpx.Request, uid: str, id: str) -> httpx.Response:
        record = self.files.get(id)
        if record is None:
            return _error(404, "No such file")
        return httpx.Response(
            200, json={"url": f"https://{BLOB_HOST}/{record['storageFileName']}", "header": {}}
        )

    def _blob(self, request: httpx.Request) -> httpx.Response:
        name = request.url.path.lstrip("/")
        if request.method == "PUT":
            self.blobs[name] = request.content
            return httpx.Response(200)
        if name not in self.blobs:
            return _error(404, "No such blob")
        return httpx.Response(200, content=self.blobs[name])


def _error(status: int, message: str) -> httpx.Response:
    return httpx.Response(status, json={"code": status, "message": message})


# =========================================================================
# Seeded world
# =========================================================================


def seed(cloud: FakeCloud) -> None:
    """Three users, two courses, one team and a few shared files."""
    cloud.add_role("role-student", ["FILESTORAGE_CREATE", "FILESTORAGE_VIEW"], ["role-user"])
    cloud.add_role("role-teacher", ["FILESTORAGE_REMOVE"], ["role-user"])
    # role-user and role-base reference each other
    cloud.add_role("role-user", ["BASE_VIEW"], ["role-base"])
    cloud.add_role("role-base", [], ["role-user"])

    cloud.add_account("alice", "secret", "alice", ["role-student"])
    cloud.add_account("bob", "hunter2", "bob", ["role-teacher"])
    cloud.add_account("carol", "pa55", "carol", ["role-student"])

    # alice's own files
    cloud.add_file("notes.txt", owner="alice", permissions=[grant("alice", **ALL)],
                   content=b"hello", file_id="notes")
    cloud.add_file("docs", owner="alice", permissions=[grant("alice", **ALL)],
                   is_directory=True, file_id="docs")
    cloud.add_file("report.pdf", owner="alice", parent="docs",
                   permissions=[grant("alice", **ALL)], content=b"%PDF-1.4", file_id="report")
    cloud.add_file("hidden.txt", owner="alice", parent="docs",
                   permissions=[grant("bob", read=True)], content=b"nope", file_id="hidden")

    # courses
    cloud.add_course("c-math", "Math", students=["alice"], teachers=["bob"])
    cloud.add_course("c-art", "Art", students=["alice", "carol"], substitutes=["bob"])
    course_acl = [grant("role-student", "role", read=True), grant("bob", **ALL)]
    cloud.add_file("sub", owner="c-math", permissions=course_acl, is_directory=True,
                   file_id="math-sub")
    cloud.add_file("doc.txt", owner="c-math", parent="math-sub", permissions=course_acl,
                   content=b"course doc", file_id="math-doc", creator="bob")

    # teams
    cloud.add_team(
        "t-robots",
        "Robotics",
        members={"alice": "team-member", "bob": "team-owner"},
        file_permission=[
            grant("team-member", "role", read=True, create=True),
            grant("team-owner", "role", **ALL),
        ],
    )
    cloud.add_file(
        "plans.md",
        owner="t-robots",
        creator="bob",
        permissions=[
            grant("team-member", "role", read=True, write=True),
            grant("team-owner", "role", **ALL),
        ],
        content=b"# plans",
        file_id="plans",
    )

    # bob shares with alice
    cloud.add_file("Handout.pdf", owner="bob", permissions=[grant("alice", read=True)],
                   content=b"handout", file_id="handout")
    cloud.add_file("Shared Folder", owner="bob",
                   permissions=[grant("alice", read=True, write=True, create=True)],
                   is_directory=True, file_id="shared-dir")
    cloud.add_file("inner.txt", owner="bob", parent="shared-dir",
                   permissions=[grant("alice", read=True)], content=b"inner", file_id="inner")


@pytest.fixture
def cloud() -> FakeCloud:
    fake = FakeCloud()
    seed(fake)
    return fake


@pytest.fixture
async def client(cloud: FakeCloud) -> AsyncIterator[CloudClient]:
    async with CloudClient(API_URL, transport=cloud.transport) as c:
        yield c


# =========================================================================
# Sessions (as the login would build them)
# =========================================================================


@pytest.fixture
def alice() -> User:
    return User(
        uid="alice",
        username="alice",
        jwt="token-alice",
        roles={"role-student", "role-user", "role-base"},
        permissions={"FILESTORAGE_CREATE", "FILESTORAGE_VIEW", "BASE_VIEW"},
    )


@pytest.fixture
def bob() -> User:
    return User(
        uid="bob",
        username="bob",
        jwt="token-bob",
        roles={"role-teacher", "role-user", "role-base"},
        permissions={"FILESTORAGE_REMOVE", "BASE_VIEW"},
    )


@pytest.fixture
def carol() -> User:
    return User(
        uid="carol",
        username="carol",
        jwt="token-carol",
        roles={"role-student", "role-user", "role-base"},
        permissions={"FILESTORAGE_CREATE", "FILESTORAGE_VIEW", "BASE_VIEW"},
    )


# =========================================================================
# Mount filesystems
# =========================================================================


@pytest.fixture
def my_fs(client: CloudClient) -> WebFileSystem:
    return WebFileSystem(client, "my")


@pytest.fixture
def courses_fs(client: CloudClient) -> WebFileSystem:
    return WebFileSystem(client, "courses")


@pytest.fixture
def teams_fs(client: CloudClient) -> WebFileSystem:
    return WebFileSystem(client, "teams")


@pytest.fixture
def shared_fs(client: CloudClient) -> WebFileSystem:
    return WebFileSystem(client, "shared")
