"""CloudClient — async REST client for the education cloud backend."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from eduvfs.auth.user import User

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class ApiError(Exception):
    """A non-2xx backend response.

    Attributes:
        status: HTTP status code.
        code: Backend error code from the ``{code, message}`` body, if any.
        message: Backend error message, or the reason phrase.
    """

    def __init__(self, status: int, message: str = "", code: int | str | None = None) -> None:
        super().__init__(f"{status}: {message}" if message else str(status))
        self.status = status
        self.message = message
        self.code = code

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    @property
    def is_forbidden(self) -> bool:
        return self.status in (401, 403)


@dataclass(frozen=True)
class SignedUrl:
    """Pre-authorized blob-store endpoint returned by the backend."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def storage_file_name(self) -> str:
        """Name the blob store files the object under."""
        flat = self.headers.get("x-amz-meta-flat-name")
        if flat:
            return flat
        return httpx.URL(self.url).path.rsplit("/", 1)[-1]


def _bracket_params(prefix: str, value: Any) -> list[tuple[str, str]]:
    """Flatten nested dicts/lists into ``a[0][b]=c`` query pairs."""
    if isinstance(value, dict):
        pairs: list[tuple[str, str]] = []
        for key, item in value.items():
            pairs.extend(_bracket_params(f"{prefix}[{key}]", item))
        return pairs
    if isinstance(value, list | tuple):
        pairs = []
        for i, item in enumerate(value):
            pairs.extend(_bracket_params(f"{prefix}[{i}]", item))
        return pairs
    return [(prefix, str(value))]


def encode_query(params: dict[str, Any]) -> list[tuple[str, str]]:
    """Serialize *params* using the backend's bracket notation."""
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        if value is None:
            continue
        pairs.extend(_bracket_params(key, value))
    return pairs


def _as_list(payload: Any) -> list[dict[str, Any]]:
    """Accept both bare lists and paginated ``{data: [...]}`` bodies."""
    if isinstance(payload, dict):
        payload = payload.get("data", [])
    return list(payload or [])


class CloudClient:
    """Thin async wrapper over the backend REST API.

    Every call takes the session whose bearer token authorizes it.  The
    blob-store methods never send the bearer token.

    Usage::

        async with CloudClient("https://api.example.org") as client:
            files = await client.list_files(user, owner=user.uid)
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> CloudClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    @staticmethod
    def _auth_headers(jwt: str | None) -> dict[str, str]:
        return {"Authorization": f"Bearer {jwt}"} if jwt else {}

    async def _request(
        self,
        method: str,
        url: str,
        jwt: str | None,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        try:
            response = await self._http.request(
                method,
                url,
                params=encode_query(params) if params else None,
                json=json,
                headers=self._auth_headers(jwt),
            )
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise ApiError(503, str(e)) from e
        if response.is_error:
            raise self._error_from(response)
        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_from(response: httpx.Response) -> ApiError:
        code: int | str | None = None
        message = response.reason_phrase
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = body.get("code")
            message = str(body.get("message") or message)
        return ApiError(response.status_code, message, code)

    # ------------------------------------------------------------------
    # Authentication and roles
    # ------------------------------------------------------------------

    async def authenticate(self, username: str, password: str) -> dict[str, Any]:
        """Local-strategy login; returns ``{accessToken, account: {userId}}``."""
        return await self._request(
            "POST",
            "/authentication",
            None,
            json={"strategy": "local", "username": username, "password": password},
        )

    async def get_user(self, jwt: str, user_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/users/{user_id}", jwt)

    async def get_role(self, jwt: str, role_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/roles/{role_id}", jwt)

    # ------------------------------------------------------------------
    # Top-level collections
    # ------------------------------------------------------------------

    async def list_courses(self, user: User) -> list[dict[str, Any]]:
        """Courses where *user* is a student, teacher or substitute."""
        params = {
            "$or": [
                {"userIds": user.uid},
                {"teacherIds": user.uid},
                {"substitutionIds": user.uid},
            ]
        }
        return _as_list(await self._request("GET", "/courses", user.jwt, params=params))

    async def get_course(self, user: User, course_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/courses/{course_id}", user.jwt)

    async def list_teams(self, user: User) -> list[dict[str, Any]]:
        params = {"userIds.userId": user.uid}
        return _as_list(await self._request("GET", "/teams", user.jwt, params=params))

    async def get_team(self, user: User, team_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/teams/{team_id}", user.jwt)

    async def list_shared(self, user: User) -> list[dict[str, Any]]:
        """Files shared with *user* that *user* did not create."""
        params = {"permissions.refId": user.uid, "creator[$ne]": user.uid}
        return _as_list(await self._request("GET", "/files", user.jwt, params=params))

    # ------------------------------------------------------------------
    # Files and directories
    # ------------------------------------------------------------------

    async def list_files(
        self,
        user: User,
        *,
        owner: str,
        parent: str | None = None,
    ) -> list[dict[str, Any]]:
        params = {"owner": owner, "parent": parent}
        return _as_list(await self._request("GET", "/fileStorage", user.jwt, params=params))

    async def create_directory(
        self, user: User, name: str, *, owner: str, parent: str | None
    ) -> dict[str, Any]:
        body = {"name": name, "owner": owner, "parent": parent}
        return await self._request("POST", "/fileStorage/directories", user.jwt, json=body)

    async def create_office_document(
        self, user: User, name: str, *, owner: str, parent: str | None
    ) -> dict[str, Any]:
        body = {"name": name, "owner": owner, "parent": parent}
        return await self._request("POST", "/fileStorage/files/new", user.jwt, json=body)

    async def register_file(
        self,
        user: User,
        name: str,
        *,
        owner: str,
        parent: str | None,
        file_type: str,
        size: int,
        storage_file_name: str,
    ) -> dict[str, Any]:
        body = {
            "name": name,
            "owner": owner,
            "parent": parent,
            "type": file_type,
            "size": size,
            "storageFileName": storage_file_name,
        }
        return await self._request("POST", "/fileStorage", user.jwt, json=body)

    async def patch_file_size(
        self, user: User, file_id: str, size: int, updated_at: datetime | None = None
    ) -> dict[str, Any]:
        stamp = (updated_at or datetime.now(UTC)).isoformat()
        body = {"size": size, "updatedAt": stamp}
        return await self._request("PATCH", f"/files/{file_id}", user.jwt, json=body)

    async def delete_file(self, user: User, file_id: str) -> None:
        await self._request("DELETE", "/fileStorage", user.jwt, params={"_id": file_id})

    async def delete_directory(self, user: User, directory_id: str) -> None:
        await self._request(
            "DELETE", "/fileStorage/directories", user.jwt, params={"_id": directory_id}
        )

    async def rename_file(self, user: User, file_id: str, new_name: str) -> dict[str, Any]:
        body = {"_id": file_id, "newName": new_name}
        return await self._request("POST", "/fileStorage/rename", user.jwt, json=body)

    async def rename_directory(
        self, user: User, directory_id: str, new_name: str
    ) -> dict[str, Any]:
        body = {"_id": directory_id, "newName": new_name}
        return await self._request(
            "POST", "/fileStorage/directories/rename", user.jwt, json=body
        )

    async def move(
        self,
        user: User,
        file_id: str,
        *,
        parent: str | None,
        owner: str | None = None,
        name: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"parent": parent}
        if owner is not None:
            body["owner"] = owner
        if name is not None:
            body["name"] = name
        return await self._request("PATCH", f"/fileStorage/{file_id}", user.jwt, json=body)

    # ------------------------------------------------------------------
    # Signed URLs and blob store
    # ------------------------------------------------------------------

    async def get_download_url(self, user: User, file_id: str) -> str:
        params = {"file": file_id, "download": "true"}
        payload = await self._request("GET", "/fileStorage/signedUrl", user.jwt, params=params)
        return str(payload["url"])

    async def request_upload_url(
        self, user: User, filename: str, *, file_type: str, parent: str | None
    ) -> SignedUrl:
        body = {"filename": filename, "fileType": file_type, "parent": parent}
        payload = await self._request("POST", "/fileStorage/signedUrl", user.jwt, json=body)
        return SignedUrl(url=str(payload["url"]), headers=dict(payload.get("header") or {}))

    async def request_update_url(self, user: User, file_id: str) -> SignedUrl:
        payload = await self._request("PATCH", f"/fileStorage/signedUrl/{file_id}", user.jwt)
        return SignedUrl(url=str(payload["url"]), headers=dict(payload.get("header") or {}))

    async def upload_blob(self, signed: SignedUrl, content: bytes) -> None:
        """PUT *content* to a signed URL with the backend-supplied headers."""
        try:
            response = await self._http.put(signed.url, content=content, headers=signed.headers)
        except httpx.HTTPError as e:
            raise ApiError(503, str(e)) from e
        if response.is_error:
            raise self._error_from(response)

    async def download_blob(self, url: str) -> AsyncIterator[bytes]:
        """Stream the bytes behind a signed download URL."""
        async with self._http.stream("GET", url) as response:
            if response.is_error:
                await response.aread()
                raise self._error_from(response)
            async for chunk in response.aiter_bytes():
                yield chunk
