"""eduvfs: education cloud files as one browsable file tree.

Personal, course, team and shared files of the backend, mapped onto a
path-addressed tree any WebDAV-style server can serve.
"""

__version__ = "0.1.0"

from eduvfs._eduvfs import EduVFS
from eduvfs.api.client import ApiError, CloudClient
from eduvfs.auth.user import User
from eduvfs.auth.users import UserManager
from eduvfs.config import Settings
from eduvfs.fs.exceptions import (
    AuthenticationRequiredError,
    BackendError,
    EduVFSError,
    ForbiddenError,
    InvalidOperationError,
    ResourceExistsError,
    ResourceNotFoundError,
)
from eduvfs.fs.types import FileInfo, Resource, ResourceType
from eduvfs.fs.vfs import VFS
from eduvfs.fs.web_fs import WebFileSystem
from eduvfs.logs import configure_logging

__all__ = [
    "VFS",
    "ApiError",
    "AuthenticationRequiredError",
    "BackendError",
    "CloudClient",
    "EduVFS",
    "EduVFSError",
    "FileInfo",
    "ForbiddenError",
    "InvalidOperationError",
    "Resource",
    "ResourceExistsError",
    "ResourceNotFoundError",
    "ResourceType",
    "Settings",
    "User",
    "UserManager",
    "WebFileSystem",
    "__version__",
    "configure_logging",
]
