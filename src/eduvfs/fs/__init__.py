"""Filesystem layer — cache, permissions, root views, resolver, handlers."""

from eduvfs.fs.cache import ResourceCache
from eduvfs.fs.exceptions import (
    AuthenticationRequiredError,
    BackendError,
    EduVFSError,
    ForbiddenError,
    InvalidOperationError,
    MountNotFoundError,
    ResourceExistsError,
    ResourceNotFoundError,
)
from eduvfs.fs.managers import LockInfo, LockManager, PropertyManager
from eduvfs.fs.mounts import MountConfig, MountRegistry
from eduvfs.fs.paths import VirtualPath, normalize_path, validate_name
from eduvfs.fs.permissions import (
    Permission,
    PermissionEntry,
    PermissionSet,
    RefModel,
    resolve_permissions,
)
from eduvfs.fs.protocol import FileSystemCapability
from eduvfs.fs.resolver import PathResolver
from eduvfs.fs.types import FileInfo, Resource, ResourceType
from eduvfs.fs.upload import UploadPipeline, UploadState, UploadStream, UploadTarget
from eduvfs.fs.vfs import VFS
from eduvfs.fs.views import CoursesView, PersonalView, RootView, SharedView, TeamsView
from eduvfs.fs.web_fs import WebFileSystem

__all__ = [
    "VFS",
    "AuthenticationRequiredError",
    "BackendError",
    "CoursesView",
    "EduVFSError",
    "FileInfo",
    "FileSystemCapability",
    "ForbiddenError",
    "InvalidOperationError",
    "LockInfo",
    "LockManager",
    "MountConfig",
    "MountNotFoundError",
    "MountRegistry",
    "PathResolver",
    "Permission",
    "PermissionEntry",
    "PermissionSet",
    "PersonalView",
    "PropertyManager",
    "RefModel",
    "Resource",
    "ResourceCache",
    "ResourceExistsError",
    "ResourceNotFoundError",
    "ResourceType",
    "RootView",
    "SharedView",
    "TeamsView",
    "UploadPipeline",
    "UploadState",
    "UploadStream",
    "UploadTarget",
    "VirtualPath",
    "WebFileSystem",
    "normalize_path",
    "resolve_permissions",
    "validate_name",
]
