"""Exception hierarchy for the eduvfs filesystem layer.

The protocol server maps each of these to a fixed status code.
"""


class EduVFSError(Exception):
    """Base exception for all eduvfs filesystem errors."""


class AuthenticationRequiredError(EduVFSError):
    """Raised when an operation arrives without an authenticated session."""


class ForbiddenError(EduVFSError):
    """Raised when a permission check fails or the backend denies access."""


class ResourceNotFoundError(EduVFSError):
    """Raised when a path does not resolve or the backend reports it missing."""


class ResourceExistsError(EduVFSError):
    """Raised when a create, rename or move would collide with a sibling."""


class InvalidOperationError(EduVFSError):
    """Raised when the backend rejects a rename without a specific reason."""


class BackendError(EduVFSError):
    """Raised on any other backend failure."""


class MountNotFoundError(ResourceNotFoundError):
    """Raised when no mount matches the given virtual path."""
