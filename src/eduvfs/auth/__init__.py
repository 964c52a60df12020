"""Sessions and the session provider."""

from eduvfs.auth.user import User
from eduvfs.auth.users import UserManager, load_role_tree

__all__ = [
    "User",
    "UserManager",
    "load_role_tree",
]
