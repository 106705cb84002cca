"""Users, password hashing and bearer tokens."""

from .security import create_access_token, hash_password, verify_access_token, verify_password
from .service import AuthService

__all__ = [
    "AuthService",
    "create_access_token",
    "hash_password",
    "verify_access_token",
    "verify_password",
]
