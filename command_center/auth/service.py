"""
Authentication service: registration, login and token resolution.
"""

from datetime import timedelta
from typing import Any, Dict

import structlog

from ..db.repository import TrackerStore
from ..exceptions import AuthenticationError, ConflictError
from ..tracker.enums import UserRole
from ..tracker.user import User, UserLogin, UserRegister
from .security import create_access_token, hash_password, verify_access_token, verify_password

logger = structlog.get_logger()


class AuthService:
    """Service for users and bearer tokens."""

    def __init__(self, store: TrackerStore, secret_key: str, expire_minutes: int = 60 * 24):
        self.store = store
        self.secret_key = secret_key
        self.expire_minutes = expire_minutes

    def register(self, data: UserRegister, role: UserRole = UserRole.DEVELOPER) -> User:
        if self.store.users.find_one(email=data.email) is not None:
            raise ConflictError(f"User '{data.email}' already exists")
        user = self.store.users.create(
            User(
                email=data.email,
                name=data.name,
                role=role,
                password_hash=hash_password(data.password),
            )
        )
        logger.info("user_registered", user_id=user.id)
        return user

    def issue_token(self, user: User) -> Dict[str, Any]:
        token = create_access_token(
            {"sub": user.id, "email": user.email, "role": user.role.value},
            self.secret_key,
            expires_delta=timedelta(minutes=self.expire_minutes),
        )
        return {
            "access_token": token,
            "token_type": "bearer",
            "expires_in": self.expire_minutes * 60,
        }

    def login(self, data: UserLogin) -> Dict[str, Any]:
        user = self.store.users.find_one(email=data.email)
        if user is None or not verify_password(data.password, user.password_hash):
            logger.info("login_failed", email=data.email)
            raise AuthenticationError("Invalid email or password")
        logger.info("login_succeeded", user_id=user.id)
        return {"user": user.public_dict(), **self.issue_token(user)}

    def resolve_token(self, token: str) -> User:
        payload = verify_access_token(token, self.secret_key)
        if payload is None:
            raise AuthenticationError("Invalid or expired token")
        user = self.store.users.get(payload["sub"])
        if user is None:
            raise AuthenticationError("User no longer exists")
        return user
