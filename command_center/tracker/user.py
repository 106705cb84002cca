"""
User schemas.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, constr

from .enums import UserRole
from .primitives import generate_ulid, utc_now


class User(BaseModel):
    """A dashboard user. ``password_hash`` never leaves the service."""

    id: str = Field(default_factory=generate_ulid)
    email: constr(min_length=3, max_length=320)
    name: constr(min_length=1, max_length=256)
    role: UserRole = UserRole.DEVELOPER
    password_hash: str

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def public_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude={"password_hash"})


class UserRegister(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: constr(strip_whitespace=True, to_lower=True, pattern=r"^[^@\s]+@[^@\s]+$")
    password: constr(min_length=8, max_length=72)
    name: constr(strip_whitespace=True, min_length=1, max_length=256)


class UserLogin(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: constr(strip_whitespace=True, to_lower=True)
    password: constr(min_length=1, max_length=128)
