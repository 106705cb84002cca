"""
Project schemas.

A Project groups issues and carries the automation config read by the
status transition orchestrator.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import (
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    constr,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError

from .primitives import generate_ulid, utc_now

ProjectKey = constr(pattern=r"^[A-Z][A-Z0-9]{1,9}$")


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is not None and not value.strip():
        return None
    return value


_http_url = TypeAdapter(AnyHttpUrl)


def _webhook_url(value: Optional[str]) -> Optional[str]:
    """Blank means no webhook; anything else must be a printable http(s) URL."""
    value = _blank_to_none(value)
    if value is None:
        return None
    value = value.strip()
    if not value.isprintable():
        raise ValueError("Webhook URL contains non-printable characters")
    try:
        _http_url.validate_python(value)
    except PydanticValidationError:
        raise ValueError("Webhook URL must be an absolute http(s) URL") from None
    return value


class Project(BaseModel):
    """A project and its automation config."""

    id: str = Field(default_factory=generate_ulid)
    name: constr(min_length=1, max_length=256)
    key: ProjectKey = "CMD"
    description: str = ""
    directory: Optional[str] = None
    git_repo: Optional[str] = None
    git_branch: str = "main"
    owner_id: Optional[str] = None

    # Automation config
    claude_auto_execute: bool = False
    auto_move_to_review: bool = False
    slack_webhook_url: Optional[str] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ProjectCreate(BaseModel):
    """Schema for creating a new Project."""

    model_config = ConfigDict(extra="forbid")

    name: constr(strip_whitespace=True, min_length=1, max_length=256)
    key: ProjectKey = "CMD"
    description: str = ""
    directory: Optional[str] = None
    git_repo: Optional[str] = None
    git_branch: str = "main"
    claude_auto_execute: bool = False
    auto_move_to_review: bool = False
    slack_webhook_url: Optional[str] = None

    @field_validator("slack_webhook_url")
    @classmethod
    def normalize_webhook(cls, value: Optional[str]) -> Optional[str]:
        return _webhook_url(value)


class ProjectUpdate(BaseModel):
    """Partial update; only the fields that are set are applied."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[constr(strip_whitespace=True, min_length=1, max_length=256)] = None
    description: Optional[str] = None
    directory: Optional[str] = None
    git_repo: Optional[str] = None
    git_branch: Optional[str] = None
    claude_auto_execute: Optional[bool] = None
    auto_move_to_review: Optional[bool] = None
    slack_webhook_url: Optional[str] = None

    @field_validator("slack_webhook_url")
    @classmethod
    def normalize_webhook(cls, value: Optional[str]) -> Optional[str]:
        return _webhook_url(value)


class SlackTestRequest(BaseModel):
    """Optional override URL for POST /projects/{id}/slack/test."""

    model_config = ConfigDict(extra="forbid")

    webhook_url: Optional[str] = None

    @field_validator("webhook_url")
    @classmethod
    def normalize_webhook(cls, value: Optional[str]) -> Optional[str]:
        return _webhook_url(value)
