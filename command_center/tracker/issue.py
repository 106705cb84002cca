"""
Issue schemas.

An Issue is a trackable unit of work. Its ``status`` is the field the
automation layer watches.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, constr, field_validator

from .enums import IssuePriority, IssueStatus, IssueType
from .primitives import generate_ulid, utc_now


def _dedupe_labels(labels: List[str]) -> List[str]:
    seen = []
    for label in labels:
        label = label.strip()
        if label and label not in seen:
            seen.append(label)
    return seen


class Issue(BaseModel):
    """A trackable unit of work.

    Invariants:
    - Created with status TODO; only the status endpoint changes it.
    - Transitions between statuses are unrestricted.
    - Mutated only through IssueService.
    """

    id: str = Field(default_factory=generate_ulid, description="ULID")
    code: str = Field(..., description="Human code, e.g. CMD-001")
    project_id: str = Field(..., description="Owning project")

    title: constr(min_length=1, max_length=512)
    description: str = ""
    type: IssueType = IssueType.TASK
    priority: IssuePriority = IssuePriority.MEDIUM
    status: IssueStatus = IssueStatus.TODO

    labels: List[str] = Field(default_factory=list)
    assignee_id: Optional[str] = None
    created_by: Optional[str] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("labels")
    @classmethod
    def normalize_labels(cls, value: List[str]) -> List[str]:
        return _dedupe_labels(value)


class IssueCreate(BaseModel):
    """Schema for creating a new Issue."""

    model_config = ConfigDict(extra="forbid")

    project_id: constr(min_length=1)
    title: constr(strip_whitespace=True, min_length=1, max_length=512)
    description: constr(max_length=16000) = ""
    type: IssueType = IssueType.TASK
    priority: IssuePriority = IssuePriority.MEDIUM
    labels: List[str] = Field(default_factory=list)
    assignee_id: Optional[str] = None

    @field_validator("labels")
    @classmethod
    def normalize_labels(cls, value: List[str]) -> List[str]:
        return _dedupe_labels(value)


class IssueUpdate(BaseModel):
    """Editable fields. Status changes go through PATCH /issues/{id}/status."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[constr(strip_whitespace=True, min_length=1, max_length=512)] = None
    description: Optional[constr(max_length=16000)] = None
    type: Optional[IssueType] = None
    priority: Optional[IssuePriority] = None
    labels: Optional[List[str]] = None

    @field_validator("labels")
    @classmethod
    def normalize_labels(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return _dedupe_labels(value) if value is not None else None


class StatusChange(BaseModel):
    """Body of PATCH /issues/{id}/status."""

    model_config = ConfigDict(extra="forbid")

    status: IssueStatus


class AssignRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    assignee: Optional[str] = None


class LabelRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    label: constr(strip_whitespace=True, min_length=1, max_length=64)
