"""
Execution schemas.

Represents one run of the automated processing pipeline against an Issue.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, conint, constr

from .enums import ExecutionStatus
from .primitives import generate_ulid, utc_now


def _job_id() -> str:
    return f"job-{generate_ulid()}"


class Execution(BaseModel):
    """One automated run against an Issue.

    Invariants:
    - progress == 100 iff status == completed.
    - completed_at is set iff status is terminal.
    - logs are append-only, in emission order.
    - A retry creates a new Execution; the original is never mutated.
    """

    id: str = Field(default_factory=generate_ulid)
    job_id: str = Field(default_factory=_job_id)
    issue_id: str

    prompt: str = ""
    context: Dict[str, Any] = Field(default_factory=dict)
    options: Dict[str, Any] = Field(default_factory=dict)

    status: ExecutionStatus = ExecutionStatus.PENDING
    progress: conint(ge=0, le=100) = 0
    logs: List[str] = Field(default_factory=list)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    retry_of: Optional[str] = None

    started_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()


class ExecuteRequest(BaseModel):
    """Body of POST /claude/execute."""

    model_config = ConfigDict(extra="forbid")

    issue_id: constr(min_length=1)
    prompt: Optional[constr(max_length=16000)] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    options: Dict[str, Any] = Field(default_factory=dict)


class IssueExecuteRequest(BaseModel):
    """Body of POST /issues/{id}/execute."""

    model_config = ConfigDict(extra="forbid")

    options: Dict[str, Any] = Field(default_factory=dict)


class GenerateCommandRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    issue_id: constr(min_length=1)


class PreviewRequest(BaseModel):
    """Body of POST /claude/preview. Either a prompt or an issue to derive one from."""

    model_config = ConfigDict(extra="forbid")

    issue_id: Optional[str] = None
    prompt: Optional[constr(max_length=16000)] = None
