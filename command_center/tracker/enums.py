"""
Canonical enums for issues and executions.
"""

from enum import Enum


class IssueType(str, Enum):
    """Types of issues/work items."""

    TASK = "TASK"
    BUG = "BUG"
    FEATURE = "FEATURE"
    HOTFIX = "HOTFIX"
    IMPROVEMENT = "IMPROVEMENT"
    EPIC = "EPIC"
    STORY = "STORY"
    SUB_TASK = "SUB-TASK"


class IssuePriority(str, Enum):
    """Priority levels, most urgent first."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    TRIVIAL = "TRIVIAL"


class IssueStatus(str, Enum):
    """Board columns. Any status may follow any other."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    TESTING = "TESTING"
    DONE = "DONE"
    BLOCKED = "BLOCKED"


class ExecutionStatus(str, Enum):
    """Lifecycle of one automated run: pending -> running -> terminal."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_EXECUTION_STATUSES


TERMINAL_EXECUTION_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
)


class UserRole(str, Enum):
    """Dashboard roles."""

    ADMIN = "admin"
    DEVELOPER = "developer"
    VIEWER = "viewer"
