"""
Tracker domain: issues, projects, users and executions.

Schemas live in their own modules; ``services`` holds the business logic and
``routes`` the REST endpoints.
"""

from .enums import (
    ExecutionStatus,
    IssuePriority,
    IssueStatus,
    IssueType,
    UserRole,
)
from .execution import Execution
from .issue import Issue, IssueCreate, IssueUpdate
from .project import Project, ProjectCreate, ProjectUpdate
from .user import User

__all__ = [
    "Execution",
    "ExecutionStatus",
    "Issue",
    "IssueCreate",
    "IssuePriority",
    "IssueStatus",
    "IssueType",
    "IssueUpdate",
    "Project",
    "ProjectCreate",
    "ProjectUpdate",
    "User",
    "UserRole",
]
