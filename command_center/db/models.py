"""
SQLAlchemy models for Command Center.

Column names mirror the pydantic schema field names so rows convert to
and from schema objects without a mapping table.
"""

from typing import Any, Dict

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.sql import func

from .base import Base

issue_type_enum = Enum(
    "TASK", "BUG", "FEATURE", "HOTFIX", "IMPROVEMENT", "EPIC", "STORY", "SUB-TASK",
    name="issue_type",
)
issue_priority_enum = Enum(
    "CRITICAL", "HIGH", "MEDIUM", "LOW", "TRIVIAL", name="issue_priority"
)
issue_status_enum = Enum(
    "TODO", "IN_PROGRESS", "REVIEW", "TESTING", "DONE", "BLOCKED",
    name="issue_status",
)
user_role_enum = Enum("admin", "developer", "viewer", name="user_role")


class _RowMixin:
    def to_dict(self) -> Dict[str, Any]:
        """Convert model to a dict keyed by column name."""
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}


class UserModel(_RowMixin, Base):
    """SQLAlchemy model for users."""

    __tablename__ = "users"

    id = Column(String(128), primary_key=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    name = Column(String(256), nullable=False)
    role = Column(user_role_enum, nullable=False, default="developer")
    password_hash = Column(String(256), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=func.now())


class ProjectModel(_RowMixin, Base):
    """SQLAlchemy model for projects and their automation config."""

    __tablename__ = "projects"

    id = Column(String(128), primary_key=True)
    name = Column(String(256), nullable=False)
    key = Column(String(10), nullable=False, default="CMD")
    description = Column(Text, nullable=False, default="")
    directory = Column(String(1024), nullable=True)
    git_repo = Column(String(512), nullable=True)
    git_branch = Column(String(256), nullable=False, default="main")
    owner_id = Column(String(128), ForeignKey("users.id"), nullable=True, index=True)

    # Automation config
    claude_auto_execute = Column(Boolean, nullable=False, default=False)
    auto_move_to_review = Column(Boolean, nullable=False, default=False)
    slack_webhook_url = Column(String(2000), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=func.now())


class IssueModel(_RowMixin, Base):
    """SQLAlchemy model for issues."""

    __tablename__ = "issues"

    id = Column(String(128), primary_key=True)
    code = Column(String(32), nullable=False, unique=True, index=True)
    project_id = Column(
        String(128), ForeignKey("projects.id"), nullable=False, index=True
    )

    title = Column(String(512), nullable=False)
    description = Column(Text, nullable=False, default="")
    type = Column(issue_type_enum, nullable=False, default="TASK", index=True)
    priority = Column(issue_priority_enum, nullable=False, default="MEDIUM", index=True)
    status = Column(issue_status_enum, nullable=False, default="TODO", index=True)

    labels = Column(JSON, nullable=False, default=list)
    assignee_id = Column(String(128), nullable=True, index=True)
    created_by = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    __table_args__ = (
        Index("ix_issues_project_status", "project_id", "status"),
        Index("ix_issues_priority_status", "priority", "status"),
    )
