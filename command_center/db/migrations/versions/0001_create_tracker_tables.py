"""create users, projects and issues tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

ISSUE_TYPES = ("TASK", "BUG", "FEATURE", "HOTFIX", "IMPROVEMENT", "EPIC", "STORY", "SUB-TASK")
ISSUE_PRIORITIES = ("CRITICAL", "HIGH", "MEDIUM", "LOW", "TRIVIAL")
ISSUE_STATUSES = ("TODO", "IN_PROGRESS", "REVIEW", "TESTING", "DONE", "BLOCKED")
USER_ROLES = ("admin", "developer", "viewer")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column(
            "role",
            sa.Enum(*USER_ROLES, name="user_role"),
            nullable=False,
            server_default="developer",
        ),
        sa.Column("password_hash", sa.String(length=256), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "projects",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("key", sa.String(length=10), nullable=False, server_default="CMD"),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("directory", sa.String(length=1024), nullable=True),
        sa.Column("git_repo", sa.String(length=512), nullable=True),
        sa.Column("git_branch", sa.String(length=256), nullable=False, server_default="main"),
        sa.Column("owner_id", sa.String(length=128), sa.ForeignKey("users.id"), nullable=True),
        # Automation config
        sa.Column("claude_auto_execute", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("auto_move_to_review", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("slack_webhook_url", sa.String(length=2000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_projects_owner_id", "projects", ["owner_id"])

    op.create_table(
        "issues",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("project_id", sa.String(length=128), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "type",
            sa.Enum(*ISSUE_TYPES, name="issue_type"),
            nullable=False,
            server_default="TASK",
        ),
        sa.Column(
            "priority",
            sa.Enum(*ISSUE_PRIORITIES, name="issue_priority"),
            nullable=False,
            server_default="MEDIUM",
        ),
        sa.Column(
            "status",
            sa.Enum(*ISSUE_STATUSES, name="issue_status"),
            nullable=False,
            server_default="TODO",
        ),
        sa.Column("labels", sa.JSON(), nullable=False),
        sa.Column("assignee_id", sa.String(length=128), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_issues_code", "issues", ["code"], unique=True)
    op.create_index("ix_issues_project_id", "issues", ["project_id"])
    op.create_index("ix_issues_type", "issues", ["type"])
    op.create_index("ix_issues_priority", "issues", ["priority"])
    op.create_index("ix_issues_status", "issues", ["status"])
    op.create_index("ix_issues_assignee_id", "issues", ["assignee_id"])
    op.create_index("ix_issues_project_status", "issues", ["project_id", "status"])
    op.create_index("ix_issues_priority_status", "issues", ["priority", "status"])


def downgrade() -> None:
    op.drop_table("issues")
    op.drop_table("projects")
    op.drop_table("users")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in ("issue_status", "issue_priority", "issue_type", "user_role"):
            op.execute(f"DROP TYPE IF EXISTS {enum_name}")
