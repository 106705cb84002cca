"""
Tracker service layer.

Business logic over the ``TrackerStore`` repositories. Services validate
references, assign issue codes and publish realtime events; routes stay thin.

Status mutations for one issue are serialized by a per-issue ``asyncio.Lock``
so a status read followed by a write cannot interleave with another change.
"""

from __future__ import annotations

import asyncio
import weakref
from collections import Counter
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from ..core.broadcaster import RealtimeBroadcaster
from ..db.repository import TrackerStore
from ..exceptions import NotFoundError, ValidationError
from .enums import IssuePriority, IssueStatus, IssueType
from .issue import Issue, IssueCreate, IssueUpdate
from .primitives import format_issue_code
from .project import Project, ProjectCreate, ProjectUpdate

logger = structlog.get_logger()

StatusListener = Callable[[Issue, IssueStatus, IssueStatus], None]


def _code_sequence(code: str) -> int:
    try:
        return int(code.rsplit("-", 1)[1])
    except (IndexError, ValueError):
        return 0


class IssueService:
    """Service for managing issues."""

    def __init__(self, store: TrackerStore, broadcaster: RealtimeBroadcaster):
        self.store = store
        self.broadcaster = broadcaster
        # Entries vanish once no coroutine holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self._status_listeners: List[StatusListener] = []

    def add_status_listener(self, listener: StatusListener) -> None:
        """Call ``listener(issue, old_status, new_status)`` after each public status change."""
        self._status_listeners.append(listener)

    def lock_for(self, issue_id: str) -> asyncio.Lock:
        lock = self._locks.get(issue_id)
        if lock is None:
            lock = self._locks[issue_id] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Interface used by the automation core
    # ------------------------------------------------------------------

    def get_by_id(self, issue_id: str) -> Optional[Issue]:
        return self.store.issues.get(issue_id)

    def update_status(self, issue_id: str, status: IssueStatus) -> Issue:
        """Persist a new status. No events, no automation."""
        issue = self.store.issues.update(issue_id, status=status)
        if issue is None:
            raise NotFoundError("Issue", issue_id)
        return issue

    def get_owning_project(self, issue_id: str) -> Optional[Project]:
        issue = self.store.issues.get(issue_id)
        if issue is None:
            return None
        return self.store.projects.get(issue.project_id)

    async def move_if_status(
        self, issue_id: str, expected: IssueStatus, new_status: IssueStatus
    ) -> Optional[Issue]:
        """Atomically move an issue to ``new_status`` if it is still ``expected``.

        Returns:
            The updated issue, or None if the issue is gone or has moved on
        """
        async with self.lock_for(issue_id):
            current = self.get_by_id(issue_id)
            if current is None or current.status != expected:
                return None
            return self.update_status(issue_id, new_status)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def get(self, issue_id: str) -> Issue:
        issue = self.get_by_id(issue_id)
        if issue is None:
            raise NotFoundError("Issue", issue_id)
        return issue

    def list(
        self,
        project_id: Optional[str] = None,
        status: Optional[IssueStatus] = None,
        type: Optional[IssueType] = None,
        priority: Optional[IssuePriority] = None,
        assignee_id: Optional[str] = None,
    ) -> List[Issue]:
        return self.store.issues.list(
            project_id=project_id,
            status=status,
            type=type,
            priority=priority,
            assignee_id=assignee_id,
        )

    def search(self, query: str, project_id: Optional[str] = None) -> List[Issue]:
        """Case-insensitive substring match over title and description."""
        needle = query.strip().lower()
        if not needle:
            raise ValidationError("Search query must not be empty")
        return [
            issue
            for issue in self.store.issues.list(project_id=project_id)
            if needle in issue.title.lower() or needle in issue.description.lower()
        ]

    def stats(self, project_id: Optional[str] = None) -> Dict[str, Any]:
        issues = self.store.issues.list(project_id=project_id)
        return {
            "total": len(issues),
            "by_status": dict(Counter(issue.status.value for issue in issues)),
            "by_type": dict(Counter(issue.type.value for issue in issues)),
            "by_priority": dict(Counter(issue.priority.value for issue in issues)),
        }

    def _next_code(self, project: Project) -> str:
        prefix = f"{project.key}-"
        sequences = [
            _code_sequence(issue.code)
            for issue in self.store.issues.list()
            if issue.code.startswith(prefix)
        ]
        return format_issue_code(project.key, max(sequences, default=0) + 1)

    async def create(self, data: IssueCreate, created_by: Optional[str] = None) -> Issue:
        project = self.store.projects.get(data.project_id)
        if project is None:
            raise NotFoundError("Project", data.project_id)

        issue = self.store.issues.create(
            Issue(
                code=self._next_code(project),
                created_by=created_by,
                **data.model_dump(),
            )
        )
        logger.info("issue_created", issue_id=issue.id, code=issue.code)
        await self.broadcaster.broadcast("issue:created", issue.model_dump(mode="json"))
        return issue

    async def update(self, issue_id: str, data: IssueUpdate) -> Issue:
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        issue = self.store.issues.update(issue_id, **changes)
        if issue is None:
            raise NotFoundError("Issue", issue_id)
        logger.info("issue_updated", issue_id=issue_id, fields=sorted(changes))
        await self.broadcaster.broadcast("issue:updated", issue.model_dump(mode="json"))
        return issue

    async def delete(self, issue_id: str) -> None:
        if not self.store.issues.delete(issue_id):
            raise NotFoundError("Issue", issue_id)
        logger.info("issue_deleted", issue_id=issue_id)
        await self.broadcaster.broadcast("issue:deleted", {"issueId": issue_id})

    async def change_status(
        self, issue_id: str, new_status: IssueStatus
    ) -> Tuple[Issue, IssueStatus]:
        """Public status change: persist, publish, then hand off to listeners.

        Setting the status an issue already has is a no-op.

        Returns:
            The issue after the change and its previous status
        """
        async with self.lock_for(issue_id):
            current = self.get(issue_id)
            old_status = current.status
            if old_status == new_status:
                return current, old_status
            issue = self.update_status(issue_id, new_status)

        logger.info(
            "issue_status_changed",
            issue_id=issue_id,
            old_status=old_status.value,
            new_status=new_status.value,
        )
        await self.broadcaster.broadcast(
            "issue:statusChanged",
            {"issueId": issue_id, "status": new_status.value, "oldStatus": old_status.value},
        )
        for listener in self._status_listeners:
            listener(issue, old_status, new_status)
        return issue, old_status

    async def assign(self, issue_id: str, assignee_id: Optional[str]) -> Issue:
        if assignee_id is not None and self.store.users.get(assignee_id) is None:
            raise NotFoundError("User", assignee_id)
        issue = self.store.issues.update(issue_id, assignee_id=assignee_id)
        if issue is None:
            raise NotFoundError("Issue", issue_id)
        await self.broadcaster.broadcast(
            "issue:assigned", {"issueId": issue_id, "assignee": assignee_id}
        )
        return issue

    async def add_label(self, issue_id: str, label: str) -> Issue:
        issue = self.get(issue_id)
        if label in issue.labels:
            return issue
        updated = self.store.issues.update(issue_id, labels=issue.labels + [label])
        await self.broadcaster.broadcast("issue:updated", updated.model_dump(mode="json"))
        return updated

    async def remove_label(self, issue_id: str, label: str) -> Issue:
        issue = self.get(issue_id)
        if label not in issue.labels:
            return issue
        labels = [existing for existing in issue.labels if existing != label]
        updated = self.store.issues.update(issue_id, labels=labels)
        await self.broadcaster.broadcast("issue:updated", updated.model_dump(mode="json"))
        return updated


class ProjectService:
    """Service for managing projects and their automation config."""

    def __init__(self, store: TrackerStore, default_webhook_url: Optional[str] = None):
        self.store = store
        self.default_webhook_url = default_webhook_url

    def get(self, project_id: str) -> Project:
        project = self.store.projects.get(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    def list(self, owner_id: Optional[str] = None) -> List[Project]:
        return self.store.projects.list(owner_id=owner_id)

    def create(self, data: ProjectCreate, owner_id: Optional[str] = None) -> Project:
        values = data.model_dump()
        if values["slack_webhook_url"] is None:
            values["slack_webhook_url"] = self.default_webhook_url
        project = self.store.projects.create(Project(owner_id=owner_id, **values))
        logger.info("project_created", project_id=project.id, key=project.key)
        return project

    def update(self, project_id: str, data: ProjectUpdate) -> Project:
        changes = data.model_dump(exclude_unset=True)
        # An explicit null clears the webhook; other fields ignore nulls
        changes = {
            key: value
            for key, value in changes.items()
            if value is not None or key == "slack_webhook_url"
        }
        project = self.store.projects.update(project_id, **changes)
        if project is None:
            raise NotFoundError("Project", project_id)
        logger.info("project_updated", project_id=project_id, fields=sorted(changes))
        return project

    def delete(self, project_id: str) -> None:
        self.get(project_id)
        for issue in self.store.issues.list(project_id=project_id):
            self.store.issues.delete(issue.id)
        self.store.projects.delete(project_id)
        logger.info("project_deleted", project_id=project_id)
