"""
Status transition orchestrator.

Reacts to issue status changes and execution completions:
- every status change is announced to the project's Slack webhook
- entering IN_PROGRESS starts an execution when the project auto-executes
- a successful execution moves its issue on to REVIEW when the project
  auto-moves and the issue is still IN_PROGRESS

Automation only reacts to IN_PROGRESS and the auto-move writes REVIEW through
the store directly, so one status change triggers at most one execution.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Set

import structlog

from ..exceptions import DeliveryError
from ..integrations.slack import NotificationGateway
from ..playbooks import build_prompt
from ..tracker.enums import IssueStatus
from ..tracker.execution import Execution
from ..tracker.issue import Issue
from ..tracker.services import IssueService
from .broadcaster import RealtimeBroadcaster
from .execution_engine import ExecutionEngine

logger = structlog.get_logger()


class StatusTransitionOrchestrator:
    """Wires issue status changes to executions, notifications and events."""

    def __init__(
        self,
        issues: IssueService,
        engine: ExecutionEngine,
        gateway: NotificationGateway,
        broadcaster: RealtimeBroadcaster,
    ):
        self.issues = issues
        self.engine = engine
        self.gateway = gateway
        self.broadcaster = broadcaster
        self.running_tasks: Set[asyncio.Task] = set()

        engine.register_completion_hook(self.on_execution_finished)
        issues.add_status_listener(self.schedule_status_change)

    def schedule_status_change(
        self, issue: Issue, old_status: IssueStatus, new_status: IssueStatus
    ) -> asyncio.Task:
        """Run ``handle_status_change`` on a tracked background task."""
        task = asyncio.create_task(
            self.handle_status_change(issue, old_status, new_status),
            name=f"status-change-{issue.id}",
        )
        self.running_tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self.running_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "status_change_task_failed",
                task=task.get_name(),
                error=str(task.exception()),
            )

    async def wait_idle(self) -> None:
        """Wait until no status-change task is outstanding."""
        while self.running_tasks:
            await asyncio.gather(*list(self.running_tasks), return_exceptions=True)

    async def stop(self) -> None:
        for task in list(self.running_tasks):
            task.cancel()
        await asyncio.gather(*list(self.running_tasks), return_exceptions=True)
        self.running_tasks.clear()

    async def handle_status_change(
        self, issue: Issue, old_status: IssueStatus, new_status: IssueStatus
    ) -> None:
        """Notify, then auto-execute if the issue entered IN_PROGRESS.

        Never raises: notification and execution start failures are logged.
        """
        log = logger.bind(issue_id=issue.id, issue_code=issue.code)
        project = self.issues.get_owning_project(issue.id)
        if project is None:
            log.debug("status_change_skipped", reason="no owning project")
            return

        await self._notify(
            "status_changed",
            self.gateway.notify_status_change(
                project.slack_webhook_url, issue, old_status, new_status
            ),
        )

        if new_status != IssueStatus.IN_PROGRESS or not project.claude_auto_execute:
            return

        log.info("auto_execute_triggered", project_id=project.id)
        prompt, context = build_prompt(issue)
        try:
            execution = await self.engine.start(
                issue.id,
                prompt,
                context=context,
                options={"auto_executed": True, "project_id": project.id},
            )
        except Exception as e:
            log.error("auto_execute_failed", error=str(e))
            return

        await self._notify(
            "execution_started",
            self.gateway.notify_execution_started(
                project.slack_webhook_url, issue, execution
            ),
        )

    async def on_execution_finished(self, execution: Execution, success: bool) -> None:
        """Completion hook registered with the execution engine."""
        log = logger.bind(execution_id=execution.id, issue_id=execution.issue_id)
        issue = self.issues.get_by_id(execution.issue_id)
        if issue is None:
            log.debug("completion_skipped", reason="issue not found")
            return
        project = self.issues.get_owning_project(issue.id)
        if project is None:
            log.debug("completion_skipped", reason="no owning project")
            return

        await self._notify(
            "execution_completed",
            self.gateway.notify_execution_completed(
                project.slack_webhook_url, issue, execution, success
            ),
        )

        if not (success and project.auto_move_to_review):
            return

        moved = await self.issues.move_if_status(
            issue.id, IssueStatus.IN_PROGRESS, IssueStatus.REVIEW
        )
        if moved is None:
            log.info("auto_move_skipped", reason="issue no longer IN_PROGRESS")
            return

        log.info("issue_auto_moved", issue_code=moved.code, status=moved.status.value)
        await self._notify(
            "auto_moved",
            self.gateway.notify_auto_moved_to_review(project.slack_webhook_url, moved),
        )
        await self.broadcaster.broadcast(
            "issue:statusChanged",
            {
                "issueId": moved.id,
                "status": IssueStatus.REVIEW.value,
                "oldStatus": IssueStatus.IN_PROGRESS.value,
                "autoMoved": True,
            },
        )

    async def _notify(self, kind: str, delivery: Awaitable[bool]) -> None:
        try:
            await delivery
        except DeliveryError as e:
            logger.warning("notification_failed", kind=kind, error=e.message)
