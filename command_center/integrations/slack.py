"""
Slack notifications for issue status changes and Claude executions.

Message builders are pure functions of the entities involved; delivery is a
single JSON POST to a project's incoming-webhook URL.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import List, Optional

import httpx
import structlog
from pydantic import BaseModel, Field

from ..exceptions import DeliveryError
from ..tracker.enums import IssueStatus
from ..tracker.execution import Execution
from ..tracker.issue import Issue

logger = structlog.get_logger()

STATUS_COLORS = {
    IssueStatus.TODO: "#9E9E9E",
    IssueStatus.IN_PROGRESS: "#2196F3",
    IssueStatus.REVIEW: "#FF9800",
    IssueStatus.TESTING: "#9C27B0",
    IssueStatus.DONE: "#4CAF50",
    IssueStatus.BLOCKED: "#F44336",
}
DEFAULT_COLOR = "#9E9E9E"
SUCCESS_COLOR = "#4CAF50"
FAILURE_COLOR = "#F44336"
MAX_ERROR_LENGTH = 200


class SlackField(BaseModel):
    title: str
    value: str
    short: bool = True


class SlackAttachment(BaseModel):
    color: Optional[str] = None
    title: Optional[str] = None
    text: Optional[str] = None
    fields: List[SlackField] = Field(default_factory=list)
    footer: Optional[str] = None
    ts: int = Field(default_factory=lambda: int(time.time()))


class SlackMessage(BaseModel):
    text: str
    attachments: List[SlackAttachment] = Field(default_factory=list)

    def payload(self) -> dict:
        return self.model_dump(exclude_none=True)


def status_color(status: IssueStatus) -> str:
    return STATUS_COLORS.get(status, DEFAULT_COLOR)


def format_duration(start: datetime, end: Optional[datetime]) -> str:
    """Render an elapsed time as ``1h 5m``, ``3m 12s`` or ``42s``."""
    if end is None:
        return "n/a"
    seconds = max(int((end - start).total_seconds()), 0)
    minutes, hours = seconds // 60, seconds // 3600
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def _issue_fields(issue: Issue) -> List[SlackField]:
    return [
        SlackField(title="Priority", value=issue.priority.value),
        SlackField(title="Type", value=issue.type.value),
    ]


def status_changed_message(
    issue: Issue,
    old_status: IssueStatus,
    new_status: IssueStatus,
    footer: str = "Command Center",
) -> SlackMessage:
    return SlackMessage(
        text=f"Task {issue.code} moved from *{old_status.value}* to *{new_status.value}*",
        attachments=[
            SlackAttachment(
                color=status_color(new_status),
                title=issue.title,
                text=issue.description or None,
                fields=_issue_fields(issue)
                + [
                    SlackField(title="Status", value=new_status.value),
                    SlackField(title="Previous Status", value=old_status.value),
                ],
                footer=footer,
            )
        ],
    )


def execution_started_message(
    issue: Issue, execution: Execution, footer: str = "Command Center"
) -> SlackMessage:
    return SlackMessage(
        text=f"🤖 Claude started processing task {issue.code}",
        attachments=[
            SlackAttachment(
                color=status_color(IssueStatus.IN_PROGRESS),
                title=issue.title,
                text=issue.description or None,
                fields=[SlackField(title="Execution ID", value=execution.id)]
                + _issue_fields(issue),
                footer=f"{footer} - Claude Execution",
            )
        ],
    )


def execution_completed_message(
    issue: Issue,
    execution: Execution,
    success: bool,
    footer: str = "Command Center",
) -> SlackMessage:
    if success:
        emoji, outcome, color = "✅", "completed successfully", SUCCESS_COLOR
    elif execution.status.value == "cancelled":
        emoji, outcome, color = "🛑", "was cancelled", DEFAULT_COLOR
    else:
        emoji, outcome, color = "❌", "failed", FAILURE_COLOR

    fields = [
        SlackField(title="Execution ID", value=execution.id),
        SlackField(
            title="Duration",
            value=format_duration(execution.started_at, execution.completed_at),
        ),
    ]

    result = execution.result or {}
    if success and result.get("files_modified") is not None:
        fields.append(
            SlackField(title="Files Modified", value=str(len(result["files_modified"])))
        )
    if success and result.get("tests_run"):
        fields.append(SlackField(title="Tests Run", value=str(result["tests_run"])))
    if not success and execution.error:
        fields.append(
            SlackField(
                title="Error", value=execution.error[:MAX_ERROR_LENGTH], short=False
            )
        )

    return SlackMessage(
        text=f"{emoji} Claude {outcome} for task {issue.code}",
        attachments=[
            SlackAttachment(
                color=color,
                title=issue.title,
                fields=fields,
                footer=f"{footer} - Claude Execution",
            )
        ],
    )


def auto_moved_message(issue: Issue, footer: str = "Command Center") -> SlackMessage:
    return SlackMessage(
        text=f"🔄 Task {issue.code} automatically moved to *REVIEW*",
        attachments=[
            SlackAttachment(
                color=status_color(IssueStatus.REVIEW),
                title=issue.title,
                text="Claude execution completed successfully. Task is ready for review.",
                fields=_issue_fields(issue),
                footer=f"{footer} - Auto-moved",
            )
        ],
    )


def webhook_test_message(footer: str = "Command Center") -> SlackMessage:
    return SlackMessage(
        text="🧪 Test notification from Command Center",
        attachments=[
            SlackAttachment(
                color=status_color(IssueStatus.IN_PROGRESS),
                text="If you can see this message, your Slack webhook is configured correctly!",
                footer=footer,
            )
        ],
    )


class NotificationGateway:
    """Formats and delivers Slack notifications.

    ``send`` raises DeliveryError on transport failures and non-2xx replies;
    callers decide whether to propagate or swallow it.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        footer: str = "Command Center",
    ):
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.footer = footer

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def send(self, webhook_url: Optional[str], message: SlackMessage) -> bool:
        """POST a message to the webhook.

        Returns:
            True if delivered, False if skipped because no URL is configured
        """
        if not webhook_url or not webhook_url.strip():
            logger.info("slack_notification_skipped", reason="no webhook configured")
            return False

        try:
            response = await self.client.post(webhook_url, json=message.payload())
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error("slack_notification_failed", error=str(e))
            raise DeliveryError(f"Slack webhook unreachable: {e}") from e

        if response.is_error:
            logger.error(
                "slack_notification_failed",
                status_code=response.status_code,
                reason=response.reason_phrase,
            )
            raise DeliveryError(
                f"Slack API error: {response.status_code} {response.reason_phrase}",
                details={"status_code": response.status_code},
            )

        logger.info("slack_notification_sent")
        return True

    async def notify_status_change(
        self,
        webhook_url: Optional[str],
        issue: Issue,
        old_status: IssueStatus,
        new_status: IssueStatus,
    ) -> bool:
        message = status_changed_message(issue, old_status, new_status, self.footer)
        return await self.send(webhook_url, message)

    async def notify_execution_started(
        self, webhook_url: Optional[str], issue: Issue, execution: Execution
    ) -> bool:
        return await self.send(
            webhook_url, execution_started_message(issue, execution, self.footer)
        )

    async def notify_execution_completed(
        self,
        webhook_url: Optional[str],
        issue: Issue,
        execution: Execution,
        success: bool,
    ) -> bool:
        return await self.send(
            webhook_url,
            execution_completed_message(issue, execution, success, self.footer),
        )

    async def notify_auto_moved_to_review(
        self, webhook_url: Optional[str], issue: Issue
    ) -> bool:
        return await self.send(webhook_url, auto_moved_message(issue, self.footer))

    async def test_webhook(self, webhook_url: str) -> bool:
        """Send a test message. Failures are logged and reported as False."""
        try:
            return await self.send(webhook_url, webhook_test_message(self.footer))
        except DeliveryError as e:
            logger.warning("slack_webhook_test_failed", error=e.message)
            return False
