"""
Application container.

Builds every long-lived component once and wires them together. The API
keeps one ``CommandCenter`` on ``app.state``; tests build their own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from .auth.service import AuthService
from .config import Settings, get_settings
from .core.broadcaster import RealtimeBroadcaster
from .core.execution_engine import ExecutionEngine
from .core.orchestrator import StatusTransitionOrchestrator
from .core.progress import ProgressSource, TimedProgressSource
from .db.repository import TrackerStore, create_store
from .integrations.slack import NotificationGateway
from .tracker.enums import IssuePriority, IssueType, UserRole
from .tracker.issue import IssueCreate
from .tracker.project import ProjectCreate
from .tracker.services import IssueService, ProjectService
from .tracker.user import UserRegister

logger = structlog.get_logger()

DEMO_ADMIN_EMAIL = "admin@commandcenter.local"
DEMO_ADMIN_PASSWORD = "commandcenter"


@dataclass
class CommandCenter:
    settings: Settings
    store: TrackerStore
    broadcaster: RealtimeBroadcaster
    gateway: NotificationGateway
    engine: ExecutionEngine
    issues: IssueService
    projects: ProjectService
    auth: AuthService
    orchestrator: StatusTransitionOrchestrator

    async def close(self) -> None:
        """Stop background work and release resources."""
        await self.orchestrator.stop()
        await self.engine.shutdown()
        await self.gateway.close()
        self.store.close()
        logger.info("command_center_stopped")


def build_command_center(
    settings: Optional[Settings] = None,
    store: Optional[TrackerStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    source: Optional[ProgressSource] = None,
) -> CommandCenter:
    """Construct and wire all components.

    Args:
        settings: Defaults to the process settings
        store: Defaults to the backend named by ``settings.store_backend``
        transport: Optional httpx transport for Slack delivery
        source: Progress source for executions; timed steps from settings by default
    """
    settings = settings or get_settings()
    store = store or create_store(settings.store_backend, settings.database_url)

    broadcaster = RealtimeBroadcaster()
    gateway = NotificationGateway(
        client=httpx.AsyncClient(timeout=settings.slack_timeout_seconds, transport=transport),
        footer=settings.slack_footer,
    )
    engine = ExecutionEngine(
        broadcaster,
        source=source
        or TimedProgressSource(
            steps=settings.execution_steps,
            step_delay_seconds=settings.execution_step_delay_seconds,
        ),
        start_delay_seconds=settings.execution_start_delay_seconds,
        timeout_seconds=settings.execution_timeout_seconds,
        max_executions=settings.max_executions,
        max_log_entries=settings.max_log_entries,
    )
    issues = IssueService(store, broadcaster)
    orchestrator = StatusTransitionOrchestrator(issues, engine, gateway, broadcaster)

    return CommandCenter(
        settings=settings,
        store=store,
        broadcaster=broadcaster,
        gateway=gateway,
        engine=engine,
        issues=issues,
        projects=ProjectService(store, settings.default_slack_webhook_url),
        auth=AuthService(store, settings.secret_key, settings.access_token_expire_minutes),
        orchestrator=orchestrator,
    )


async def seed_demo_data(center: CommandCenter) -> None:
    """Create a demo admin, project and issue unless users already exist."""
    if center.store.users.list():
        return

    admin = center.auth.register(
        UserRegister(email=DEMO_ADMIN_EMAIL, password=DEMO_ADMIN_PASSWORD, name="Admin"),
        role=UserRole.ADMIN,
    )
    project = center.projects.create(
        ProjectCreate(
            name="Command Center",
            key="CMD",
            description="Demo project",
            claude_auto_execute=True,
            auto_move_to_review=True,
        ),
        owner_id=admin.id,
    )
    await center.issues.create(
        IssueCreate(
            project_id=project.id,
            title="Sample Issue",
            description="This is a sample issue",
            type=IssueType.TASK,
            priority=IssuePriority.MEDIUM,
            labels=["sample"],
        ),
        created_by=admin.id,
    )
    logger.info("demo_data_seeded", admin_email=DEMO_ADMIN_EMAIL, project_id=project.id)
