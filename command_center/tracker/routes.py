"""
Tracker API Routes.

REST endpoints for issues, projects and Claude executions. Every endpoint
requires a bearer token.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from ..center import CommandCenter
from ..dependencies import get_center, get_current_user
from ..exceptions import NotFoundError, ValidationError
from ..playbooks import AVAILABLE_MODELS, build_prompt, estimate, generate_command
from .enums import IssuePriority, IssueStatus, IssueType
from .execution import (
    ExecuteRequest,
    Execution,
    GenerateCommandRequest,
    IssueExecuteRequest,
    PreviewRequest,
)
from .issue import AssignRequest, IssueCreate, IssueUpdate, LabelRequest, StatusChange
from .project import ProjectCreate, ProjectUpdate, SlackTestRequest
from .user import User

issues_router = APIRouter(
    prefix="/issues", tags=["issues"], dependencies=[Depends(get_current_user)]
)
projects_router = APIRouter(
    prefix="/projects", tags=["projects"], dependencies=[Depends(get_current_user)]
)
claude_router = APIRouter(
    prefix="/claude", tags=["claude"], dependencies=[Depends(get_current_user)]
)


def _execution_handle(execution: Execution) -> Dict[str, Any]:
    return {
        "execution_id": execution.id,
        "job_id": execution.job_id,
        "execution": execution.model_dump(mode="json"),
    }


# =============================================================================
# Issue Endpoints
# =============================================================================


@issues_router.get("")
async def list_issues(
    project_id: Optional[str] = None,
    status: Optional[IssueStatus] = None,
    type: Optional[IssueType] = None,
    priority: Optional[IssuePriority] = None,
    assignee: Optional[str] = None,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    """List issues with optional filtering."""
    issues = center.issues.list(
        project_id=project_id,
        status=status,
        type=type,
        priority=priority,
        assignee_id=assignee,
    )
    return {
        "status": "success",
        "issues": [issue.model_dump(mode="json") for issue in issues],
        "count": len(issues),
    }


@issues_router.get("/stats")
async def issue_stats(
    project_id: Optional[str] = None,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    return {"status": "success", "stats": center.issues.stats(project_id)}


@issues_router.get("/search")
async def search_issues(
    q: str = Query(..., min_length=1),
    project_id: Optional[str] = None,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    """Search issue titles and descriptions."""
    issues = center.issues.search(q, project_id)
    return {
        "status": "success",
        "issues": [issue.model_dump(mode="json") for issue in issues],
        "count": len(issues),
    }


@issues_router.get("/{issue_id}")
async def get_issue(
    issue_id: str,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    return {"status": "success", "issue": center.issues.get(issue_id).model_dump(mode="json")}


@issues_router.post("", status_code=201)
async def create_issue(
    data: IssueCreate,
    user: User = Depends(get_current_user),
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    """Create a new issue; its code is assigned from the project key."""
    issue = await center.issues.create(data, created_by=user.id)
    return {"status": "success", "issue": issue.model_dump(mode="json")}


@issues_router.patch("/{issue_id}")
async def update_issue(
    issue_id: str,
    data: IssueUpdate,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    issue = await center.issues.update(issue_id, data)
    return {"status": "success", "issue": issue.model_dump(mode="json")}


@issues_router.delete("/{issue_id}")
async def delete_issue(
    issue_id: str,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    await center.issues.delete(issue_id)
    return {"status": "success", "issue_id": issue_id}


@issues_router.patch("/{issue_id}/status")
async def update_issue_status(
    issue_id: str,
    data: StatusChange,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    """Change an issue's status.

    Returns once the new status is persisted. Notifications and automatic
    execution run in the background and never fail this request.
    """
    issue, old_status = await center.issues.change_status(issue_id, data.status)
    return {
        "status": "success",
        "issue": issue.model_dump(mode="json"),
        "old_status": old_status.value,
    }


@issues_router.patch("/{issue_id}/assign")
async def assign_issue(
    issue_id: str,
    data: AssignRequest,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    issue = await center.issues.assign(issue_id, data.assignee)
    return {"status": "success", "issue": issue.model_dump(mode="json")}


@issues_router.post("/{issue_id}/labels")
async def add_label(
    issue_id: str,
    data: LabelRequest,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    issue = await center.issues.add_label(issue_id, data.label)
    return {"status": "success", "issue": issue.model_dump(mode="json")}


@issues_router.delete("/{issue_id}/labels/{label}")
async def remove_label(
    issue_id: str,
    label: str,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    issue = await center.issues.remove_label(issue_id, label)
    return {"status": "success", "issue": issue.model_dump(mode="json")}


@issues_router.post("/{issue_id}/execute", status_code=202)
async def execute_issue(
    issue_id: str,
    data: Optional[IssueExecuteRequest] = None,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    """Start a Claude execution for an issue with a prompt from its playbook."""
    issue = center.issues.get(issue_id)
    prompt, context = build_prompt(issue)
    options = data.options if data is not None else {}
    execution = await center.engine.start(issue.id, prompt, context=context, options=options)
    return {"status": "success", **_execution_handle(execution)}


@issues_router.get("/{issue_id}/executions")
async def list_issue_executions(
    issue_id: str,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    executions = center.engine.list_by_issue(issue_id)
    return {
        "status": "success",
        "executions": [execution.model_dump(mode="json") for execution in executions],
    }


# =============================================================================
# Project Endpoints
# =============================================================================


@projects_router.get("")
async def list_projects(
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    projects = center.projects.list()
    return {
        "status": "success",
        "projects": [project.model_dump(mode="json") for project in projects],
        "count": len(projects),
    }


@projects_router.post("", status_code=201)
async def create_project(
    data: ProjectCreate,
    user: User = Depends(get_current_user),
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    project = center.projects.create(data, owner_id=user.id)
    return {"status": "success", "project": project.model_dump(mode="json")}


@projects_router.get("/{project_id}")
async def get_project(
    project_id: str,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    project = center.projects.get(project_id)
    return {"status": "success", "project": project.model_dump(mode="json")}


@projects_router.put("/{project_id}")
async def update_project(
    project_id: str,
    data: ProjectUpdate,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    """Update project fields, including its automation config."""
    project = center.projects.update(project_id, data)
    return {"status": "success", "project": project.model_dump(mode="json")}


@projects_router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    """Delete a project together with its issues."""
    center.projects.delete(project_id)
    return {"status": "success", "project_id": project_id}


@projects_router.post("/{project_id}/slack/test")
async def test_slack_webhook(
    project_id: str,
    data: Optional[SlackTestRequest] = None,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    """Send a test message to the project's webhook, or to an override URL."""
    project = center.projects.get(project_id)
    webhook_url = (data.webhook_url if data is not None else None) or project.slack_webhook_url
    if not webhook_url:
        raise ValidationError("Project has no Slack webhook configured")
    delivered = await center.gateway.test_webhook(webhook_url)
    return {"status": "success", "delivered": delivered}


# =============================================================================
# Claude Execution Endpoints
# =============================================================================


@claude_router.post("/execute", status_code=202)
async def execute(
    data: ExecuteRequest,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    """Start an execution. Returns at once with the execution handle."""
    issue = center.issues.get(data.issue_id)
    prompt, context = build_prompt(issue)
    execution = await center.engine.start(
        issue.id,
        data.prompt or prompt,
        context={**context, **data.context},
        options=data.options,
    )
    return {"status": "success", **_execution_handle(execution)}


@claude_router.get("/executions")
async def list_executions(
    issue_id: Optional[str] = None,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    if issue_id is not None:
        executions = center.engine.list_by_issue(issue_id)
    else:
        executions = center.engine.list_all()
    return {
        "status": "success",
        "executions": [execution.model_dump(mode="json") for execution in executions],
    }


@claude_router.get("/executions/{execution_id}")
async def get_execution(
    execution_id: str,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    execution = center.engine.get(execution_id)
    if execution is None:
        raise NotFoundError("Execution", execution_id)
    return {"status": "success", "execution": execution.model_dump(mode="json")}


@claude_router.post("/executions/{execution_id}/cancel")
async def cancel_execution(
    execution_id: str,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    execution = await center.engine.cancel(execution_id)
    return {"status": "success", "execution": execution.model_dump(mode="json")}


@claude_router.post("/executions/{execution_id}/retry", status_code=202)
async def retry_execution(
    execution_id: str,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    """Start a new execution for the same issue and prompt."""
    execution = await center.engine.retry(execution_id)
    return {"status": "success", **_execution_handle(execution)}


@claude_router.get("/executions/{execution_id}/logs")
async def get_execution_logs(
    execution_id: str,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    return {"status": "success", "logs": center.engine.get_logs(execution_id)}


@claude_router.get("/executions/{execution_id}/result")
async def get_execution_result(
    execution_id: str,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    return {"status": "success", "result": center.engine.get_result(execution_id)}


@claude_router.get("/stats")
async def execution_stats(
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    return {"status": "success", "stats": center.engine.stats()}


@claude_router.get("/models")
async def list_models() -> Dict[str, Any]:
    return {"status": "success", "models": AVAILABLE_MODELS}


@claude_router.post("/generate-command")
async def generate_issue_command(
    data: GenerateCommandRequest,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    """Build the prompt an execution for this issue would use, without running it."""
    issue = center.issues.get(data.issue_id)
    return {"status": "success", "command": generate_command(issue)}


@claude_router.post("/preview")
async def preview_command(
    data: PreviewRequest,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    if data.prompt:
        return {"status": "success", "preview": estimate(data.prompt)}
    if data.issue_id:
        issue = center.issues.get(data.issue_id)
        return {"status": "success", "preview": generate_command(issue)}
    raise ValidationError("Either prompt or issue_id is required")
