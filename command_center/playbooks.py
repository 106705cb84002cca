"""
Issue playbooks.

Each issue type maps to a fixed, ordered sequence of steps. A playbook is
used two ways:
- ``build_prompt`` folds it into the prompt and context of an execution
- ``run_playbook`` walks it through an ``ActionRunner``, one action call per step

v0: StubActionRunner - simulates every action call
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import structlog

from .tracker.enums import IssueType
from .tracker.issue import Issue
from .tracker.primitives import utc_now

logger = structlog.get_logger()

ESTIMATED_TOKENS = 1500
COST_PER_1K_TOKENS = 0.02

AVAILABLE_MODELS = [
    {
        "id": "claude-3-opus",
        "name": "Claude 3 Opus",
        "context_window": 200000,
        "cost_per_1k_tokens": 0.015,
    },
    {
        "id": "claude-3-sonnet",
        "name": "Claude 3 Sonnet",
        "context_window": 200000,
        "cost_per_1k_tokens": 0.003,
    },
    {
        "id": "claude-3-haiku",
        "name": "Claude 3 Haiku",
        "context_window": 200000,
        "cost_per_1k_tokens": 0.00025,
    },
]


@dataclass(frozen=True)
class PlaybookStep:
    """One action call in a playbook."""

    action: str
    description: str


PLAYBOOKS: Dict[IssueType, Tuple[PlaybookStep, ...]] = {
    IssueType.BUG: (
        PlaybookStep("reproduce", "Reproduce the reported behaviour"),
        PlaybookStep("locate", "Locate the faulty code path"),
        PlaybookStep("fix", "Apply a minimal fix"),
        PlaybookStep("regression_test", "Add a regression test"),
        PlaybookStep("verify", "Run the test suite"),
    ),
    IssueType.FEATURE: (
        PlaybookStep("analyze", "Analyze requirements and acceptance criteria"),
        PlaybookStep("design", "Sketch the change across affected modules"),
        PlaybookStep("implement", "Implement the feature"),
        PlaybookStep("test", "Write tests for the new behaviour"),
        PlaybookStep("document", "Update documentation"),
    ),
    IssueType.HOTFIX: (
        PlaybookStep("locate", "Locate the failing code path"),
        PlaybookStep("fix", "Apply the smallest safe fix"),
        PlaybookStep("verify", "Run the critical test suite"),
    ),
    IssueType.IMPROVEMENT: (
        PlaybookStep("analyze", "Measure the current behaviour"),
        PlaybookStep("refactor", "Refactor the targeted code"),
        PlaybookStep("verify", "Run the test suite"),
    ),
    IssueType.TASK: (
        PlaybookStep("analyze", "Read the task and the code it touches"),
        PlaybookStep("implement", "Carry out the task"),
        PlaybookStep("verify", "Run the test suite"),
    ),
    IssueType.EPIC: (
        PlaybookStep("analyze", "Review the epic scope"),
        PlaybookStep("breakdown", "Break the epic into stories"),
    ),
    IssueType.STORY: (
        PlaybookStep("analyze", "Clarify the user story"),
        PlaybookStep("implement", "Implement the story"),
        PlaybookStep("test", "Write acceptance tests"),
    ),
    IssueType.SUB_TASK: (
        PlaybookStep("implement", "Carry out the sub-task"),
        PlaybookStep("verify", "Run the affected tests"),
    ),
}


def get_playbook(issue_type: IssueType) -> Tuple[PlaybookStep, ...]:
    return PLAYBOOKS.get(issue_type, PLAYBOOKS[IssueType.TASK])


def build_prompt(issue: Issue) -> Tuple[str, Dict[str, Any]]:
    """Derive an execution prompt and context from an issue and its playbook."""
    steps = get_playbook(issue.type)
    lines = [f"Process issue {issue.code}: {issue.title}"]
    if issue.description:
        lines += ["", issue.description]
    lines += ["", "Steps:"]
    lines += [f"{i}. {step.description}" for i, step in enumerate(steps, 1)]

    context = {
        "issue_code": issue.code,
        "description": issue.description,
        "type": issue.type.value,
        "priority": issue.priority.value,
        "labels": list(issue.labels),
        "playbook": [step.action for step in steps],
    }
    return "\n".join(lines), context


def estimate(prompt: str) -> Dict[str, Any]:
    """Flat token and cost estimate for a prompt."""
    warnings = []
    if not prompt.strip():
        warnings.append("Prompt is empty")
    return {
        "prompt": prompt,
        "estimated_tokens": ESTIMATED_TOKENS,
        "estimated_cost": round(ESTIMATED_TOKENS / 1000 * COST_PER_1K_TOKENS, 2),
        "warnings": warnings,
    }


def generate_command(issue: Issue) -> Dict[str, Any]:
    """Preview of what an execution for this issue would run."""
    prompt, context = build_prompt(issue)
    return {**estimate(prompt), "context": context}


@dataclass
class ActionResult:
    """Result of one playbook action."""

    success: bool
    action: str
    started_at: datetime
    completed_at: datetime
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class PlaybookReport:
    issue_code: str
    issue_type: IssueType
    results: List[ActionResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(result.success for result in self.results)


class ActionRunner(ABC):
    """Abstract base class for playbook action execution."""

    def __init__(self, issue: Issue):
        self.issue = issue
        self.logger = logger.bind(issue_id=issue.id, issue_code=issue.code)

    @abstractmethod
    async def execute(self, step: PlaybookStep) -> ActionResult:
        """Execute one step and return the result."""
        pass


class StubActionRunner(ActionRunner):
    """Simulates every action call and always succeeds."""

    async def execute(self, step: PlaybookStep) -> ActionResult:
        started_at = utc_now()
        self.logger.info("action_start", action=step.action)

        result = {
            "action": step.action,
            "status": "simulated",
            "message": f"Stub execution of {step.action} completed successfully",
        }

        completed_at = utc_now()
        self.logger.info(
            "action_complete",
            action=step.action,
            duration_ms=int((completed_at - started_at).total_seconds() * 1000),
        )
        return ActionResult(
            success=True,
            action=step.action,
            started_at=started_at,
            completed_at=completed_at,
            result=result,
        )


async def run_playbook(issue: Issue, runner: ActionRunner) -> PlaybookReport:
    """Run the issue's playbook, stopping at the first failed step."""
    report = PlaybookReport(issue_code=issue.code, issue_type=issue.type)
    for step in get_playbook(issue.type):
        try:
            result = await runner.execute(step)
        except Exception as e:
            now = utc_now()
            runner.logger.error("action_failed", action=step.action, error=str(e))
            result = ActionResult(
                success=False,
                action=step.action,
                started_at=now,
                completed_at=now,
                error=str(e),
            )
        report.results.append(result)
        if not result.success:
            break
    return report
