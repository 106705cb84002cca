"""Tests for issue playbooks and the CLI that runs them."""

import pytest
from typer.testing import CliRunner

from command_center.cli import app as cli_app
from command_center.playbooks import (
    PLAYBOOKS,
    ActionResult,
    ActionRunner,
    PlaybookStep,
    StubActionRunner,
    build_prompt,
    estimate,
    generate_command,
    get_playbook,
    run_playbook,
)
from command_center.tracker.enums import IssuePriority, IssueType
from command_center.tracker.issue import Issue
from command_center.tracker.primitives import utc_now


def make_issue(**fields) -> Issue:
    values = dict(
        code="CMD-042",
        project_id="project-1",
        title="Crash on empty cart",
        description="Checkout throws when the cart is empty",
        type=IssueType.BUG,
        priority=IssuePriority.CRITICAL,
        labels=["checkout"],
    )
    values.update(fields)
    return Issue(**values)


def test_every_issue_type_has_a_playbook():
    assert set(PLAYBOOKS) == set(IssueType)
    assert all(PLAYBOOKS[issue_type] for issue_type in IssueType)
    assert get_playbook(IssueType.HOTFIX)[0].action == "locate"


def test_build_prompt():
    prompt, context = build_prompt(make_issue())

    lines = prompt.splitlines()
    assert lines[0] == "Process issue CMD-042: Crash on empty cart"
    assert "Checkout throws when the cart is empty" in lines
    assert "1. Reproduce the reported behaviour" in lines
    assert context == {
        "issue_code": "CMD-042",
        "description": "Checkout throws when the cart is empty",
        "type": "BUG",
        "priority": "CRITICAL",
        "labels": ["checkout"],
        "playbook": ["reproduce", "locate", "fix", "regression_test", "verify"],
    }


def test_estimate_warns_on_empty_prompt():
    assert estimate("   ")["warnings"] == ["Prompt is empty"]
    assert estimate("do things")["estimated_cost"] == 0.03


def test_generate_command_includes_context():
    command = generate_command(make_issue(type=IssueType.EPIC))
    assert command["context"]["playbook"] == ["analyze", "breakdown"]
    assert command["estimated_tokens"] == 1500


@pytest.mark.asyncio
async def test_stub_runner_completes_playbook():
    issue = make_issue(type=IssueType.FEATURE)

    report = await run_playbook(issue, StubActionRunner(issue))

    assert report.success
    assert [result.action for result in report.results] == [
        "analyze",
        "design",
        "implement",
        "test",
        "document",
    ]
    assert report.results[0].result["status"] == "simulated"


class FlakyRunner(ActionRunner):
    """Fails the second action by raising."""

    def __init__(self, issue):
        super().__init__(issue)
        self.calls = []

    async def execute(self, step: PlaybookStep) -> ActionResult:
        self.calls.append(step.action)
        if len(self.calls) == 2:
            raise RuntimeError("tool unavailable")
        now = utc_now()
        return ActionResult(success=True, action=step.action, started_at=now, completed_at=now)


@pytest.mark.asyncio
async def test_run_playbook_stops_at_first_failure():
    issue = make_issue()
    runner = FlakyRunner(issue)

    report = await run_playbook(issue, runner)

    assert not report.success
    assert runner.calls == ["reproduce", "locate"]
    assert report.results[-1].error == "tool unavailable"


class TestCli:
    runner = CliRunner()

    def test_playbooks_lists_every_type(self):
        result = self.runner.invoke(cli_app, ["playbooks"])

        assert result.exit_code == 0
        assert "Issue Playbooks" in result.output
        assert "SUB-TASK" in result.output

    def test_skill_runs_playbook(self):
        result = self.runner.invoke(
            cli_app, ["skill", "HOTFIX", "CMD-009", "--title", "Prod is down", "--show-prompt"]
        )

        assert result.exit_code == 0
        assert "Process issue CMD-009: Prod is down" in result.output
        assert "Playbook completed for CMD-009" in result.output

    def test_skill_rejects_unknown_type(self):
        result = self.runner.invoke(cli_app, ["skill", "CHORE", "CMD-001"])
        assert result.exit_code != 0
