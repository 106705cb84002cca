"""
Command Line Interface for Command Center.
"""

import asyncio
from typing import Optional

import typer
import uvicorn
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import get_settings
from ..playbooks import PLAYBOOKS, StubActionRunner, build_prompt, run_playbook
from ..tracker.enums import IssueType
from ..tracker.issue import Issue

app = typer.Typer(help="Command Center - issue tracking with Claude automation")
console = Console()


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Host to bind the server to"),
    port: Optional[int] = typer.Option(None, help="Port to run the API server on"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Run the API and WebSocket server."""
    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    rprint(Panel.fit(f"🏗️ Starting {settings.app_name}", style="bold blue"))
    console.print(f"🚀 Listening on http://{host}:{port}")
    uvicorn.run(
        "command_center.api:app",
        host=host,
        port=port,
        reload=reload or settings.debug,
        log_config=None,
    )


@app.command()
def playbooks():
    """List the playbook for every issue type."""
    table = Table(title="Issue Playbooks", show_header=True, header_style="bold magenta")
    table.add_column("Issue Type", style="cyan")
    table.add_column("#", justify="right")
    table.add_column("Action", style="green")
    table.add_column("Description")

    for issue_type, steps in PLAYBOOKS.items():
        for i, step in enumerate(steps, 1):
            table.add_row(issue_type.value if i == 1 else "", str(i), step.action, step.description)

    console.print(table)


@app.command()
def skill(
    issue_type: IssueType = typer.Argument(..., help="Issue type"),
    code: str = typer.Argument(..., help="Issue code, e.g. CMD-001"),
    title: str = typer.Option("", help="Issue title"),
    description: str = typer.Option("", help="Issue description"),
    show_prompt: bool = typer.Option(False, "--show-prompt", help="Print the derived prompt"),
):
    """Run an issue type's playbook through the stub action runner."""
    issue = Issue(
        code=code,
        project_id="local",
        title=title or code,
        description=description,
        type=issue_type,
    )

    rprint(Panel.fit(f"🤖 {issue_type.value} playbook for {code}", style="bold blue"))
    if show_prompt:
        prompt, _ = build_prompt(issue)
        console.print(Panel(prompt, title="Prompt"))

    report = asyncio.run(run_playbook(issue, StubActionRunner(issue)))

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Action", style="cyan")
    table.add_column("Status")
    table.add_column("Details")
    for result in report.results:
        status = "✅ Done" if result.success else "❌ Failed"
        details = (result.result or {}).get("message", "") if result.success else result.error or ""
        table.add_row(result.action, status, details)
    console.print(table)

    if not report.success:
        raise typer.Exit(code=1)
    console.print(f"✅ Playbook completed for {code}")


if __name__ == "__main__":
    app()
