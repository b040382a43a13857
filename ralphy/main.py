"""ralphy CLI: all commands."""

import asyncio
import json
import logging
from typing import Annotated

import tomlkit
import typer
from rich import print as rprint
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from ralphy.config import AppConfig
from ralphy.errors import ConfigError
from ralphy.factory import create_ticket_service, extract_team_and_project_ids
from ralphy.filters import filter_actionable_issues
from ralphy.models import Issue, PromotionSummary, Result
from ralphy.service import TicketService, promote_issues
from ralphy.settings import CONFIG_PATH, _list_profiles, get_config, get_settings

app = typer.Typer(help="ralphy: label-driven ticket workflow for Linear, Jira and GitHub Issues", no_args_is_help=True)

TrackerOpt = Annotated[
    str | None,
    typer.Option("--tracker", "-k", help="Profile name from ~/.config/ralphy/config.toml"),
]
AllOpt = Annotated[bool, typer.Option("--all", "-a", help="Include completed, canceled and in-review issues")]
JsonOpt = Annotated[bool, typer.Option("--json", help="Print issues as JSON")]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False)],
        force=True,
    )
    # request-level chatter from the HTTP stack stays out of -v output
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Service helpers
# ---------------------------------------------------------------------------


def get_service(config: AppConfig) -> TicketService:
    try:
        return create_ticket_service(config.provider)
    except ConfigError as exc:
        rprint(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(1) from exc


def _unwrap(result: Result, what: str):
    if not result.success:
        rprint(f"[red]Failed to {what}:[/red] {escape(result.error)}")
        raise typer.Exit(1)
    return result.data


async def _fetch_labelled(config: AppConfig, label: str) -> Result[list[Issue]]:
    scope = extract_team_and_project_ids(config.provider)
    async with get_service(config) as service:
        return await service.fetch_issues_by_label(scope.team_id, label, scope.project_id)


async def _fetch_one(config: AppConfig, issue_id: str) -> Result[Issue]:
    async with get_service(config) as service:
        return await service.fetch_issue_by_id(issue_id)


async def _promote(config: AppConfig, issue_ids: list[str]) -> PromotionSummary:
    async with get_service(config) as service:
        return await promote_issues(service, issue_ids, config.labels)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _print_issues(issues: list[Issue], title: str, as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps([issue.model_dump(mode="json") for issue in issues], indent=2))
        return

    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("State")
    table.add_column("Pri")
    table.add_column("Title")
    table.add_column("Labels", style="dim")

    for issue in issues:
        table.add_row(
            issue.identifier,
            escape(issue.state.name),
            issue.priority.label,
            escape(issue.title),
            escape(", ".join(sorted(issue.labels))),
        )

    rprint(table)


def _list_by_label(tracker: str | None, which: str, show_all: bool, as_json: bool) -> None:
    config = get_config(tracker)
    label = config.labels.candidate if which == "candidate" else config.labels.ready
    issues = _unwrap(asyncio.run(_fetch_labelled(config, label)), "fetch issues")
    total = len(issues)
    if not show_all:
        issues = filter_actionable_issues(issues)

    if not issues:
        if as_json:
            typer.echo("[]")
            return
        rprint(f'No issues found with the "{escape(label)}" label.')
        if total:
            rprint(f"[dim]{total} hidden as completed, canceled or in review. Use --all to show them.[/dim]")
        return

    _print_issues(issues, f"{which.capitalize()} issues ({label})", as_json)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("candidates")
def candidates(tracker: TrackerOpt = None, show_all: AllOpt = False, as_json: JsonOpt = False) -> None:
    """List issues carrying the candidate label."""
    _list_by_label(tracker, "candidate", show_all, as_json)


@app.command("ready")
def ready(tracker: TrackerOpt = None, show_all: AllOpt = False, as_json: JsonOpt = False) -> None:
    """List issues carrying the ready label."""
    _list_by_label(tracker, "ready", show_all, as_json)


@app.command("promote")
def promote(
    issue_ids: Annotated[list[str], typer.Argument(help="Issue IDs (e.g. ENG-123, PROJ-42 or owner/repo#42)")],
    tracker: TrackerOpt = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Show what would change without writing")] = False,
) -> None:
    """Move issues from the candidate label to the ready label."""
    config = get_config(tracker)
    labels = config.labels

    if dry_run:
        rprint("[dim][Dry run mode - no changes will be made][/dim]")
        for issue_id in issue_ids:
            rprint(
                f"Would promote [bold]{escape(issue_id)}[/bold]: "
                f"-{escape(labels.candidate)} +{escape(labels.ready)}"
            )
        return

    summary = asyncio.run(_promote(config, issue_ids))

    for outcome in summary.outcomes:
        name = escape(outcome.issue_id)
        if not outcome.success:
            rprint(f"[red]✗[/red] Failed to promote [bold]{name}[/bold]: {escape(outcome.error or '')}")
        elif outcome.skipped:
            rprint(f'[yellow]•[/yellow] [bold]{name}[/bold] already has the "{escape(labels.ready)}" label')
        else:
            rprint(f"[green]✓[/green] Promoted [bold]{name}[/bold] to ready")
            if outcome.swap and outcome.swap.removed:
                rprint(f"  Removed: {escape(outcome.swap.removed)}")
            if outcome.swap and outcome.swap.added:
                rprint(f"  Added: {escape(outcome.swap.added)}")

    if len(issue_ids) > 1:
        rprint("")
        rprint(f"[bold]Promotion summary[/bold] ({len(issue_ids)} issues)")
        rprint(f"[green]Promoted: {summary.promoted}[/green]")
        if summary.skipped:
            rprint(f"[yellow]Already ready: {summary.skipped}[/yellow]")
        if summary.failed:
            rprint(f"[red]Failed: {summary.failed}[/red]")

    if summary.exit_code:
        raise typer.Exit(summary.exit_code)


@app.command("show")
def show(
    issue_id: Annotated[str, typer.Argument(help="Issue ID (e.g. ENG-123 or owner/repo#42)")],
    tracker: TrackerOpt = None,
) -> None:
    """Show full details for an issue."""
    config = get_config(tracker)
    issue: Issue = _unwrap(asyncio.run(_fetch_one(config, issue_id)), f"fetch {issue_id}")

    table = Table(title=f"{issue.identifier}: {escape(issue.title)}")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Provider", config.provider.provider)
    table.add_row("State", f"{escape(issue.state.name)} ({issue.state.type.value})")
    table.add_row("Priority", issue.priority.label)
    table.add_row("Labels", escape(", ".join(sorted(issue.labels))) if issue.labels else "none")
    table.add_row("URL", issue.url or "none")
    table.add_row("Description", escape(issue.description or "_No description provided._"))

    rprint(table)


@app.command("teams")
def teams(tracker: TrackerOpt = None) -> None:
    """List teams, projects or repositories visible to the credentials."""
    config = get_config(tracker)

    async def _fetch():
        async with get_service(config) as service:
            return await service.fetch_teams()

    found = _unwrap(asyncio.run(_fetch()), "fetch teams")

    table = Table(title="Teams")
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("ID", style="dim")

    for t in found:
        table.add_row(t.key, escape(t.name), t.id)

    rprint(table)


@app.command("doctor")
def doctor(tracker: TrackerOpt = None) -> None:
    """Check that the active profile's credentials work."""
    config = get_config(tracker)

    async def _check():
        async with get_service(config) as service:
            return await service.validate_connection()

    ok = _unwrap(asyncio.run(_check()), "validate connection")
    if not ok:
        rprint(f"[red]✗[/red] {config.provider.provider} accepted the request but returned no identity")
        raise typer.Exit(1)
    rprint(f"[green]✓[/green] Connected to {config.provider.provider}")


@app.command("status")
def status(
    tracker: TrackerOpt = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print status as JSON")] = False,
) -> None:
    """Show the active scope and how many actionable issues carry each workflow label."""
    config = get_config(tracker)
    scope = extract_team_and_project_ids(config.provider)
    labels = [config.labels.candidate, config.labels.ready]

    async def _fetch_both():
        async with get_service(config) as service:
            return [await service.fetch_issues_by_label(scope.team_id, label, scope.project_id) for label in labels]

    candidates_result, ready_result = asyncio.run(_fetch_both())
    counts = {
        "candidates": len(filter_actionable_issues(_unwrap(candidates_result, "fetch candidate issues"))),
        "ready": len(filter_actionable_issues(_unwrap(ready_result, "fetch ready issues"))),
    }

    if as_json:
        data = {"provider": config.provider.provider, **scope.model_dump(), **counts}
        typer.echo(json.dumps(data, indent=2))
        return

    table = Table(title="ralphy status")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Provider", config.provider.provider)
    table.add_row("Scope", escape(scope.team_id))
    if scope.project_id and scope.project_id != scope.team_id:
        table.add_row("Project", escape(scope.project_id))
    table.add_row(f"Candidates ({escape(config.labels.candidate)})", str(counts["candidates"]))
    table.add_row(f"Ready ({escape(config.labels.ready)})", str(counts["ready"]))

    rprint(table)


@app.command("set-default")
def set_default(
    tracker: Annotated[str, typer.Argument(help="Profile name to set as default")],
) -> None:
    """Set the default tracker profile in ~/.config/ralphy/config.toml."""
    if not CONFIG_PATH.exists():
        CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        doc = tomlkit.document()
        doc.add("default_tracker", tracker)
        CONFIG_PATH.write_text(tomlkit.dumps(doc))
        rprint(f'[green]✓[/green] Default tracker set to "{tracker}" in {CONFIG_PATH}')
        return

    doc = tomlkit.load(CONFIG_PATH.open())
    profiles = _list_profiles(doc)
    if tracker not in profiles:
        rprint(f"[red]Profile '{tracker}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}[/red]")
        raise typer.Exit(1)

    doc["default_tracker"] = tracker
    CONFIG_PATH.write_text(tomlkit.dumps(doc))
    rprint(f'[green]✓[/green] Default tracker set to "{tracker}" in {CONFIG_PATH}')


@app.command("config-show")
def config_show(tracker: TrackerOpt = None) -> None:
    """Show resolved configuration (masks credentials)."""
    settings = get_settings(tracker=tracker)

    def mask(val: str | None) -> str:
        if val is None:
            return "[dim](not set)[/dim]"
        if len(val) <= 5:
            return "***"
        return f"...{val[-4:]}"

    def plain(val: str | None) -> str:
        return escape(val) if val else "[dim](not set)[/dim]"

    def secret(field) -> str:
        return mask(field.get_secret_value() if field else None)

    table = Table(title="ralphy configuration")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("provider", settings.provider)
    table.add_row("default_tracker", plain(settings.default_tracker))
    table.add_row("candidate_label", escape(settings.candidate_label))
    table.add_row("ready_label", escape(settings.ready_label))

    match settings.provider:
        case "linear":
            table.add_row("linear_api_key", secret(settings.linear_api_key))
            table.add_row("linear_team_id", plain(settings.linear_team_id))
            table.add_row("linear_project_id", plain(settings.linear_project_id))
        case "jira":
            table.add_row("jira_host", plain(settings.jira_host))
            table.add_row("jira_email", plain(settings.jira_email))
            table.add_row("jira_api_token", secret(settings.jira_api_token))
            table.add_row("jira_project", plain(settings.jira_project))
        case "github":
            table.add_row("github_token", secret(settings.github_token))
            table.add_row("github_repo", plain(settings.github_repo))

    rprint(table)
