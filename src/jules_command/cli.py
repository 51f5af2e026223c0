"""Main CLI entry point for jules-command."""

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

import typer
from dotenv import load_dotenv
from rich.markup import escape
from rich.table import Table

from jules_command import __version__
from jules_command.config import JulesCommandConfig, load_config
from jules_command.constants import (
    COMPLEXITY_LABEL_BANDS,
    MCP_TRANSPORTS,
    SESSION_STATE_AWAITING_PLAN_APPROVAL,
    SESSION_STATE_AWAITING_USER_FEEDBACK,
)
from jules_command.context import ServiceContext, build_context
from jules_command.exceptions import ConfigurationError, StoreError
from jules_command.logs import configure_logging
from jules_command.services.complexity_scorer import ComplexityInput, ComplexityScorer
from jules_command.services.poll_manager import PollSummary
from jules_command.tools.operations import ToolOperations
from jules_command.utils.console import (
    console,
    print_error,
    print_info,
    print_panel,
    print_success,
    print_warning,
)

# Load .env file from current directory if it exists
load_dotenv(Path.cwd() / ".env", verbose=False)

app = typer.Typer(
    name="jules-command",
    help="Session health and merge-readiness for Jules coding sessions.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

_LABEL_STYLES = {
    "trivial": "green",
    "low": "green",
    "medium": "yellow",
    "high": "red",
    "critical": "bold red",
}

_ATTENTION_STATES = (SESSION_STATE_AWAITING_PLAN_APPROVAL, SESSION_STATE_AWAITING_USER_FEEDBACK)


@dataclass
class CliState:
    """Global options shared by every command."""

    config_path: Path | None = None
    db_path: Path | None = None


def _load_config(ctx: typer.Context) -> JulesCommandConfig:
    state: CliState = ctx.obj or CliState()
    try:
        config = load_config(state.config_path)
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(code=1) from e
    configure_logging(config.get_effective_log_level(), config.log_file, config.log_rotation)
    return config


def _build(ctx: typer.Context) -> ServiceContext:
    state: CliState = ctx.obj or CliState()
    config = _load_config(ctx)
    try:
        return build_context(config, db_path=state.db_path)
    except StoreError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e


def _exit_on_error(result: dict[str, Any]) -> None:
    if "error" in result:
        print_error(result["error"])
        raise typer.Exit(code=1)


def _print_json(data: dict[str, Any]) -> None:
    console.print_json(json.dumps(data))


def _print_summary(summary: PollSummary) -> None:
    console.print(
        f"Polled [bold]{summary.sessions_polled}[/bold] sessions, "
        f"{summary.sessions_updated} updated, "
        f"{len(summary.stalls_detected)} stalled, "
        f"{summary.prs_updated} PRs synced"
    )
    for stall in summary.stalls_detected:
        print_warning(f"{stall.session_id} ({stall.rule_id}): {stall.reason}")
    for error in summary.errors:
        print_error(f"{error['session_id']}: {error['error']}")


@app.callback()
def main_callback(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Config file (default: $JULES_COMMAND_CONFIG or ./jules-command.yaml)",
    ),
    db: Path | None = typer.Option(
        None,
        "--db",
        help="SQLite database path (overrides database_path)",
    ),
) -> None:
    """jules-command - watch Jules sessions and gate their pull requests."""
    ctx.obj = CliState(config_path=config, db_path=db)


@app.command("poll")
def poll(
    ctx: typer.Context,
    session: list[str] = typer.Option(
        None,
        "--session",
        "-s",
        help="Session to poll (can specify multiple times). Default: all active sessions",
    ),
    no_prs: bool = typer.Option(False, "--no-prs", help="Skip PR sync"),
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON"),
) -> None:
    """Run one poll cycle."""
    services = _build(ctx)
    try:
        manager = services.poll_manager(sync_prs=not no_prs)
        summary = manager.poll_sessions(session) if session else manager.poll_all_active()
    finally:
        services.close()

    if as_json:
        _print_json(summary.to_dict())
    else:
        _print_summary(summary)
    if summary.errors:
        raise typer.Exit(code=1)


@app.command("watch")
def watch(
    ctx: typer.Context,
    interval_ms: int | None = typer.Option(
        None,
        "--interval-ms",
        "-i",
        min=1,
        help="Time between cycles (default: polling.interval_ms)",
    ),
    cycles: int | None = typer.Option(
        None, "--cycles", "-n", min=1, help="Stop after this many cycles"
    ),
) -> None:
    """Poll continuously until interrupted."""
    services = _build(ctx)
    interval = interval_ms or services.config.polling.interval_ms
    stop_event = threading.Event()
    print_info(f"Polling every {interval} ms. Press Ctrl+C to stop.")
    try:
        count = services.poll_manager().run(
            interval, stop_event, max_cycles=cycles, on_cycle=_print_summary
        )
    except KeyboardInterrupt:
        stop_event.set()
        print_info("Stopped.")
        return
    finally:
        services.close()
    print_success(f"Completed {count} cycles")


@app.command("stalls")
def stalls(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print stalls as JSON"),
) -> None:
    """Show stalled sessions without recording a poll."""
    services = _build(ctx)
    try:
        result = ToolOperations(services).jules_detect_stalls()
    finally:
        services.close()
    _exit_on_error(result)

    if as_json:
        _print_json(result)
        return
    if not result["stalls"]:
        print_success("No stalled sessions")
        return

    table = Table(title="Stalled Sessions")
    table.add_column("Session", style="cyan")
    table.add_column("State")
    table.add_column("Rule", style="yellow")
    table.add_column("Minutes", justify="right")
    table.add_column("Reason")
    for stall in result["stalls"]:
        table.add_row(
            stall["session_id"],
            stall["session_state"],
            stall["rule_id"],
            str(stall["minutes_since_update"]),
            stall["reason"],
        )
    console.print(table)


@app.command("status")
def status(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print status as JSON"),
) -> None:
    """Show active sessions."""
    services = _build(ctx)
    try:
        result = ToolOperations(services).jules_status()
    finally:
        services.close()
    _exit_on_error(result)

    if as_json:
        _print_json(result)
        return
    if not result["sessions"]:
        print_info("No active sessions")
        return

    table = Table(title=f"Active Sessions ({result['active']})")
    table.add_column("Session", style="cyan")
    table.add_column("Title")
    table.add_column("State")
    table.add_column("Stall")
    for entry in result["sessions"]:
        state_style = "yellow" if entry["state"] in _ATTENTION_STATES else "green"
        table.add_row(
            entry["id"],
            escape(entry["title"] or ""),
            f"[{state_style}]{entry['state']}[/{state_style}]",
            f"[red]{entry['stall_reason']}[/red]" if entry["stall_reason"] else "[dim]-[/dim]",
        )
    console.print(table)
    counts = ", ".join(f"{state}: {n}" for state, n in sorted(result["by_state"].items()))
    print_info(counts)
    if result["auto_merge_ready"]:
        print_success(f"{len(result['auto_merge_ready'])} PRs ready to auto-merge")


@app.command("sessions")
def sessions(
    ctx: typer.Context,
    state: str | None = typer.Option(None, "--state", help="Only sessions in this state"),
    repo: str | None = typer.Option(None, "--repo", help="Only sessions for owner/name"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum sessions to show"),
    as_json: bool = typer.Option(False, "--json", help="Print sessions as JSON"),
) -> None:
    """List stored sessions, including finished ones."""
    services = _build(ctx)
    try:
        result = ToolOperations(services).jules_list_sessions(state=state, repo=repo, limit=limit)
    finally:
        services.close()
    _exit_on_error(result)

    if as_json:
        _print_json(result)
        return
    if not result["sessions"]:
        print_info("No sessions found")
        return

    table = Table(title=f"Sessions ({result['count']})")
    table.add_column("Session", style="cyan")
    table.add_column("Title")
    table.add_column("State")
    table.add_column("Repo")
    for entry in result["sessions"]:
        table.add_row(
            entry["id"], escape(entry["title"] or ""), entry["state"], entry["repo"] or ""
        )
    console.print(table)


@app.command("session")
def session(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Jules session ID"),
    refresh: bool = typer.Option(False, "--refresh", help="Refresh from the Jules API first"),
) -> None:
    """Show one session with its poll cursor and PR records."""
    services = _build(ctx)
    try:
        result = ToolOperations(services).jules_get_session(session_id, refresh=refresh)
    finally:
        services.close()
    _exit_on_error(result)
    _print_json(result)


@app.command("activities")
def activities(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Jules session ID"),
    activity_type: str | None = typer.Option(None, "--type", help="Only this activity type"),
    since: str | None = typer.Option(None, "--since", help="Only after this ISO-8601 time"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum activities to show"),
    bash: bool = typer.Option(False, "--bash", help="Show command outputs with exit codes"),
    as_json: bool = typer.Option(False, "--json", help="Print activities as JSON"),
) -> None:
    """Show a session's stored activities."""
    services = _build(ctx)
    try:
        ops = ToolOperations(services)
        if bash:
            result = ops.jules_get_bash_outputs(session_id, limit=limit)
        else:
            result = ops.jules_get_activities(
                session_id, activity_type=activity_type, limit=limit, since=since
            )
    finally:
        services.close()
    _exit_on_error(result)

    if as_json:
        _print_json(result)
        return

    if bash:
        table = Table(title=f"Command Outputs ({result['failed']} failed)")
        table.add_column("Activity", style="cyan")
        table.add_column("Title")
        table.add_column("Exit", justify="right")
        table.add_column("Created")
        for output in result["outputs"]:
            code = "-" if output["exit_code"] is None else str(output["exit_code"])
            table.add_row(
                output["id"],
                escape(output["title"] or ""),
                f"[red]{code}[/red]" if output["failed"] else code,
                output["created_at"] or "",
            )
        console.print(table)
        return

    if not result["activities"]:
        print_info("No activities found")
        return
    table = Table(title=f"Activities ({result['count']})")
    table.add_column("Activity", style="cyan")
    table.add_column("Type")
    table.add_column("Summary")
    table.add_column("Created")
    for entry in result["activities"]:
        table.add_row(
            entry["id"],
            entry["activity_type"],
            escape(entry["progress_title"] or entry["message"] or ""),
            entry["created_at"] or "",
        )
    console.print(table)


def _parse_where(pairs: list[str]) -> dict[str, str | None]:
    where: dict[str, str | None] = {}
    for pair in pairs:
        column, sep, value = pair.partition("=")
        if not sep or not column:
            raise typer.BadParameter(f"Expected column=value, got {pair!r}", param_hint="--where")
        where[column.strip()] = None if value == "null" else value
    return where


@app.command("query")
def query(
    ctx: typer.Context,
    table: str = typer.Argument(..., help="Table: sessions, activities, or pr_reviews"),
    where: list[str] = typer.Option(
        None,
        "--where",
        "-w",
        help="Equality filter column=value (can specify multiple times; value null matches NULL)",
    ),
    order_by: str | None = typer.Option(None, "--order-by", help="'<column> [asc|desc]'"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum rows"),
) -> None:
    """Read rows from a table as JSON."""
    filters = _parse_where(where or [])
    services = _build(ctx)
    try:
        result = ToolOperations(services).jules_query(
            table, where=filters or None, order_by=order_by, limit=limit
        )
    finally:
        services.close()
    _exit_on_error(result)
    _print_json(result)


@app.command("check-merge")
def check_merge(
    ctx: typer.Context,
    pr_url: str | None = typer.Argument(None, help="PR URL. Default: all pending PRs"),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON"),
) -> None:
    """Evaluate the auto-merge gate."""
    services = _build(ctx)
    try:
        result = ToolOperations(services).pr_check_auto_merge(pr_url=pr_url)
    finally:
        services.close()
    _exit_on_error(result)

    if as_json:
        _print_json(result)
        return
    for entry in result.get("results", [result]):
        if entry["eligible"]:
            print_success(f"{entry['pr_url']}: eligible for auto-merge")
        else:
            print_warning(f"{entry['pr_url']}: not eligible")
            for reason in entry["reasons"]:
                console.print(f"    - {reason}")
    if "total" in result:
        print_info(f"{result['eligible']}/{result['total']} pending PRs eligible")


@app.command("score")
def score(
    ctx: typer.Context,
    lines: int = typer.Option(0, "--lines", "-l", help="Lines changed (additions + deletions)"),
    files: int = typer.Option(0, "--files", "-f", help="Files changed"),
    test_files: int = typer.Option(0, "--test-files", "-t", help="Test files changed"),
    critical: bool = typer.Option(False, "--critical", help="Critical files touched"),
    dependency: bool = typer.Option(False, "--dependency", help="Dependency manifest touched"),
) -> None:
    """Score the complexity of a change."""
    config = _load_config(ctx)
    result = ComplexityScorer(config.complexity).score(
        ComplexityInput(
            lines_changed=lines,
            files_changed=files,
            test_files_changed=test_files,
            critical_files_touched=critical,
            dependency_manifest_touched=dependency,
        )
    )

    table = Table(title="Complexity Breakdown")
    table.add_column("Component", style="cyan")
    table.add_column("Contribution", justify="right")
    for name, value in result.breakdown.items():
        table.add_row(name, f"{value:.2f}")
    console.print(table)

    style = _LABEL_STYLES.get(result.label, "white")
    bands = ", ".join(f"<{upper} {label}" for upper, label in COMPLEXITY_LABEL_BANDS)
    console.print(f"Score: [bold]{result.score:.2f}[/bold] [{style}]{result.label}[/{style}]")
    console.print(f"[dim]Bands: {bands}, else critical[/dim]")


@app.command("mcp")
def mcp(
    ctx: typer.Context,
    transport: str = typer.Option(
        "stdio", "--transport", "-t", help="Transport: stdio, sse, or streamable-http"
    ),
) -> None:
    """Run the MCP server."""
    if transport not in MCP_TRANSPORTS:
        print_error(f"Invalid transport: {transport}. Must be one of: {', '.join(MCP_TRANSPORTS)}")
        raise typer.Exit(code=1)

    config = _load_config(ctx)
    state: CliState = ctx.obj or CliState()
    if state.db_path is not None:
        config.database_path = str(state.db_path)

    from jules_command.mcp_server import MCPTransport, run_mcp_server

    try:
        run_mcp_server(config, transport=cast(MCPTransport, transport))
    except StoreError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e


@app.command("config")
def show_config(ctx: typer.Context) -> None:
    """Show the effective configuration (secrets masked)."""
    config = _load_config(ctx)
    _print_json(config.to_dict())


@app.command("version")
def version() -> None:
    """Show version information."""
    print_panel(
        f"[bold cyan]jules-command[/bold cyan] version [green]{__version__}[/green]",
        title="Version",
    )


def main() -> None:
    app()
