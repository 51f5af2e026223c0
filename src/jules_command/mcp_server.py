"""MCP protocol server for jules-command.

Exposes session health and PR merge-readiness tools to AI agents over
stdio or HTTP transport.
"""

import json
import logging
import sys
from typing import Any, Literal

from mcp.server.fastmcp import FastMCP

# Force all logging to stderr to preserve stdout for MCP protocol
logging.basicConfig(stream=sys.stderr, level=logging.INFO, force=True)
logging.getLogger("httpx").setLevel(logging.WARNING)

# These imports must be after logging setup to prevent stdout corruption
from jules_command.config import JulesCommandConfig  # noqa: E402
from jules_command.constants import MCP_SERVER_NAME  # noqa: E402
from jules_command.context import ServiceContext, build_context  # noqa: E402
from jules_command.logs import configure_logging  # noqa: E402
from jules_command.tools.operations import ToolOperations  # noqa: E402

logger = logging.getLogger(__name__)

MCPTransport = Literal["stdio", "sse", "streamable-http"]


def create_mcp_server(context: ServiceContext) -> FastMCP:
    """Create an MCP server bound to a service context.

    Args:
        context: Configured services.

    Returns:
        FastMCP server instance with the jules_* and pr_* tools registered.
    """
    ops = ToolOperations(context)
    mcp = FastMCP(MCP_SERVER_NAME, json_response=True)

    @mcp.tool()
    def jules_poll(session_ids: list[str] | None = None, sync_prs: bool = True) -> str:
        """Run one poll cycle: refresh sessions, detect stalls and sync PRs.

        Args:
            session_ids: Sessions to poll. Polls every active session when omitted.
            sync_prs: Also sync PR metadata from GitHub for polled sessions.

        Returns:
            JSON summary with sessions polled and updated, stalls, PRs updated and errors.
        """
        return json.dumps(ops.jules_poll(session_ids=session_ids, sync_prs=sync_prs))

    @mcp.tool()
    def jules_detect_stalls() -> str:
        """Report stalled sessions without recording a poll.

        Returns:
            JSON list of stalls with rule id, reason and minutes since update.
        """
        return json.dumps(ops.jules_detect_stalls())

    @mcp.tool()
    def jules_status() -> str:
        """Summarize active sessions with their state and any stall.

        Returns:
            JSON with counts by state and one entry per active session.
        """
        return json.dumps(ops.jules_status())

    @mcp.tool()
    def jules_list_sessions(
        state: str | None = None, repo: str | None = None, limit: int = 50
    ) -> str:
        """List stored sessions, newest first.

        Args:
            state: Only sessions in this state (e.g. 'in_progress', 'completed')
            repo: Only sessions for this owner/name
            limit: Maximum sessions to return (1-200)

        Returns:
            JSON list of session records.
        """
        return json.dumps(ops.jules_list_sessions(state=state, repo=repo, limit=limit))

    @mcp.tool()
    def jules_get_session(session_id: str, refresh: bool = False) -> str:
        """Get one session with its poll cursor and PR records.

        Args:
            session_id: Jules session ID
            refresh: Update the stored snapshot from the Jules API first

        Returns:
            JSON session record.
        """
        return json.dumps(ops.jules_get_session(session_id=session_id, refresh=refresh))

    @mcp.tool()
    def jules_get_activities(
        session_id: str,
        activity_type: str | None = None,
        limit: int = 50,
        since: str | None = None,
    ) -> str:
        """List stored activities for a session.

        Args:
            session_id: Jules session ID
            activity_type: Options: 'message', 'plan', 'bash_output', 'file_change', 'error'
            limit: Maximum activities to return (1-200)
            since: ISO-8601 time. Only later activities are returned, oldest first.

        Returns:
            JSON list of activities.
        """
        return json.dumps(
            ops.jules_get_activities(
                session_id=session_id, activity_type=activity_type, limit=limit, since=since
            )
        )

    @mcp.tool()
    def jules_get_bash_outputs(session_id: str, limit: int = 50) -> str:
        """List a session's command outputs with their exit codes.

        Args:
            session_id: Jules session ID
            limit: Maximum outputs to return (1-200)

        Returns:
            JSON list of outputs and the number that failed.
        """
        return json.dumps(ops.jules_get_bash_outputs(session_id=session_id, limit=limit))

    @mcp.tool()
    def jules_query(
        table: str,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        limit: int = 50,
    ) -> str:
        """Read rows from a table with equality filters.

        Args:
            table: Options: 'sessions', 'activities', 'pr_reviews'
            where: Column -> value filters. A null value matches NULL.
            order_by: '<column>' or '<column> desc'. Newest rows first when omitted.
            limit: Maximum rows to return (1-200)

        Returns:
            JSON rows.
        """
        return json.dumps(
            ops.jules_query(table=table, where=where, order_by=order_by, limit=limit)
        )

    @mcp.tool()
    def pr_review_status(pr_url: str | None = None, session_id: str | None = None) -> str:
        """Show the stored review record for a PR, or every PR of a session.

        Args:
            pr_url: GitHub PR URL
            session_id: Jules session ID (used when pr_url is omitted)

        Returns:
            JSON PR record(s) with complexity, CI status and auto-merge state.
        """
        return json.dumps(ops.pr_review_status(pr_url=pr_url, session_id=session_id))

    @mcp.tool()
    def pr_update_review(pr_url: str, status: str | None = None, notes: str | None = None) -> str:
        """Set a PR's review status or notes.

        Args:
            pr_url: GitHub PR URL
            status: Options: 'pending', 'approved', 'changes_requested', 'closed'
            notes: Free-text review notes

        Returns:
            JSON updated PR record.
        """
        return json.dumps(ops.pr_update_review(pr_url=pr_url, status=status, notes=notes))

    @mcp.tool()
    def pr_check_auto_merge(pr_url: str | None = None) -> str:
        """Evaluate the auto-merge gate for one PR, or all pending PRs.

        Args:
            pr_url: GitHub PR URL. Evaluates every pending PR when omitted.

        Returns:
            JSON eligibility with the blocking reasons in a fixed order.
        """
        return json.dumps(ops.pr_check_auto_merge(pr_url=pr_url))

    @mcp.tool()
    def pr_merge(
        pr_url: str,
        method: str = "merge",
        force: bool = False,
        confirm: bool = False,
        expected_head_sha: str | None = None,
    ) -> str:
        """Merge a PR on GitHub.

        The merge only happens with confirm=true. Unless force=true the PR
        must pass the auto-merge gate first.

        Args:
            pr_url: GitHub PR URL
            method: Options: 'merge', 'squash', 'rebase'
            force: Skip the auto-merge gate
            confirm: Must be true to perform the merge
            expected_head_sha: Refuse to merge if the PR head moved

        Returns:
            JSON merge outcome.
        """
        return json.dumps(
            ops.pr_merge(
                pr_url=pr_url,
                method=method,
                force=force,
                confirm=confirm,
                expected_head_sha=expected_head_sha,
            )
        )

    return mcp


def run_mcp_server(config: JulesCommandConfig, transport: MCPTransport = "stdio") -> None:
    """Run the MCP server until the transport closes.

    Args:
        config: Loaded configuration.
        transport: Transport type ('stdio', 'sse', or 'streamable-http')
    """
    configure_logging(config.get_effective_log_level(), config.log_file, config.log_rotation)
    context = build_context(config)
    logger.info(f"Starting {MCP_SERVER_NAME} MCP server ({transport})")
    try:
        create_mcp_server(context).run(transport=transport)
    finally:
        context.close()
