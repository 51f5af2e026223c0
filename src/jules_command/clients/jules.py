"""Jules API client.

Thin wrapper over the Jules REST API. It fetches a session snapshot and its
activity feed, and maps both onto the store models.
"""

import logging
from typing import Any

import httpx

from jules_command.constants import (
    ACTIVITY_TYPE_BASH_OUTPUT,
    ACTIVITY_TYPE_ERROR,
    ACTIVITY_TYPE_FILE_CHANGE,
    ACTIVITY_TYPE_MESSAGE,
    ACTIVITY_TYPE_PLAN,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_JULES_BASE_URL,
    JULES_ACTIVITY_PAGE_SIZE,
    JULES_API_KEY_HEADER,
    ORIGINATOR_AGENT,
    SESSION_STATE_QUEUED,
    TERMINAL_SESSION_STATES,
    VALID_SESSION_STATES,
)
from jules_command.exceptions import ClientError
from jules_command.store.models import Activity, Session
from jules_command.utils.timestamps import parse_timestamp

logger = logging.getLogger(__name__)

SERVICE_NAME = "jules"

# Safety cap on activity pages followed in one refresh
MAX_ACTIVITY_PAGES = 20


def _repo_from_source(source_context: dict[str, Any]) -> str | None:
    """Extract owner/name from a ``sources/github/{owner}/{name}`` reference."""
    source = source_context.get("source") or ""
    parts = source.split("/")
    if len(parts) >= 4 and parts[0] == "sources" and parts[1] == "github":
        return f"{parts[2]}/{parts[3]}"
    return None


def session_from_api(data: dict[str, Any]) -> Session:
    """Map a Jules session payload onto a Session.

    Args:
        data: Session resource as returned by the API.

    Returns:
        Session snapshot. Poll bookkeeping fields are left unset.
    """
    session_id = data.get("id") or str(data.get("name", "")).rsplit("/", 1)[-1]
    state = str(data.get("state") or SESSION_STATE_QUEUED).lower()
    if state not in VALID_SESSION_STATES:
        logger.warning(f"Unknown Jules state {state!r} for session {session_id}")

    source_context = data.get("sourceContext") or {}
    pr_url = pr_title = None
    for output in data.get("outputs") or []:
        pull_request = output.get("pullRequest")
        if pull_request and pull_request.get("url"):
            pr_url = pull_request["url"]
            pr_title = pull_request.get("title")

    updated_at = parse_timestamp(data.get("updateTime") or data.get("createTime"))
    return Session(
        id=session_id,
        title=data.get("title"),
        prompt=data.get("prompt") or "",
        repo=_repo_from_source(source_context),
        source_branch=(source_context.get("githubRepoContext") or {}).get("startingBranch"),
        state=state,
        jules_url=data.get("url"),
        pr_url=pr_url,
        pr_title=pr_title,
        created_at=parse_timestamp(data.get("createTime")),
        updated_at=updated_at,
        completed_at=updated_at if state in TERMINAL_SESSION_STATES else None,
    )


def activity_from_api(session_id: str, data: dict[str, Any]) -> Activity:
    """Map a Jules activity payload onto an Activity.

    Bash artifacts set ``has_bash_output`` and record their exit code as an
    ``Exit Code: N`` line in the progress description.
    """
    activity_id = data.get("id") or str(data.get("name", "")).rsplit("/", 1)[-1]
    progress = data.get("progressUpdated") or {}
    description = progress.get("description") or data.get("description")

    has_bash_output = False
    has_changeset = False
    exit_code: int | None = None
    for artifact in data.get("artifacts") or []:
        bash = artifact.get("bashOutput")
        if bash is not None:
            has_bash_output = True
            if bash.get("exitCode") is not None:
                exit_code = int(bash["exitCode"])
        if artifact.get("changeSet") is not None:
            has_changeset = True

    if exit_code is not None and "Exit Code:" not in (description or ""):
        marker = f"Exit Code: {exit_code}"
        description = f"{description}\n{marker}" if description else marker

    if has_bash_output:
        activity_type = ACTIVITY_TYPE_BASH_OUTPUT
    elif has_changeset:
        activity_type = ACTIVITY_TYPE_FILE_CHANGE
    elif data.get("planGenerated") is not None:
        activity_type = ACTIVITY_TYPE_PLAN
    elif data.get("sessionFailed") is not None:
        activity_type = ACTIVITY_TYPE_ERROR
    else:
        activity_type = ACTIVITY_TYPE_MESSAGE

    message = (
        (data.get("agentMessaged") or {}).get("agentMessage")
        or (data.get("userMessaged") or {}).get("userMessage")
        or (data.get("sessionFailed") or {}).get("reason")
    )

    return Activity(
        id=activity_id,
        session_id=session_id,
        activity_type=activity_type,
        originator=data.get("originator") or ORIGINATOR_AGENT,
        message=message,
        progress_title=progress.get("title"),
        progress_description=description,
        has_bash_output=has_bash_output,
        has_changeset=has_changeset,
        created_at=parse_timestamp(data.get("createTime")),
    )


class JulesClient:
    """Client for the Jules REST API.

    Attributes:
        base_url: API base URL (e.g. https://jules.googleapis.com/v1alpha).
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_JULES_BASE_URL,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: Jules API key.
            base_url: API base URL.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={JULES_API_KEY_HEADER: api_key, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise ClientError(f"Jules API timed out: {path}", SERVICE_NAME, cause=e) from e
        except httpx.RequestError as e:
            raise ClientError(
                f"Failed to connect to Jules API: {e}", SERVICE_NAME, cause=e
            ) from e

        if response.status_code != 200:
            raise ClientError(
                f"Jules API returned status {response.status_code} for {path}: "
                f"{response.text[:200]}",
                SERVICE_NAME,
                status_code=response.status_code,
            )
        try:
            payload: dict[str, Any] = response.json()
        except ValueError as e:
            raise ClientError(f"Invalid JSON from Jules API: {e}", SERVICE_NAME, cause=e) from e
        return payload

    def get_session(self, session_id: str) -> Session:
        """Fetch a session snapshot.

        Raises:
            ClientError: If the request fails.
        """
        return session_from_api(self._get(f"/sessions/{session_id}"))

    def list_activities(
        self, session_id: str, page_size: int = JULES_ACTIVITY_PAGE_SIZE
    ) -> list[Activity]:
        """Fetch a session's activity feed, following pagination.

        Raises:
            ClientError: If any page request fails.
        """
        activities: list[Activity] = []
        page_token: str | None = None
        for _ in range(MAX_ACTIVITY_PAGES):
            params: dict[str, Any] = {"pageSize": page_size}
            if page_token:
                params["pageToken"] = page_token
            payload = self._get(f"/sessions/{session_id}/activities", params=params)
            activities.extend(
                activity_from_api(session_id, item) for item in payload.get("activities") or []
            )
            page_token = payload.get("nextPageToken")
            if not page_token:
                break
        else:
            logger.warning(
                f"Stopped after {MAX_ACTIVITY_PAGES} activity pages for session {session_id}"
            )
        return activities

    def close(self) -> None:
        self._client.close()

    def __del__(self) -> None:
        """Clean up HTTP client."""
        if hasattr(self, "_client"):
            self._client.close()
