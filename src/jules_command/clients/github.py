"""GitHub REST client for pull request metadata, CI status and merging."""

import logging
from typing import Any

import httpx

from jules_command.constants import (
    DEFAULT_GITHUB_BASE_URL,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    GITHUB_API_VERSION,
    GITHUB_PAGE_SIZE,
    MERGE_METHOD_MERGE,
)
from jules_command.exceptions import ClientError

logger = logging.getLogger(__name__)

SERVICE_NAME = "github"

# Upper bound on file pages (GitHub caps the files listing at 3000 entries)
MAX_FILE_PAGES = 30


def _error_message(response: httpx.Response) -> str:
    try:
        return str(response.json().get("message", ""))
    except (ValueError, AttributeError):
        return response.text[:200]


class GitHubClient:
    """Client for the subset of the GitHub REST API used for PR review."""

    def __init__(
        self,
        token: str | None = None,
        base_url: str = DEFAULT_GITHUB_BASE_URL,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            token: Personal access token. Anonymous access when None.
            base_url: API base URL.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url, headers=headers, timeout=timeout, transport=transport
        )

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = self._client.request(method, path, params=params, json=json_body)
        except httpx.TimeoutException as e:
            raise ClientError(f"GitHub API timed out: {path}", SERVICE_NAME, cause=e) from e
        except httpx.RequestError as e:
            raise ClientError(
                f"Failed to connect to GitHub API: {e}", SERVICE_NAME, cause=e
            ) from e

        if not response.is_success:
            raise ClientError(
                f"GitHub API returned status {response.status_code} for {method} {path}: "
                f"{_error_message(response)}",
                SERVICE_NAME,
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise ClientError(f"Invalid JSON from GitHub API: {e}", SERVICE_NAME, cause=e) from e

    def get_pull_request(self, owner: str, repo: str, number: int) -> dict[str, Any]:
        """Fetch a pull request resource."""
        data: dict[str, Any] = self._request("GET", f"/repos/{owner}/{repo}/pulls/{number}")
        return data

    def list_pull_request_files(self, owner: str, repo: str, number: int) -> list[dict[str, Any]]:
        """Fetch every changed file of a pull request, following pagination."""
        files: list[dict[str, Any]] = []
        for page in range(1, MAX_FILE_PAGES + 1):
            batch = self._request(
                "GET",
                f"/repos/{owner}/{repo}/pulls/{number}/files",
                params={"per_page": GITHUB_PAGE_SIZE, "page": page},
            )
            files.extend(batch)
            if len(batch) < GITHUB_PAGE_SIZE:
                break
        return files

    def get_combined_status(self, owner: str, repo: str, ref: str) -> str | None:
        """Combined commit status for a ref.

        Returns:
            "success", "failure", "pending" or "error", or None when the ref
            has no statuses reported at all.
        """
        data = self._request("GET", f"/repos/{owner}/{repo}/commits/{ref}/status")
        if not data.get("total_count"):
            return None
        state: str | None = data.get("state")
        return state

    def list_reviews(self, owner: str, repo: str, number: int) -> list[dict[str, Any]]:
        """Fetch submitted reviews for a pull request, oldest first."""
        reviews: list[dict[str, Any]] = self._request(
            "GET",
            f"/repos/{owner}/{repo}/pulls/{number}/reviews",
            params={"per_page": GITHUB_PAGE_SIZE},
        )
        return reviews

    def merge_pull_request(
        self,
        owner: str,
        repo: str,
        number: int,
        method: str = MERGE_METHOD_MERGE,
        sha: str | None = None,
    ) -> dict[str, Any]:
        """Merge a pull request.

        Args:
            method: "merge", "squash" or "rebase".
            sha: Expected head SHA. GitHub rejects the merge if the head moved.

        Returns:
            GitHub's merge response (``merged``, ``sha``, ``message``).

        Raises:
            ClientError: If GitHub refuses the merge or the request fails.
        """
        body: dict[str, Any] = {"merge_method": method}
        if sha:
            body["sha"] = sha
        logger.info(f"Merging {owner}/{repo}#{number} via {method}")
        result: dict[str, Any] = self._request(
            "PUT", f"/repos/{owner}/{repo}/pulls/{number}/merge", json_body=body
        )
        return result

    def close(self) -> None:
        self._client.close()

    def __del__(self) -> None:
        """Clean up HTTP client."""
        if hasattr(self, "_client"):
            self._client.close()
