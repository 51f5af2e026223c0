"""GitHub pull request URL parsing."""

import re
from dataclasses import dataclass

from jules_command.constants import PR_URL_PATTERN
from jules_command.exceptions import PrUrlError

_PR_URL_RE = re.compile(PR_URL_PATTERN)


@dataclass(frozen=True)
class ParsedPrUrl:
    """Components of a GitHub pull request URL."""

    owner: str
    repo: str
    number: int

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


def parse_pr_url(url: str) -> ParsedPrUrl:
    """Split a PR URL into owner, repo and number.

    Trailing path segments (``/files``, ``/commits``) are accepted.

    Raises:
        PrUrlError: If the URL is not a github.com pull request URL.
    """
    match = _PR_URL_RE.match(url.strip()) if url else None
    if not match:
        raise PrUrlError(f"Invalid GitHub PR URL: {url}", url=url)
    owner, repo, number = match.groups()
    return ParsedPrUrl(owner=owner, repo=repo, number=int(number))
