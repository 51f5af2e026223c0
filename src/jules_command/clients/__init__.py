"""HTTP clients for the Jules and GitHub APIs."""

from jules_command.clients.github import GitHubClient
from jules_command.clients.jules import JulesClient

__all__ = ["GitHubClient", "JulesClient"]
