"""Service wiring shared by the CLI and the MCP server."""

import logging
from dataclasses import dataclass
from pathlib import Path

from jules_command.clients.github import GitHubClient
from jules_command.clients.jules import JulesClient
from jules_command.config import JulesCommandConfig
from jules_command.services.auto_merge import AutoMergeEvaluator
from jules_command.services.complexity_scorer import ComplexityScorer
from jules_command.services.poll_manager import PollManager
from jules_command.services.pr_sync import PrSyncService
from jules_command.services.stall_detector import StallDetector
from jules_command.store.core import CommandStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceContext:
    """Configured store, engine components and API clients.

    API clients are None when their credentials are not configured. Without
    a Jules client polls evaluate stored data only; without a GitHub client
    PR sync and merging are unavailable.
    """

    config: JulesCommandConfig
    store: CommandStore
    stall_detector: StallDetector
    scorer: ComplexityScorer
    evaluator: AutoMergeEvaluator
    jules: JulesClient | None = None
    github: GitHubClient | None = None
    pr_sync: PrSyncService | None = None

    def poll_manager(self, sync_prs: bool = True) -> PollManager:
        return PollManager(
            self.store,
            self.stall_detector,
            delay_ms=self.config.polling.delay_between_sessions_ms,
            jules=self.jules,
            pr_sync=self.pr_sync if sync_prs else None,
            activity_window=self.config.polling.activity_window,
        )

    def close(self) -> None:
        for client in (self.jules, self.github):
            if client is not None:
                client.close()
        self.store.close()


def build_context(config: JulesCommandConfig, db_path: Path | None = None) -> ServiceContext:
    """Build the service graph from configuration.

    Args:
        config: Loaded configuration.
        db_path: Overrides ``config.database_path`` when given.

    Raises:
        StoreError: If the database cannot be opened.
    """
    store = CommandStore(db_path or Path(config.database_path))
    scorer = ComplexityScorer(config.complexity)

    jules = None
    if config.jules_api_key:
        jules = JulesClient(config.jules_api_key, base_url=config.jules_base_url)
    else:
        logger.info("JULES_API_KEY not set; polling will use stored session data only")

    github = pr_sync = None
    if config.github_token:
        github = GitHubClient(config.github_token, base_url=config.github_base_url)
        pr_sync = PrSyncService(store, github, scorer)
    else:
        logger.info("GITHUB_TOKEN not set; PR sync and merging are disabled")

    return ServiceContext(
        config=config,
        store=store,
        stall_detector=StallDetector(config.stall),
        scorer=scorer,
        evaluator=AutoMergeEvaluator(config.auto_merge),
        jules=jules,
        github=github,
        pr_sync=pr_sync,
    )
