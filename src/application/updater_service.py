import logging

import aiohttp

from src.application.repository_processor import RepositoryProcessor
from src.domain.models import RunStats
from src.domain.usernames import validate_usernames
from src.infrastructure.github_client import GitHubRestClient
from src.infrastructure.pacer import Pacer

logger = logging.getLogger(__name__)


class UsernameUpdaterService:
    """
    Service responsible for orchestrating the username update across every
    repository of the authenticated user.

    Repositories are processed one at a time in listing order, with a fixed
    pause between them, because all requests share one rate-limit budget.
    """

    def __init__(
            self,
            github_client: GitHubRestClient,
            old_username: str,
            new_username: str,
            dry_run: bool = False,
            pacer: Pacer = None
    ):
        self.github_client = github_client
        self.old_username = old_username
        self.new_username = new_username
        self.dry_run = dry_run
        self.pacer = pacer or Pacer()

    async def run(self) -> RunStats:
        """
        Validates the usernames, authenticates, then processes every repository.

        Raises:
            InvalidUsernameException: Before any request, if the usernames are unusable.
            AuthenticationException: If GitHub rejects the token.

        Returns:
            RunStats: Aggregated counters for the whole run.
        """
        validate_usernames(self.old_username, self.new_username)

        if self.dry_run:
            logger.warning("Running in DRY-RUN mode - no changes will be committed.")

        processor = RepositoryProcessor(
            github_client=self.github_client,
            old_username=self.old_username,
            new_username=self.new_username,
            dry_run=self.dry_run,
        )

        async with aiohttp.ClientSession() as session:
            login = await self.github_client.verify_auth(session)
            logger.info(f"Authenticated as {login}.")
            logger.info(f"Replacing: {self.old_username} -> {self.new_username}")

            repos = await self.github_client.list_all_repositories(session)
            stats = RunStats(total_repos=len(repos))
            logger.info(f"Found {len(repos)} repositories.")

            for index, repo in enumerate(repos, start=1):
                report = await processor.process(session, repo, index, len(repos))
                stats.record(report)

                if index < len(repos):
                    await self.pacer.pause("repository")

        self._log_summary(stats)
        return stats

    def _log_summary(self, stats: RunStats) -> None:
        logger.info("-" * 60)
        logger.info("Summary:")
        logger.info(f"  Total repositories: {stats.total_repos}")
        logger.info(f"  Updated: {stats.updated}")
        logger.info(f"  Skipped: {stats.skipped}")
        logger.info(f"  Failed: {stats.failed}")
        logger.info(f"  Total files changed: {stats.files_changed}")
        logger.info(f"  Total replacements: {stats.total_replacements}")
        logger.info("-" * 60)

        if self.dry_run:
            logger.info("This was a dry run. Run without --dry-run to apply changes.")
