import logging
from typing import List

import aiohttp

from src.application.file_classifier import filter_eligible
from src.application.replacer import replace_username
from src.domain.exceptions import UpdaterException
from src.domain.models import PendingEdit, RepositoryOutcome, RepositoryRef, RepositoryReport
from src.infrastructure.github_client import GitHubRestClient

logger = logging.getLogger(__name__)

COMMIT_MESSAGE_TEMPLATE = "chore: updated username from {old} to {new}"


class RepositoryProcessor:
    """
    Runs one repository through scan -> filter -> per-file replace -> commit.

    Failures are contained here: a file that cannot be read is skipped, and a
    repository that cannot be scanned or committed is reported as failed.
    """

    def __init__(
            self,
            github_client: GitHubRestClient,
            old_username: str,
            new_username: str,
            dry_run: bool = False
    ):
        self.github_client = github_client
        self.old_username = old_username
        self.new_username = new_username
        self.dry_run = dry_run
        self.commit_message = COMMIT_MESSAGE_TEMPLATE.format(old=old_username, new=new_username)

    async def process(
        self, session: aiohttp.ClientSession, repo: RepositoryRef, index: int = 1, total: int = 1
    ) -> RepositoryReport:
        logger.info(f"[{index}/{total}] {repo.full_name}")

        if repo.archived:
            logger.info("Skipped (archived repository).")
            return RepositoryReport(full_name=repo.full_name, outcome=RepositoryOutcome.ARCHIVED)

        try:
            tree = await self.github_client.list_tree(session, repo.owner, repo.name)
        except (UpdaterException, ValueError) as e:
            logger.error(f"Failed to scan {repo.full_name}: {e}")
            return RepositoryReport(full_name=repo.full_name, outcome=RepositoryOutcome.FAILED, error=str(e))

        eligible = filter_eligible(tree)
        if not eligible:
            logger.info("No processable files found.")
            return RepositoryReport(full_name=repo.full_name, outcome=RepositoryOutcome.NO_ELIGIBLE_FILES)

        logger.info(f"Found {len(eligible)} processable files.")

        edits: List[PendingEdit] = []
        files_skipped = 0
        file_errors = 0

        for entry in eligible:
            try:
                file_content = await self.github_client.read_file(session, repo.owner, repo.name, entry.path)
            except (UpdaterException, ValueError) as e:
                logger.error(f"Failed to process {entry.path}: {e}")
                file_errors += 1
                continue

            if file_content is None:
                logger.info(f"  o {entry.path} (unreadable, skipped)")
                files_skipped += 1
                continue

            result = replace_username(file_content.content, self.old_username, self.new_username)
            if result.count == 0:
                logger.info(f"  o {entry.path} (no changes)")
                files_skipped += 1
                continue

            plural = "s" if result.count > 1 else ""
            logger.info(f"  -> {entry.path} ({result.count} replacement{plural})")
            edits.append(
                PendingEdit(
                    path=entry.path,
                    sha=file_content.sha,
                    new_content=result.new_content,
                    count=result.count,
                )
            )

        if not edits:
            logger.info("No changes needed.")
            return RepositoryReport(
                full_name=repo.full_name,
                outcome=RepositoryOutcome.NO_CHANGES,
                files_skipped=files_skipped,
                file_errors=file_errors,
            )

        if self.dry_run:
            logger.info(f"Would commit {len(edits)} file(s) (dry-run).")
            return RepositoryReport(
                full_name=repo.full_name,
                outcome=RepositoryOutcome.DRY_RUN,
                files_changed=len(edits),
                replacements=sum(edit.count for edit in edits),
                files_skipped=files_skipped,
                file_errors=file_errors,
            )

        return await self._commit(session, repo, edits, files_skipped, file_errors)

    async def _commit(
        self,
        session: aiohttp.ClientSession,
        repo: RepositoryRef,
        edits: List[PendingEdit],
        files_skipped: int,
        file_errors: int,
    ) -> RepositoryReport:
        """
        Writes each staged edit in order. Stops at the first failed write;
        files committed before it stay committed.
        """
        committed: List[PendingEdit] = []

        for edit in edits:
            try:
                commit = await self.github_client.write_file(
                    session,
                    repo.owner,
                    repo.name,
                    edit.path,
                    edit.new_content,
                    edit.sha,
                    self.commit_message,
                )
            except (UpdaterException, ValueError) as e:
                logger.error(
                    f"Failed to commit {edit.path} in {repo.full_name}: {e} "
                    f"({len(committed)}/{len(edits)} file(s) committed before the failure)"
                )
                return RepositoryReport(
                    full_name=repo.full_name,
                    outcome=RepositoryOutcome.FAILED,
                    files_changed=len(committed),
                    replacements=sum(item.count for item in committed),
                    files_skipped=files_skipped,
                    file_errors=file_errors,
                    error=str(e),
                )

            logger.debug(f"Committed {edit.path} as {commit.sha}.")
            committed.append(edit)

        logger.info(f"Committed {len(committed)} file(s).")
        return RepositoryReport(
            full_name=repo.full_name,
            outcome=RepositoryOutcome.COMMITTED,
            files_changed=len(committed),
            replacements=sum(edit.count for edit in committed),
            files_skipped=files_skipped,
            file_errors=file_errors,
        )
