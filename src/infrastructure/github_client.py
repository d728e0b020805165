import aiohttp
import asyncio
import logging
import random
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from src.domain.exceptions import (
    AuthenticationException,
    ConflictException,
    RateLimitExceededException,
    TransportException,
    UpdaterException,
)
from src.domain.models import CommitRecord, FileContent, RepositoryRef, TreeEntry
from src.infrastructure.acl import GitHubTranslator
from src.infrastructure.pacer import Pacer

logger = logging.getLogger(__name__)

API_URL = "https://api.github.com"
PAGE_SIZE = 100
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=60, connect=10)
MAX_RETRIES = 5
# Extra seconds to wait past x-ratelimit-reset before retrying
RATE_LIMIT_MARGIN = 1.0
RATE_LIMIT_STATUSES = {403, 429}
SERVER_ERRORS = {500, 502, 503, 504}


def _header_float(headers, name: str) -> Optional[float]:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class GitHubRestClient:
    """
    Client for the GitHub REST API.
    Handles authentication, pagination, pacing, and rate limit recovery.
    Calls are issued one at a time; every wait goes through the Pacer.
    """

    def __init__(self, token: str, pacer: Optional[Pacer] = None):
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": "github-username-updater",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        self.api_url = API_URL
        self.pacer = pacer or Pacer()

    async def verify_auth(self, session: aiohttp.ClientSession) -> str:
        """
        Confirms the token is accepted and returns the authenticated login.

        Raises:
            AuthenticationException: If the token is rejected or the lookup fails.
        """
        try:
            data = await self._request(session, "GET", "/user")
        except AuthenticationException:
            raise
        except UpdaterException as e:
            raise AuthenticationException(f"Authentication failed: {e}") from e

        login = data.get("login") if isinstance(data, dict) else None
        if not login:
            raise AuthenticationException("Authentication failed: no login in /user response.")
        return login

    async def list_all_repositories(self, session: aiohttp.ClientSession) -> List[RepositoryRef]:
        """
        Lists every repository owned by the authenticated user, most recently
        updated first. Keeps paging while GitHub returns full pages.
        """
        repos: List[RepositoryRef] = []
        page = 1

        while True:
            data = await self._request(
                session,
                "GET",
                "/user/repos",
                params={
                    "per_page": PAGE_SIZE,
                    "page": page,
                    "affiliation": "owner",
                    "sort": "updated",
                    "direction": "desc",
                },
            )
            items = data or []
            repos.extend(GitHubTranslator.to_repository(item) for item in items)
            logger.debug(f"Fetched repository page {page} ({len(items)} items).")

            if len(items) < PAGE_SIZE:
                break

            page += 1
            await self.pacer.pause("listing")

        return repos

    async def list_tree(self, session: aiohttp.ClientSession, owner: str, repo_name: str) -> List[TreeEntry]:
        """Resolves the default branch, then returns the blobs of its recursive tree."""
        repo_data = await self._request(session, "GET", f"/repos/{owner}/{repo_name}")
        branch = (repo_data or {}).get("default_branch") or "main"

        try:
            tree = await self._request(
                session,
                "GET",
                f"/repos/{owner}/{repo_name}/git/trees/{quote(branch, safe='')}",
                params={"recursive": "1"},
            )
        except TransportException as e:
            # GitHub answers 409 for a repository without any commits
            if e.status == 409:
                logger.info(f"{owner}/{repo_name} has no commits on {branch}.")
                return []
            raise

        if tree.get("truncated"):
            logger.warning(f"Tree for {owner}/{repo_name} was truncated by GitHub; some files will not be scanned.")

        return GitHubTranslator.to_tree_entries(tree)

    async def read_file(
        self, session: aiohttp.ClientSession, owner: str, repo_name: str, path: str
    ) -> Optional[FileContent]:
        """
        Fetches and decodes a single file.

        Returns:
            FileContent, or None when the file is not readable as UTF-8 text.
        """
        try:
            data = await self._request(session, "GET", self._contents_endpoint(owner, repo_name, path))
        finally:
            await self.pacer.pause("file_read")

        content = GitHubTranslator.to_file_content(data)
        if content is not None and not content.path:
            content = content.model_copy(update={"path": path})
        return content

    async def write_file(
        self,
        session: aiohttp.ClientSession,
        owner: str,
        repo_name: str,
        path: str,
        new_content: str,
        sha: str,
        message: str,
    ) -> CommitRecord:
        """
        Commits new file content, guarded by the sha it was read at.

        Raises:
            ConflictException: If the file changed on the server since it was read.
            TransportException: For any other failure.
        """
        payload: Dict[str, Any] = {
            "message": message,
            "content": GitHubTranslator.encode_content(new_content),
            "sha": sha,
        }
        try:
            data = await self._request(
                session, "PUT", self._contents_endpoint(owner, repo_name, path), json=payload, idempotent=False
            )
        except TransportException as e:
            if e.status == 409:
                raise ConflictException(path) from e
            raise
        finally:
            await self.pacer.pause("commit")

        return GitHubTranslator.to_commit_record(data or {})

    @staticmethod
    def _contents_endpoint(owner: str, repo_name: str, path: str) -> str:
        return f"/repos/{owner}/{repo_name}/contents/{quote(path)}"

    async def _request(
        self,
        session: aiohttp.ClientSession,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        idempotent: bool = True,
    ) -> Any:
        """
        Performs one API call, retrying after rate-limit waits, server errors,
        and network failures. Returns the decoded JSON body.

        Non-idempotent calls are only retried after a rate-limit rejection:
        a server error or dropped connection may come after GitHub already
        applied the change, so those fail immediately.
        """
        url = f"{self.api_url}{endpoint}"

        for attempt in range(1, MAX_RETRIES + 1):
            final_attempt = attempt == MAX_RETRIES
            try:
                async with session.request(
                    method, url, params=params, json=json, headers=self.headers, timeout=REQUEST_TIMEOUT
                ) as response:
                    if response.status in RATE_LIMIT_STATUSES and self._is_rate_limited(response):
                        if final_attempt:
                            raise RateLimitExceededException(
                                reset_at=_header_float(response.headers, "x-ratelimit-reset"),
                                status=response.status,
                            )
                        await self._wait_for_quota(response, attempt)
                        continue

                    if response.status in SERVER_ERRORS:
                        if not idempotent:
                            raise TransportException(
                                f"{method} {endpoint} failed with HTTP {response.status}; "
                                "the change may or may not have been applied.",
                                status=response.status,
                            )
                        if final_attempt:
                            raise TransportException(
                                f"{method} {endpoint} failed with HTTP {response.status} after {MAX_RETRIES} attempts.",
                                status=response.status,
                            )
                        await self._backoff(attempt, f"Server error ({response.status}) on {method} {endpoint}")
                        continue

                    if response.status >= 400:
                        raise await self._translate_error(response, method, endpoint)

                    if response.status == 204:
                        return None
                    try:
                        return await response.json()
                    except (aiohttp.ContentTypeError, ValueError) as e:
                        raise TransportException(
                            f"{method} {endpoint} returned an unreadable body: {e}",
                            status=response.status,
                        ) from e

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if not idempotent:
                    raise TransportException(
                        f"{method} {endpoint} failed: {e}; the change may or may not have been applied."
                    ) from e
                if final_attempt:
                    raise TransportException(
                        f"{method} {endpoint} failed after {MAX_RETRIES} attempts: {e}"
                    ) from e
                await self._backoff(attempt, f"Request {method} {endpoint} failed: {e}")

        raise TransportException(f"{method} {endpoint} failed after {MAX_RETRIES} attempts.")

    @staticmethod
    def _is_rate_limited(response) -> bool:
        if response.status == 429:
            return True
        return (
            response.headers.get("x-ratelimit-remaining") == "0"
            or response.headers.get("Retry-After") is not None
        )

    async def _wait_for_quota(self, response, attempt: int) -> None:
        """Sleeps until the quota resets (primary limit) or for Retry-After (secondary limit)."""
        reset_at = _header_float(response.headers, "x-ratelimit-reset")
        retry_after = _header_float(response.headers, "Retry-After")

        if response.headers.get("x-ratelimit-remaining") == "0" and reset_at is not None:
            wait_seconds = max(reset_at - self.pacer.now(), 0.0) + RATE_LIMIT_MARGIN
            logger.warning(
                f"Rate limit exceeded ({response.status}). "
                f"Waiting {wait_seconds:.0f}s for quota reset (attempt {attempt}/{MAX_RETRIES})..."
            )
            await self.pacer.sleep(wait_seconds)
        elif retry_after is not None:
            logger.warning(f"Secondary rate limit ({response.status}). Sleeping {retry_after:.0f}s...")
            await self.pacer.sleep(retry_after)
        else:
            await self._backoff(attempt, f"Rate limited ({response.status}) without reset information")

    async def _backoff(self, attempt: int, reason: str) -> None:
        sleep_time = (2 ** (attempt - 1)) + random.uniform(0, 1)
        logger.warning(f"{reason}. Retrying in {sleep_time:.1f}s (attempt {attempt}/{MAX_RETRIES})...")
        await self.pacer.sleep(sleep_time)

    @staticmethod
    async def _translate_error(response, method: str, endpoint: str) -> UpdaterException:
        try:
            body = await response.json()
            detail = body.get("message", "") if isinstance(body, dict) else ""
        except (aiohttp.ContentTypeError, ValueError):
            detail = ""

        message = f"{method} {endpoint} returned HTTP {response.status}"
        if detail:
            message = f"{message}: {detail}"

        if response.status == 401:
            return AuthenticationException(message)
        return TransportException(message, status=response.status)
