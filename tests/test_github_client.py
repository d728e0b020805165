import base64
import json
import unittest
from unittest.mock import AsyncMock, MagicMock

import aiohttp

from src.domain.exceptions import (
    AuthenticationException,
    ConflictException,
    RateLimitExceededException,
    TransportException,
)
from src.infrastructure.github_client import MAX_RETRIES, PAGE_SIZE, RATE_LIMIT_MARGIN, GitHubRestClient
from src.infrastructure.pacer import Pacer


class _RecordingPacer(Pacer):
    """Pacer that never really sleeps and keeps track of what it was asked to do."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.sleeps = []
        self.pauses = []

        async def _sleep(seconds):
            self.sleeps.append(seconds)

        super().__init__(sleep=_sleep, clock=lambda: now)

    async def pause(self, channel: str) -> None:
        self.pauses.append(channel)


def _response(status, payload=None, headers=None):
    resp = AsyncMock()
    resp.status = status
    resp.headers = headers or {}
    resp.json = AsyncMock(return_value=payload)
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


def _session(*responses):
    session = AsyncMock()
    session.request = MagicMock(side_effect=list(responses))
    return session


def _repo_item(i):
    return {"name": f"repo-{i}", "owner": {"login": "alice"}, "archived": False, "default_branch": "main"}


class TestGitHubRestClient(unittest.TestCase):
    def test_headers_are_dict(self) -> None:
        token = "test-token"
        client = GitHubRestClient(token=token)

        self.assertIsInstance(client.headers, dict)
        self.assertEqual(client.headers["Authorization"], f"Bearer {token}")

    def test_headers_include_user_agent(self) -> None:
        client = GitHubRestClient(token="t")
        self.assertIn("User-Agent", client.headers)
        self.assertIn("Accept", client.headers)


class TestAuthentication(unittest.IsolatedAsyncioTestCase):
    async def test_verify_auth_returns_login(self) -> None:
        client = GitHubRestClient(token="t", pacer=_RecordingPacer())
        session = _session(_response(200, {"login": "alice"}))

        self.assertEqual(await client.verify_auth(session), "alice")

    async def test_bad_credentials_raise_authentication_error(self) -> None:
        client = GitHubRestClient(token="bad", pacer=_RecordingPacer())
        session = _session(_response(401, {"message": "Bad credentials"}))

        with self.assertRaises(AuthenticationException):
            await client.verify_auth(session)

    async def test_other_failures_are_reported_as_authentication_errors(self) -> None:
        client = GitHubRestClient(token="t", pacer=_RecordingPacer())
        session = _session(_response(404, {"message": "Not Found"}))

        with self.assertRaises(AuthenticationException):
            await client.verify_auth(session)


class TestRepositoryListing(unittest.IsolatedAsyncioTestCase):
    async def test_keeps_paging_while_pages_are_full(self) -> None:
        pacer = _RecordingPacer()
        client = GitHubRestClient(token="t", pacer=pacer)
        full_page = [_repo_item(i) for i in range(PAGE_SIZE)]
        last_page = [_repo_item(i) for i in range(PAGE_SIZE, PAGE_SIZE + 3)]
        session = _session(_response(200, full_page), _response(200, last_page))

        repos = await client.list_all_repositories(session)

        self.assertEqual(len(repos), PAGE_SIZE + 3)
        self.assertEqual(session.request.call_count, 2)
        self.assertEqual(pacer.pauses, ["listing"])

        first_params = session.request.call_args_list[0].kwargs["params"]
        second_params = session.request.call_args_list[1].kwargs["params"]
        self.assertEqual(first_params["page"], 1)
        self.assertEqual(second_params["page"], 2)
        self.assertEqual(first_params["sort"], "updated")
        self.assertEqual(first_params["direction"], "desc")

    async def test_rate_limit_waits_for_reset_then_retries(self) -> None:
        """A 403 with no remaining quota sleeps until the reset time and retries the same call."""
        pacer = _RecordingPacer(now=1_000.0)
        client = GitHubRestClient(token="t", pacer=pacer)
        limited = _response(403, {"message": "API rate limit exceeded"}, {
            "x-ratelimit-remaining": "0",
            "x-ratelimit-reset": "1060",
        })
        session = _session(limited, _response(200, [_repo_item(1)]))

        repos = await client.list_all_repositories(session)

        self.assertEqual(len(repos), 1)
        self.assertEqual(repos[0].name, "repo-1")
        self.assertEqual(session.request.call_count, 2)
        self.assertEqual(pacer.sleeps, [60.0 + RATE_LIMIT_MARGIN])
        self.assertGreaterEqual(pacer.sleeps[0], 60.0)

    async def test_secondary_rate_limit_respects_retry_after(self) -> None:
        pacer = _RecordingPacer()
        client = GitHubRestClient(token="t", pacer=pacer)
        session = _session(
            _response(429, None, {"Retry-After": "7"}),
            _response(200, []),
        )

        repos = await client.list_all_repositories(session)

        self.assertEqual(repos, [])
        self.assertEqual(pacer.sleeps, [7.0])

    async def test_rate_limit_gives_up_after_max_retries(self) -> None:
        pacer = _RecordingPacer()
        client = GitHubRestClient(token="t", pacer=pacer)
        headers = {"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1010"}
        session = _session(*[_response(403, None, headers) for _ in range(MAX_RETRIES)])

        with self.assertRaises(RateLimitExceededException) as ctx:
            await client.list_all_repositories(session)

        self.assertEqual(ctx.exception.reset_at, 1010.0)
        self.assertEqual(session.request.call_count, MAX_RETRIES)
        self.assertEqual(len(pacer.sleeps), MAX_RETRIES - 1)

    async def test_plain_forbidden_is_not_retried(self) -> None:
        client = GitHubRestClient(token="t", pacer=_RecordingPacer())
        session = _session(_response(403, {"message": "Resource not accessible"}))

        with self.assertRaises(TransportException) as ctx:
            await client.list_all_repositories(session)

        self.assertEqual(ctx.exception.status, 403)
        self.assertEqual(session.request.call_count, 1)

    async def test_server_errors_are_retried_with_backoff(self) -> None:
        pacer = _RecordingPacer()
        client = GitHubRestClient(token="t", pacer=pacer)
        session = _session(_response(502), _response(200, [_repo_item(1)]))

        repos = await client.list_all_repositories(session)

        self.assertEqual(len(repos), 1)
        self.assertEqual(len(pacer.sleeps), 1)


class TestTreeAndContents(unittest.IsolatedAsyncioTestCase):
    async def test_list_tree_uses_default_branch_and_keeps_blobs(self) -> None:
        client = GitHubRestClient(token="t", pacer=_RecordingPacer())
        session = _session(
            _response(200, {"default_branch": "develop"}),
            _response(200, {"tree": [
                {"path": "README.md", "type": "blob"},
                {"path": "docs", "type": "tree"},
                {"path": "docs/guide.md", "type": "blob"},
            ]}),
        )

        entries = await client.list_tree(session, "alice", "site")

        self.assertEqual([e.path for e in entries], ["README.md", "docs/guide.md"])
        tree_url = session.request.call_args_list[1].args[1]
        self.assertTrue(tree_url.endswith("/repos/alice/site/git/trees/develop"))
        self.assertEqual(session.request.call_args_list[1].kwargs["params"], {"recursive": "1"})

    async def test_empty_repository_has_no_entries(self) -> None:
        client = GitHubRestClient(token="t", pacer=_RecordingPacer())
        session = _session(
            _response(200, {"default_branch": "main"}),
            _response(409, {"message": "Git Repository is empty."}),
        )

        self.assertEqual(await client.list_tree(session, "alice", "empty"), [])

    async def test_read_file_decodes_base64(self) -> None:
        pacer = _RecordingPacer()
        client = GitHubRestClient(token="t", pacer=pacer)
        encoded = base64.b64encode("Hello alice".encode("utf-8")).decode("ascii")
        session = _session(_response(200, {
            "type": "file", "path": "README.md", "sha": "abc123", "encoding": "base64", "content": encoded,
        }))

        content = await client.read_file(session, "alice", "site", "README.md")

        self.assertEqual(content.content, "Hello alice")
        self.assertEqual(content.sha, "abc123")
        self.assertEqual(pacer.pauses, ["file_read"])

    async def test_read_file_with_other_encoding_is_absent(self) -> None:
        client = GitHubRestClient(token="t", pacer=_RecordingPacer())
        session = _session(_response(200, {
            "type": "file", "path": "big.json", "sha": "abc123", "encoding": "none", "content": "",
        }))

        self.assertIsNone(await client.read_file(session, "alice", "site", "big.json"))

    async def test_write_file_sends_sha_and_base64_content(self) -> None:
        pacer = _RecordingPacer()
        client = GitHubRestClient(token="t", pacer=pacer)
        session = _session(_response(200, {"commit": {"sha": "c0ffee", "message": "msg"}}))

        record = await client.write_file(session, "alice", "site", "README.md", "Hello bob", "abc123", "msg")

        self.assertEqual(record.sha, "c0ffee")
        call = session.request.call_args
        self.assertEqual(call.args[0], "PUT")
        self.assertEqual(call.kwargs["json"]["sha"], "abc123")
        self.assertEqual(base64.b64decode(call.kwargs["json"]["content"]).decode("utf-8"), "Hello bob")
        self.assertEqual(pacer.pauses, ["commit"])

    async def test_write_file_with_stale_sha_raises_conflict(self) -> None:
        client = GitHubRestClient(token="t", pacer=_RecordingPacer())
        session = _session(_response(409, {"message": "README.md does not match abc123"}))

        with self.assertRaises(ConflictException) as ctx:
            await client.write_file(session, "alice", "site", "README.md", "x", "abc123", "msg")

        self.assertEqual(ctx.exception.path, "README.md")


class TestCommitFailures(unittest.IsolatedAsyncioTestCase):
    async def test_unreadable_commit_response_raises_transport_error(self) -> None:
        client = GitHubRestClient(token="t", pacer=_RecordingPacer())
        created = _response(201)
        created.json = AsyncMock(side_effect=json.JSONDecodeError("Expecting value", "", 0))
        session = _session(created)

        with self.assertRaises(TransportException) as ctx:
            await client.write_file(session, "alice", "site", "README.md", "x", "abc123", "msg")

        self.assertEqual(ctx.exception.status, 201)

    async def test_commit_is_not_retried_after_connection_error(self) -> None:
        pacer = _RecordingPacer()
        client = GitHubRestClient(token="t", pacer=pacer)
        session = AsyncMock()
        session.request = MagicMock(side_effect=aiohttp.ServerDisconnectedError())

        with self.assertRaises(TransportException) as ctx:
            await client.write_file(session, "alice", "site", "README.md", "x", "abc123", "msg")

        self.assertNotIsInstance(ctx.exception, ConflictException)
        self.assertEqual(session.request.call_count, 1)
        self.assertEqual(pacer.sleeps, [])

    async def test_commit_is_not_retried_after_server_error(self) -> None:
        client = GitHubRestClient(token="t", pacer=_RecordingPacer())
        session = _session(_response(502), _response(409, {"message": "does not match"}))

        with self.assertRaises(TransportException) as ctx:
            await client.write_file(session, "alice", "site", "README.md", "x", "abc123", "msg")

        self.assertEqual(ctx.exception.status, 502)
        self.assertEqual(session.request.call_count, 1)

    async def test_commit_is_retried_after_rate_limit(self) -> None:
        client = GitHubRestClient(token="t", pacer=_RecordingPacer())
        session = _session(
            _response(403, None, {"Retry-After": "3"}),
            _response(200, {"commit": {"sha": "c0ffee"}}),
        )

        record = await client.write_file(session, "alice", "site", "README.md", "x", "abc123", "msg")

        self.assertEqual(record.sha, "c0ffee")
        self.assertEqual(session.request.call_count, 2)
