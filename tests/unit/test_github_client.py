"""Unit tests for GitHubRestClient using an httpx mock transport."""

from __future__ import annotations

import base64
import datetime as dt
import json
import typing as typ

import httpx
import pytest

from commithabit.errors import AuthenticationError, ExternalApiError
from commithabit.github.client import GitHubRestClient
from commithabit.github.config import GitHubAppConfig
from commithabit.github.models import CommitIdentity

if typ.TYPE_CHECKING:
    import collections.abc as cabc

API = "https://github.test"
BOT = CommitIdentity(name="commithabit[bot]", email="bot@example.test")
SINCE = dt.datetime(2026, 3, 2, tzinfo=dt.UTC)

type Handler = cabc.Callable[[httpx.Request], httpx.Response]


def _client(handler: Handler) -> GitHubRestClient:
    transport = httpx.MockTransport(handler)
    return GitHubRestClient(
        GitHubAppConfig(api_url=API),
        http_client=httpx.AsyncClient(transport=transport),
    )


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


class TestCreateInstallationToken:
    """Tests for the assertion-for-token exchange."""

    @pytest.mark.asyncio
    async def test_returns_token_with_expiry(self) -> None:
        """A 201 response yields a parsed token."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                201, json={"token": "ghs_abc", "expires_at": "2026-03-02T13:00:00Z"}
            )

        token = await _client(handler).create_installation_token(7, "jwt-value")

        assert token.token == "ghs_abc", "expected token from body"
        assert token.expires_at == dt.datetime(2026, 3, 2, 13, tzinfo=dt.UTC), (
            "expected parsed expiry"
        )
        assert seen[0].url.path == "/app/installations/7/access_tokens", (
            "expected the access token endpoint"
        )
        assert seen[0].headers["Authorization"] == "Bearer jwt-value", (
            "assertion should be sent as bearer"
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [403, 404])
    async def test_unknown_installation_is_revoked(self, status: int) -> None:
        """404 or 403 from the exchange means the installation is gone."""
        client = _client(lambda _req: httpx.Response(status, json={"message": "x"}))

        with pytest.raises(AuthenticationError) as excinfo:
            await client.create_installation_token(7, "jwt-value")

        assert excinfo.value.revoked is True, "expected revoked authentication error"

    @pytest.mark.asyncio
    async def test_rejected_assertion_is_not_revoked(self) -> None:
        """401 means our assertion was rejected, not the installation."""
        client = _client(
            lambda _req: httpx.Response(401, json={"message": "Bad credentials"})
        )

        with pytest.raises(AuthenticationError) as excinfo:
            await client.create_installation_token(7, "jwt-value")

        assert excinfo.value.revoked is False, "expected non-revoked error"
        assert "Bad credentials" in excinfo.value.message, "detail should be kept"


class TestErrorMapping:
    """Non-2xx responses and transport failures map onto the taxonomy."""

    @pytest.mark.asyncio
    async def test_rate_limit_with_retry_after(self) -> None:
        """429 with Retry-After is retryable and carries the wait."""
        client = _client(
            lambda _req: httpx.Response(429, headers={"Retry-After": "17"})
        )

        with pytest.raises(ExternalApiError) as excinfo:
            await client.get_file("tok", "octo/reef", "README.md")

        assert excinfo.value.retryable is True, "rate limits are retryable"
        assert excinfo.value.retry_after == 17.0, "expected Retry-After value"

    @pytest.mark.asyncio
    async def test_exhausted_quota_is_rate_limited(self) -> None:
        """403 with zero remaining quota is a rate limit, not a denial."""
        client = _client(
            lambda _req: httpx.Response(403, headers={"X-RateLimit-Remaining": "0"})
        )

        with pytest.raises(ExternalApiError) as excinfo:
            await client.has_commit_since(
                "tok", "octo/reef", author_email=BOT.email, since=SINCE
            )

        assert excinfo.value.code == "GITHUB_001", "expected the rate limit code"

    @pytest.mark.asyncio
    async def test_server_error_is_retryable(self) -> None:
        """5xx responses are retryable."""
        client = _client(lambda _req: httpx.Response(502))

        with pytest.raises(ExternalApiError) as excinfo:
            await client.has_commit_since(
                "tok", "octo/reef", author_email=BOT.email, since=SINCE
            )

        assert excinfo.value.retryable is True, "5xx should be retryable"

    @pytest.mark.asyncio
    async def test_missing_repository_is_gone(self) -> None:
        """404 on the commit listing marks the repository as gone."""
        client = _client(
            lambda _req: httpx.Response(404, json={"message": "Not Found"})
        )

        with pytest.raises(ExternalApiError) as excinfo:
            await client.has_commit_since(
                "tok", "octo/reef", author_email=BOT.email, since=SINCE
            )

        assert excinfo.value.gone is True, "expected gone flag"

    @pytest.mark.asyncio
    async def test_transport_timeout(self) -> None:
        """httpx timeouts become retryable external errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ExternalApiError) as excinfo:
            await _client(handler).get_file("tok", "octo/reef", "README.md")

        assert excinfo.value.code == "GITHUB_005", "expected the timeout code"


class TestHasCommitSince:
    """Tests for detecting today's keep-alive commit."""

    @pytest.mark.asyncio
    async def test_matches_author_email(self) -> None:
        """A listed commit by the bot email counts."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json=[
                    {
                        "sha": "abc",
                        "commit": {
                            "message": "chore: format README.md",
                            "author": {"email": "BOT@example.test"},
                        },
                    }
                ],
            )

        found = await _client(handler).has_commit_since(
            "tok", "octo/reef", author_email=BOT.email, since=SINCE
        )

        assert found is True, "expected case-insensitive email match"
        assert seen[0].url.params["since"] == "2026-03-02T00:00:00Z", (
            "since should be sent as UTC with Z suffix"
        )

    @pytest.mark.asyncio
    async def test_other_authors_do_not_count(self) -> None:
        """Commits by someone else are ignored."""
        body = [{"sha": "abc", "commit": {"author": {"email": "human@example.test"}}}]
        client = _client(lambda _req: httpx.Response(200, json=body))

        found = await client.has_commit_since(
            "tok", "octo/reef", author_email=BOT.email, since=SINCE
        )

        assert found is False, "expected no match for another author"

    @pytest.mark.asyncio
    async def test_empty_repository(self) -> None:
        """GitHub's 409 for an empty repository means no commit."""
        client = _client(lambda _req: httpx.Response(409))

        found = await client.has_commit_since(
            "tok", "octo/reef", author_email=BOT.email, since=SINCE
        )

        assert found is False, "an empty repository has no commit today"


class TestContents:
    """Tests for reading and conditionally writing the target file."""

    @pytest.mark.asyncio
    async def test_get_file_decodes_base64(self) -> None:
        """Content is base64-decoded and the blob sha returned."""
        client = _client(
            lambda _req: httpx.Response(
                200,
                json={
                    "type": "file",
                    "encoding": "base64",
                    "sha": "blob1",
                    "content": _b64("# reef\n"),
                },
            )
        )

        current = await client.get_file("tok", "octo/reef", "README.md")

        assert current.content == "# reef\n", "expected decoded text"
        assert current.sha == "blob1", "expected blob sha"

    @pytest.mark.asyncio
    async def test_get_file_missing(self) -> None:
        """A missing target file is not treated as a gone repository."""
        client = _client(lambda _req: httpx.Response(404))

        with pytest.raises(ExternalApiError) as excinfo:
            await client.get_file("tok", "octo/reef", "README.md")

        assert excinfo.value.gone is False, "missing file must not deactivate"

    @pytest.mark.asyncio
    async def test_get_file_rejects_directories(self) -> None:
        """A directory at the target path is a shape error."""
        client = _client(
            lambda _req: httpx.Response(200, json={"type": "dir", "sha": "tree1"})
        )

        with pytest.raises(ExternalApiError, match="not a regular file"):
            await client.get_file("tok", "octo/reef", "README.md")

    @pytest.mark.asyncio
    async def test_put_file_sends_sha_and_identity(self) -> None:
        """The write is conditioned on the blob sha and signed by the bot."""
        seen: list[dict[str, typ.Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"commit": {"sha": "c0ffee"}})

        result = await _client(handler).put_file(
            "tok",
            "octo/reef",
            path="README.md",
            content="# reef\n\u200b",
            sha="blob1",
            message="chore: format README.md",
            identity=BOT,
        )

        assert result.sha == "c0ffee", "expected the new commit sha"
        payload = seen[0]
        assert payload["sha"] == "blob1", "expected the precondition sha"
        assert payload["author"] == BOT.as_payload(), "expected bot author"
        assert base64.b64decode(payload["content"]).decode() == "# reef\n\u200b", (
            "expected base64 encoded toggled content"
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "body"),
        [
            (409, {"message": "README.md does not match blob1"}),
            (422, {"message": "sha wasn't supplied"}),
        ],
    )
    async def test_put_file_precondition_failure(
        self, status: int, body: dict[str, str]
    ) -> None:
        """A stale sha is reported as a precondition failure."""
        client = _client(lambda _req: httpx.Response(status, json=body))

        with pytest.raises(ExternalApiError) as excinfo:
            await client.put_file(
                "tok",
                "octo/reef",
                path="README.md",
                content="x",
                sha="stale",
                message="m",
                identity=BOT,
            )

        assert excinfo.value.precondition_failed is True, "expected precondition flag"
