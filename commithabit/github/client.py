"""GitHub REST client for installation tokens, commits and file contents.

Every failure is raised as a classified error from
:mod:`commithabit.errors` so callers can decide between retrying,
re-issuing a token and deactivating the installation.
"""

from __future__ import annotations

import base64
import binascii
import datetime as dt
import typing as typ
import urllib.parse

import httpx
import msgspec

from commithabit.common.time import parse_iso_datetime
from commithabit.errors import AuthenticationError, ExternalApiError

from .models import (
    AccessTokenResponse,
    CommitListItem,
    CommitResult,
    ContentResponse,
    ContentWriteResponse,
    FileContent,
    InstallationToken,
)

if typ.TYPE_CHECKING:
    from .config import GitHubAppConfig
    from .models import CommitIdentity

_ACCEPT = "application/vnd.github+json"
_API_VERSION = "2022-11-28"
_HTTP_ERROR_THRESHOLD = 400
_SERVER_ERROR_THRESHOLD = 500
_COMMITS_PAGE_SIZE = 100


class InstallationTokenIssuer(typ.Protocol):
    """Exchanges an app assertion for an installation token."""

    async def create_installation_token(
        self, installation_id: int, app_assertion: str
    ) -> InstallationToken:
        """Return a fresh installation token."""
        ...


class RepositoryContentsApi(typ.Protocol):
    """Repository operations needed by the daily commit workflow."""

    async def has_commit_since(
        self,
        token: str,
        repo_full_name: str,
        *,
        author_email: str,
        since: dt.datetime,
    ) -> bool:
        """Return True when *author_email* committed to the default branch."""
        ...

    async def get_file(self, token: str, repo_full_name: str, path: str) -> FileContent:
        """Return the decoded file and its blob sha from the default branch."""
        ...

    async def put_file(  # noqa: PLR0913
        self,
        token: str,
        repo_full_name: str,
        *,
        path: str,
        content: str,
        sha: str,
        message: str,
        identity: CommitIdentity,
    ) -> CommitResult:
        """Write *content* if the blob still has *sha*; return the commit."""
        ...


def _retry_after(response: httpx.Response) -> float | None:
    """Return the wait GitHub asked for, in seconds, if it gave one."""
    raw = response.headers.get("Retry-After")
    if raw and raw.strip().isdigit():
        return float(raw.strip())
    reset = response.headers.get("X-RateLimit-Reset")
    if reset and reset.strip().isdigit():
        wait = int(reset.strip()) - dt.datetime.now(dt.UTC).timestamp()
        return max(wait, 0.0)
    return None


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        return str(payload.get("message", ""))
    return ""


def _is_rate_limited(response: httpx.Response) -> bool:
    return response.status_code == httpx.codes.TOO_MANY_REQUESTS or (
        response.status_code == httpx.codes.FORBIDDEN
        and response.headers.get("X-RateLimit-Remaining") == "0"
    )


def _raise_for_status(response: httpx.Response, resource: str) -> None:
    """Translate a non-2xx response into the error taxonomy."""
    status = response.status_code
    if status < _HTTP_ERROR_THRESHOLD:
        return
    if _is_rate_limited(response):
        raise ExternalApiError.rate_limited(_retry_after(response))
    detail = _error_detail(response)
    if status == httpx.codes.UNAUTHORIZED:
        raise AuthenticationError.invalid_credential(detail or resource)
    if status == httpx.codes.FORBIDDEN:
        raise ExternalApiError.permission_denied(detail or resource)
    if status in {httpx.codes.NOT_FOUND, httpx.codes.GONE}:
        raise ExternalApiError.not_found(resource, status=status)
    if status >= _SERVER_ERROR_THRESHOLD:
        raise ExternalApiError.server_error(status)
    raise ExternalApiError.http_error(status, detail)


def _decode[T](response: httpx.Response, struct: type[T]) -> T:
    try:
        return msgspec.json.decode(response.content, type=struct)
    except msgspec.DecodeError as exc:
        raise ExternalApiError.http_error(
            response.status_code, f"unexpected response shape: {exc}"
        ) from exc


def _matches_identity(item: CommitListItem, email: str) -> bool:
    wanted = email.casefold()
    for signature in (item.commit.author, item.commit.committer):
        if signature is not None and (signature.email or "").casefold() == wanted:
            return True
    return False


class GitHubRestClient:
    """httpx implementation of the GitHub App REST operations.

    Implements both :class:`InstallationTokenIssuer` and
    :class:`RepositoryContentsApi`.
    """

    def __init__(
        self,
        config: GitHubAppConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the client with the provided API configuration."""
        self._config = config
        self._base_url = config.api_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout_s,
            headers={
                "User-Agent": config.user_agent,
                "Accept": _ACCEPT,
                "X-GitHub-Api-Version": _API_VERSION,
            },
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        bearer: str,
        params: dict[str, str | int] | None = None,
        json: dict[str, typ.Any] | None = None,
    ) -> httpx.Response:
        """Send one request, mapping transport failures to ``ExternalApiError``."""
        try:
            return await self._client.request(
                method,
                f"{self._base_url}{path}",
                params=params,
                json=json,
                headers={
                    "Authorization": f"Bearer {bearer}",
                    "Accept": _ACCEPT,
                    "X-GitHub-Api-Version": _API_VERSION,
                },
            )
        except httpx.TimeoutException as exc:
            raise ExternalApiError.timeout() from exc
        except httpx.RequestError as exc:
            detail = str(exc) or type(exc).__name__
            raise ExternalApiError.network_error(detail) from exc

    async def create_installation_token(
        self, installation_id: int, app_assertion: str
    ) -> InstallationToken:
        """Exchange an app assertion for an installation token.

        Raises
        ------
        AuthenticationError
            ``revoked=True`` when the installation is unknown or suspended;
            otherwise when the assertion itself is rejected.
        ExternalApiError
            On rate limiting, server or transport failures.

        """
        response = await self._request(
            "POST",
            f"/app/installations/{installation_id}/access_tokens",
            bearer=app_assertion,
        )
        if response.status_code in {httpx.codes.NOT_FOUND, httpx.codes.FORBIDDEN} and (
            not _is_rate_limited(response)
        ):
            raise AuthenticationError.installation_revoked(installation_id)
        _raise_for_status(response, f"installation {installation_id}")
        body = _decode(response, AccessTokenResponse)
        try:
            expires_at = parse_iso_datetime(body.expires_at)
        except ValueError as exc:
            raise ExternalApiError.http_error(
                response.status_code, f"invalid expires_at {body.expires_at!r}"
            ) from exc
        return InstallationToken(
            installation_id=installation_id,
            token=body.token,
            expires_at=expires_at,
        )

    async def has_commit_since(
        self,
        token: str,
        repo_full_name: str,
        *,
        author_email: str,
        since: dt.datetime,
    ) -> bool:
        """Return True when *author_email* committed on the default branch.

        Only the first page is inspected; at most one keep-alive commit per
        day is expected.
        """
        response = await self._request(
            "GET",
            f"/repos/{repo_full_name}/commits",
            bearer=token,
            params={
                "author": author_email,
                "since": since.astimezone(dt.UTC).isoformat().replace("+00:00", "Z"),
                "per_page": _COMMITS_PAGE_SIZE,
            },
        )
        if response.status_code == httpx.codes.CONFLICT:
            # GitHub answers 409 for a repository with no commits at all.
            return False
        _raise_for_status(response, repo_full_name)
        items = _decode(response, list[CommitListItem])
        return any(_matches_identity(item, author_email) for item in items)

    async def get_file(self, token: str, repo_full_name: str, path: str) -> FileContent:
        """Return the decoded text of *path* and its blob sha.

        Raises
        ------
        ExternalApiError
            ``missing_file`` when the path does not exist, or a shape error
            when it is not a UTF-8 text file.

        """
        response = await self._request(
            "GET",
            f"/repos/{repo_full_name}/contents/{urllib.parse.quote(path)}",
            bearer=token,
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            raise ExternalApiError.missing_file(path)
        _raise_for_status(response, f"{repo_full_name}:{path}")
        body = _decode(response, ContentResponse)
        if body.type != "file" or body.encoding != "base64":
            raise ExternalApiError.http_error(
                response.status_code, f"{path} is not a regular file"
            )
        try:
            text = base64.b64decode(body.content).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise ExternalApiError.http_error(
                response.status_code, f"{path} is not UTF-8 text"
            ) from exc
        return FileContent(path=path, content=text, sha=body.sha)

    async def put_file(  # noqa: PLR0913
        self,
        token: str,
        repo_full_name: str,
        *,
        path: str,
        content: str,
        sha: str,
        message: str,
        identity: CommitIdentity,
    ) -> CommitResult:
        """Write *content* to *path* conditioned on the blob *sha*.

        Raises
        ------
        ExternalApiError
            ``precondition_failed=True`` when the file changed since it was
            read.

        """
        encoded = base64.b64encode(content.encode("utf-8")).decode("ascii")
        response = await self._request(
            "PUT",
            f"/repos/{repo_full_name}/contents/{urllib.parse.quote(path)}",
            bearer=token,
            json={
                "message": message,
                "content": encoded,
                "sha": sha,
                "committer": identity.as_payload(),
                "author": identity.as_payload(),
            },
        )
        if response.status_code == httpx.codes.CONFLICT or (
            response.status_code == httpx.codes.UNPROCESSABLE_ENTITY
            and "sha" in _error_detail(response).lower()
        ):
            raise ExternalApiError.precondition_mismatch(path)
        _raise_for_status(response, f"{repo_full_name}:{path}")
        body = _decode(response, ContentWriteResponse)
        return CommitResult(sha=body.commit.sha, path=path)
