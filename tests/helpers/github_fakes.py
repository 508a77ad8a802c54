"""In-memory GitHub App fake for orchestrator and feature tests."""

from __future__ import annotations

import asyncio
import collections
import dataclasses
import datetime as dt
import hashlib
import typing as typ

from commithabit.errors import AuthenticationError, ExternalApiError
from commithabit.github.models import CommitResult, FileContent, InstallationToken

if typ.TYPE_CHECKING:
    from commithabit.github.models import CommitIdentity

TOKEN_LIFETIME = dt.timedelta(hours=1)


def blob_sha(content: str) -> str:
    """Return a deterministic stand-in for a git blob sha."""
    return hashlib.sha1(content.encode("utf-8"), usedforsecurity=False).hexdigest()


@dataclasses.dataclass(slots=True)
class RecordedCommit:
    """A commit written through :meth:`FakeGitHub.put_file`."""

    repo: str
    path: str
    message: str
    author_email: str
    at: dt.datetime
    sha: str


class FakeGitHub:
    """Token issuer and repository API backed by dictionaries.

    Queue failures with :meth:`fail`; each queued error is raised by the
    next matching call.
    """

    def __init__(self, *, now: dt.datetime | None = None) -> None:
        self.now = now or dt.datetime.now(dt.UTC)
        self.files: dict[tuple[str, str], FileContent] = {}
        self.commits: dict[str, list[RecordedCommit]] = collections.defaultdict(list)
        self.token_calls: list[int] = []
        self.put_calls: list[str] = []
        self.revoked: set[int] = set()
        self.token_delay: float = 0.0
        self.call_delay: float = 0.0
        self._failures: dict[tuple[str, str], collections.deque[Exception]] = (
            collections.defaultdict(collections.deque)
        )
        self._issued = 0

    def add_repo(
        self, repo: str, content: str = "# readme\n", *, path: str = "README.md"
    ) -> None:
        """Seed *repo* with a target file."""
        self.files[repo, path] = FileContent(
            path=path, content=content, sha=blob_sha(content)
        )

    def content(self, repo: str, path: str = "README.md") -> str:
        """Return the current text of a seeded file."""
        return self.files[repo, path].content

    def fail(self, operation: str, key: str, *errors: Exception) -> None:
        """Queue *errors* for the next calls of *operation* on *key*.

        *key* is a repository name, or the installation id as a string for
        ``create_installation_token``.
        """
        self._failures[operation, key].extend(errors)

    def commit_count(self, repo: str) -> int:
        """Return how many commits were written to *repo*."""
        return len(self.commits[repo])

    def _raise_queued(self, operation: str, key: str) -> None:
        queue = self._failures.get((operation, key))
        if queue:
            raise queue.popleft()

    async def create_installation_token(
        self, installation_id: int, app_assertion: str
    ) -> InstallationToken:
        self.token_calls.append(installation_id)
        if self.token_delay:
            await asyncio.sleep(self.token_delay)
        if installation_id in self.revoked:
            raise AuthenticationError.installation_revoked(installation_id)
        self._raise_queued("create_installation_token", str(installation_id))
        self._issued += 1
        return InstallationToken(
            installation_id=installation_id,
            token=f"ghs_{installation_id}_{self._issued}",
            expires_at=self.now + TOKEN_LIFETIME,
        )

    async def has_commit_since(
        self,
        token: str,
        repo_full_name: str,
        *,
        author_email: str,
        since: dt.datetime,
    ) -> bool:
        if self.call_delay:
            await asyncio.sleep(self.call_delay)
        self._raise_queued("has_commit_since", repo_full_name)
        return any(
            commit.author_email == author_email and commit.at >= since
            for commit in self.commits[repo_full_name]
        )

    async def get_file(self, token: str, repo_full_name: str, path: str) -> FileContent:
        self._raise_queued("get_file", repo_full_name)
        current = self.files.get((repo_full_name, path))
        if current is None:
            raise ExternalApiError.missing_file(path)
        return current

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
        self.put_calls.append(repo_full_name)
        self._raise_queued("put_file", repo_full_name)
        current = self.files.get((repo_full_name, path))
        if current is None:
            raise ExternalApiError.missing_file(path)
        if current.sha != sha:
            raise ExternalApiError.precondition_mismatch(path)
        self.files[repo_full_name, path] = FileContent(
            path=path, content=content, sha=blob_sha(content)
        )
        serial = len(self.commits[repo_full_name])
        commit_sha = blob_sha(f"{repo_full_name}:{serial}:{content}")
        self.commits[repo_full_name].append(
            RecordedCommit(
                repo=repo_full_name,
                path=path,
                message=message,
                author_email=identity.email,
                at=self.now,
                sha=commit_sha,
            )
        )
        return CommitResult(sha=commit_sha, path=path)

    def touch_file(self, repo: str, content: str, *, path: str = "README.md") -> None:
        """Change a file behind the workflow's back, invalidating its sha."""
        self.files[repo, path] = FileContent(
            path=path, content=content, sha=blob_sha(content)
        )
