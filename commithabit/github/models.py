"""Typed GitHub REST payloads and the values the client returns."""

from __future__ import annotations

import dataclasses
import datetime as dt

import msgspec


@dataclasses.dataclass(frozen=True, slots=True)
class InstallationToken:
    """Installation-scoped bearer token with its platform-declared expiry."""

    installation_id: int
    token: str = dataclasses.field(repr=False)
    expires_at: dt.datetime

    def is_fresh(self, now: dt.datetime, skew: dt.timedelta) -> bool:
        """Return True when the token stays valid for at least *skew*."""
        return self.expires_at - skew > now


@dataclasses.dataclass(frozen=True, slots=True)
class FileContent:
    """Decoded file content with the blob sha used as write precondition."""

    path: str
    content: str
    sha: str


@dataclasses.dataclass(frozen=True, slots=True)
class CommitIdentity:
    """Author and committer recorded on keep-alive commits."""

    name: str
    email: str

    def as_payload(self) -> dict[str, str]:
        """Return the identity in the shape the contents API expects."""
        return {"name": self.name, "email": self.email}


@dataclasses.dataclass(frozen=True, slots=True)
class CommitResult:
    """Commit created by a contents write."""

    sha: str
    path: str


class AccessTokenResponse(msgspec.Struct):
    """Body of ``POST /app/installations/{id}/access_tokens``."""

    token: str
    expires_at: str


class ContentResponse(msgspec.Struct):
    """Body of ``GET /repos/{repo}/contents/{path}`` for a file."""

    sha: str
    type: str = "file"
    content: str = ""
    encoding: str = "base64"


class CommitSignature(msgspec.Struct):
    """Git author or committer block."""

    name: str | None = None
    email: str | None = None
    date: str | None = None


class CommitDetail(msgspec.Struct):
    """The ``commit`` object inside a commit listing item."""

    message: str = ""
    author: CommitSignature | None = None
    committer: CommitSignature | None = None


class CommitListItem(msgspec.Struct):
    """One item of ``GET /repos/{repo}/commits``."""

    sha: str
    commit: CommitDetail


class WrittenCommit(msgspec.Struct):
    """The ``commit`` object returned by a contents write."""

    sha: str


class ContentWriteResponse(msgspec.Struct):
    """Body of ``PUT /repos/{repo}/contents/{path}``."""

    commit: WrittenCommit
