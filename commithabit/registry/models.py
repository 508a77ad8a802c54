"""Data transfer objects for the installation registry."""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

if typ.TYPE_CHECKING:
    import datetime as dt


@dataclasses.dataclass(slots=True, frozen=True)
class InstallationInfo:
    """Immutable view of one authorised repository.

    Carries everything the orchestrator needs so workers never hold ORM
    rows across awaits.
    """

    id: str
    installation_id: int
    repo_id: int
    repo_full_name: str
    user_id: str
    active: bool
    last_commit_at: dt.datetime | None

    @property
    def owner(self) -> str:
        """Return the repository owner login."""
        return self.repo_full_name.split("/", 1)[0]


class ActivationStatus(enum.StrEnum):
    """What an activation request did to the registry."""

    CREATED = "created"
    REACTIVATED = "reactivated"
    UNCHANGED = "unchanged"


@dataclasses.dataclass(slots=True, frozen=True)
class ActivationResult:
    """Outcome of creating or reactivating an installation row."""

    status: ActivationStatus
    installation: InstallationInfo

    @property
    def changed(self) -> bool:
        """Return True when the registry state was modified."""
        return self.status is not ActivationStatus.UNCHANGED


@dataclasses.dataclass(slots=True)
class ReactivationResult:
    """Rows resumed by an unsuspend, split by whether the cap allowed them."""

    activated: list[InstallationInfo] = dataclasses.field(default_factory=list)
    rejected: list[InstallationInfo] = dataclasses.field(default_factory=list)
