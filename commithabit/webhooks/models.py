"""Webhook payload schemas and the parsed event handed to the ingester."""

from __future__ import annotations

import dataclasses
import enum

import msgspec


class AccountPayload(msgspec.Struct):
    """User or organisation an installation or delivery belongs to."""

    id: int
    login: str = ""


class InstallationPayload(msgspec.Struct):
    """The ``installation`` object of a lifecycle delivery."""

    id: int
    account: AccountPayload | None = None


class RepositoryPayload(msgspec.Struct):
    """A repository listed in a lifecycle delivery."""

    id: int
    full_name: str


class InstallationEventPayload(msgspec.Struct):
    """Body of an ``installation`` delivery."""

    action: str
    installation: InstallationPayload
    repositories: list[RepositoryPayload] | None = None
    sender: AccountPayload | None = None


class InstallationRepositoriesEventPayload(msgspec.Struct):
    """Body of an ``installation_repositories`` delivery."""

    action: str
    installation: InstallationPayload
    repositories_added: list[RepositoryPayload] | None = None
    repositories_removed: list[RepositoryPayload] | None = None
    sender: AccountPayload | None = None


class OtherEventPayload(msgspec.Struct):
    """Minimal view of any delivery this service does not act on."""

    action: str | None = None
    installation: InstallationPayload | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class RepositoryRef:
    """Repository identity carried by a lifecycle event."""

    repo_id: int
    full_name: str


@dataclasses.dataclass(frozen=True, slots=True)
class WebhookEvent:
    """A verified, decoded delivery.

    ``user_id`` is the GitHub account id of the sender, falling back to
    the installation account, and is the owner used for new rows.
    """

    name: str
    delivery_id: str
    action: str | None
    installation_id: int | None
    user_id: str | None = None
    repositories_added: tuple[RepositoryRef, ...] = ()
    repositories_removed: tuple[RepositoryRef, ...] = ()

    @property
    def qualified_name(self) -> str:
        """Return ``event.action`` (or just the event name without action)."""
        return f"{self.name}.{self.action}" if self.action else self.name


class DeliveryOutcome(enum.StrEnum):
    """How a delivery was handled."""

    APPLIED = "applied"
    NO_CHANGE = "no_change"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    REJECTED = "rejected"


@dataclasses.dataclass(frozen=True, slots=True)
class DeliveryResult:
    """What one delivery did to the registry."""

    delivery_id: str
    event: str
    outcome: DeliveryOutcome
    activated: tuple[str, ...] = ()
    deactivated: tuple[str, ...] = ()
    rejected: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-ready representation."""
        return {
            "delivery_id": self.delivery_id,
            "event": self.event,
            "outcome": self.outcome.value,
            "activated": list(self.activated),
            "deactivated": list(self.deactivated),
            "rejected": list(self.rejected),
        }
