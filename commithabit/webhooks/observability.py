"""Structured log events for webhook ingestion."""

from __future__ import annotations

import enum
import typing as typ

from commithabit.logging import get_logger, log_info, log_warning

if typ.TYPE_CHECKING:
    from commithabit.errors import CommitHabitError
    from commithabit.webhooks.models import DeliveryResult, WebhookEvent

logger = get_logger(__name__)

_COMPONENT = "webhooks"


class WebhookEventType(enum.StrEnum):
    """Structured log event types for webhook deliveries."""

    DELIVERY_REJECTED = "webhook.delivery.rejected"
    DELIVERY_DUPLICATE = "webhook.delivery.duplicate"
    DELIVERY_IGNORED = "webhook.delivery.ignored"
    DELIVERY_HANDLED = "webhook.delivery.handled"
    INSTALLATION_CAP_REACHED = "webhook.installation.cap_reached"


class WebhookEventLogger:
    """Emit structured webhook events via femtologging."""

    def log_delivery_rejected(
        self, *, delivery_id: str | None, error: CommitHabitError
    ) -> None:
        """Log a delivery refused before any side effect."""
        log_warning(
            logger,
            "[%s] component=%s delivery_id=%s error_kind=%s error_code=%s",
            WebhookEventType.DELIVERY_REJECTED,
            _COMPONENT,
            delivery_id,
            error.kind,
            error.code,
        )

    def log_duplicate(self, *, event: WebhookEvent) -> None:
        """Log a replayed delivery id."""
        log_info(
            logger,
            "[%s] component=%s delivery_id=%s event=%s installation_id=%s",
            WebhookEventType.DELIVERY_DUPLICATE,
            _COMPONENT,
            event.delivery_id,
            event.qualified_name,
            event.installation_id,
        )

    def log_ignored(self, *, event: WebhookEvent) -> None:
        """Log a delivery for an event this service does not act on."""
        log_info(
            logger,
            "[%s] component=%s delivery_id=%s event=%s",
            WebhookEventType.DELIVERY_IGNORED,
            _COMPONENT,
            event.delivery_id,
            event.qualified_name,
        )

    def log_handled(self, *, event: WebhookEvent, result: DeliveryResult) -> None:
        """Log a lifecycle delivery and the rows it touched."""
        log_info(
            logger,
            "[%s] component=%s delivery_id=%s event=%s installation_id=%s "
            "outcome=%s activated=%d deactivated=%d rejected=%d",
            WebhookEventType.DELIVERY_HANDLED,
            _COMPONENT,
            event.delivery_id,
            event.qualified_name,
            event.installation_id,
            result.outcome,
            len(result.activated),
            len(result.deactivated),
            len(result.rejected),
        )

    def log_cap_reached(
        self, *, event: WebhookEvent, repository: str, user_id: str, cap: int
    ) -> None:
        """Log a repository refused because its owner is at the cap."""
        log_warning(
            logger,
            "[%s] component=%s delivery_id=%s installation_id=%s repository=%s "
            "user_id=%s cap=%d",
            WebhookEventType.INSTALLATION_CAP_REACHED,
            _COMPONENT,
            event.delivery_id,
            event.installation_id,
            repository,
            user_id,
            cap,
        )
