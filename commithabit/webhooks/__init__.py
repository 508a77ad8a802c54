"""GitHub App lifecycle webhook verification and ingestion."""

from commithabit.webhooks.models import (
    DeliveryOutcome,
    DeliveryResult,
    RepositoryRef,
    WebhookEvent,
)
from commithabit.webhooks.service import WebhookIngester
from commithabit.webhooks.signature import compute_signature, verify_signature

__all__ = [
    "DeliveryOutcome",
    "DeliveryResult",
    "RepositoryRef",
    "WebhookEvent",
    "WebhookIngester",
    "compute_signature",
    "verify_signature",
]
