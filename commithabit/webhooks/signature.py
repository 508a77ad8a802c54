"""HMAC verification of GitHub webhook deliveries."""

from __future__ import annotations

import hashlib
import hmac

from commithabit.errors import ConfigurationError, WebhookError

SIGNATURE_PREFIX = "sha256="


def compute_signature(raw_payload: bytes, secret: str) -> str:
    """Return the ``sha256=<hex>`` header value GitHub sends for *raw_payload*."""
    digest = hmac.new(
        secret.encode("utf-8"), msg=raw_payload, digestmod=hashlib.sha256
    ).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(
    raw_payload: bytes, signature_header: str | None, secret: str
) -> None:
    """Check *signature_header* against the exact bytes received.

    Must run before the payload is parsed. The comparison is constant time.

    Raises
    ------
    ConfigurationError
        If no webhook secret is configured.
    WebhookError
        If the header is missing, malformed or does not match.

    """
    if not secret:
        raise ConfigurationError.missing("COMMITHABIT_WEBHOOK_SECRET")
    if not signature_header:
        raise WebhookError.missing_signature()
    if not signature_header.startswith(SIGNATURE_PREFIX):
        raise WebhookError.invalid_signature()

    expected = compute_signature(raw_payload, secret)
    if not hmac.compare_digest(expected, signature_header):
        raise WebhookError.invalid_signature()
