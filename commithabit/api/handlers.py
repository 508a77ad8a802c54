"""Transport-independent request handlers.

Each handler maps an already-read request to a :class:`HandlerResult`.
Classified failures become error results with the variant's status and
stable code; nothing here touches Falcon, so handlers are exercised in
tests without a listener.

Usage
-----
::

    result = await handle_daily_trigger(
        req.get_header("Authorization"),
        orchestrator=orchestrator,
        secret=api_config.scheduler_secret,
    )
    resp.status = result.status
    resp.media = result.body

"""

from __future__ import annotations

import dataclasses as dc
import hmac
import typing as typ
from http import HTTPStatus

from commithabit.api.config import ADMIN_TOKEN_ENV, SCHEDULER_SECRET_ENV
from commithabit.audit.models import (
    ActorType,
    AuditAction,
    AuditEntryCreate,
    AuditQuery,
    EntityType,
)
from commithabit.common.time import parse_iso_datetime
from commithabit.errors import (
    AuthenticationError,
    CommitHabitError,
    ConfigurationError,
    ValidationError,
)
from commithabit.logging import get_logger, log_warning
from commithabit.webhooks.signature import verify_signature

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from commithabit.audit.service import AuditTrail
    from commithabit.orchestrator.service import CommitOrchestrator
    from commithabit.registry.service import InstallationRegistry
    from commithabit.webhooks.observability import WebhookEventLogger
    from commithabit.webhooks.service import WebhookIngester

__all__ = [
    "HandlerResult",
    "WebhookRequest",
    "error_result",
    "handle_audit_query",
    "handle_daily_trigger",
    "handle_manual_commit",
    "handle_set_active",
    "handle_webhook",
    "parse_audit_query",
    "require_bearer",
]

logger = get_logger(__name__)

_BEARER_PREFIX = "Bearer "

type QueryParams = cabc.Mapping[str, str | list[str]]


@dc.dataclass(frozen=True, slots=True)
class HandlerResult:
    """Status code and JSON body produced by a handler."""

    status: int
    body: dict[str, typ.Any]


@dc.dataclass(frozen=True, slots=True)
class WebhookRequest:
    """The parts of a webhook delivery the handler needs.

    ``body`` must be the exact bytes received; the signature covers them.
    """

    body: bytes
    signature: str | None
    event: str | None
    delivery_id: str | None


def error_result(error: CommitHabitError) -> HandlerResult:
    """Render a classified failure as a result value."""
    return HandlerResult(error.status_code, error.to_response())


def require_bearer(authorization: str | None, secret: str, env_var: str) -> None:
    """Check an ``Authorization: Bearer`` header against *secret*.

    Raises
    ------
    ConfigurationError
        If *secret* is empty, so the endpoint is unusable until configured.
    AuthenticationError
        If the header is absent or the token does not match.

    """
    if not secret:
        raise ConfigurationError.missing(env_var)
    if not authorization or not authorization.startswith(_BEARER_PREFIX):
        raise AuthenticationError.unauthorized()
    presented = authorization.removeprefix(_BEARER_PREFIX).strip()
    if not hmac.compare_digest(presented.encode(), secret.encode()):
        raise AuthenticationError.unauthorized()


async def handle_webhook(
    request: WebhookRequest,
    *,
    ingester: WebhookIngester,
    secret: str,
    event_logger: WebhookEventLogger | None = None,
) -> HandlerResult:
    """Verify, parse and apply one webhook delivery.

    The signature is checked against the raw body before anything is
    parsed; a bad signature produces a 401 result and no state change.
    """
    try:
        verify_signature(request.body, request.signature, secret)
        event = ingester.parse_event(
            request.event, request.delivery_id, request.body
        )
        result = await ingester.handle_event(event)
    except CommitHabitError as exc:
        if event_logger is not None:
            event_logger.log_delivery_rejected(
                delivery_id=request.delivery_id, error=exc
            )
        return error_result(exc)
    return HandlerResult(HTTPStatus.OK, result.to_dict())


async def handle_daily_trigger(
    authorization: str | None,
    *,
    orchestrator: CommitOrchestrator,
    secret: str,
) -> HandlerResult:
    """Start the daily run and return its summary.

    An error result is returned only when the run could not start at all;
    per-installation failures are part of the summary.
    """
    try:
        require_bearer(authorization, secret, SCHEDULER_SECRET_ENV)
        summary = await orchestrator.run_daily()
    except CommitHabitError as exc:
        log_warning(
            logger,
            "Daily trigger rejected: kind=%s code=%s",
            exc.kind,
            exc.code,
        )
        return error_result(exc)
    return HandlerResult(HTTPStatus.OK, summary.to_dict())


def _single(params: QueryParams, name: str) -> str | None:
    value = params.get(name)
    if isinstance(value, list):
        if len(value) > 1:
            raise ValidationError.invalid_input("must be given once", field=name)
        value = value[0] if value else None
    if value is None or not value.strip():
        return None
    return value.strip()


def _int_param(params: QueryParams, name: str) -> int | None:
    raw = _single(params, name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError.invalid_input("must be an integer", field=name) from exc


def _datetime_param(params: QueryParams, name: str) -> dt.datetime | None:
    raw = _single(params, name)
    if raw is None:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError as exc:
        raise ValidationError.invalid_input(
            "must be an ISO-8601 timestamp with offset", field=name
        ) from exc


def _actions(params: QueryParams) -> tuple[str, ...]:
    raw = params.get("action")
    values = raw if isinstance(raw, list) else [raw] if raw else []
    return tuple(
        part.strip() for value in values for part in value.split(",") if part.strip()
    )


def parse_audit_query(params: QueryParams) -> AuditQuery:
    """Build an :class:`AuditQuery` from query-string parameters.

    ``action`` may be repeated or comma separated.

    Raises
    ------
    ValidationError
        If a parameter has the wrong type or an unknown actor type.

    """
    actor_type_raw = _single(params, "actor_type")
    try:
        actor_type = ActorType(actor_type_raw) if actor_type_raw else None
    except ValueError as exc:
        raise ValidationError.invalid_input(
            "must be one of user, admin, system", field="actor_type"
        ) from exc

    limit = _int_param(params, "limit")
    query = AuditQuery(
        actor_type=actor_type,
        actions=_actions(params),
        actor_id=_single(params, "actor_id"),
        target_user_id=_single(params, "target_user_id"),
        entity_type=_single(params, "entity_type"),
        entity_id=_single(params, "entity_id"),
        start=_datetime_param(params, "start"),
        end=_datetime_param(params, "end"),
        cursor=_single(params, "cursor"),
        offset=_int_param(params, "offset"),
    )
    return query if limit is None else dc.replace(query, limit=limit)


async def handle_audit_query(
    authorization: str | None,
    params: QueryParams,
    *,
    audit: AuditTrail,
    admin_token: str,
) -> HandlerResult:
    """Return one filtered, paginated page of the audit trail."""
    try:
        require_bearer(authorization, admin_token, ADMIN_TOKEN_ENV)
        page = await audit.query(parse_audit_query(params))
    except CommitHabitError as exc:
        return error_result(exc)
    return HandlerResult(HTTPStatus.OK, page.to_dict())


async def handle_set_active(
    authorization: str | None,
    installation_pk: str,
    body: cabc.Mapping[str, typ.Any] | None,
    *,
    registry: InstallationRegistry,
    audit: AuditTrail,
    admin_token: str,
) -> HandlerResult:
    """Pause or resume one installation on behalf of an administrator.

    The body must be ``{"active": true|false}``. Resuming respects the
    per-user cap.
    """
    try:
        require_bearer(authorization, admin_token, ADMIN_TOKEN_ENV)
        active = (body or {}).get("active")
        if not isinstance(active, bool):
            raise ValidationError.invalid_input("must be a boolean", field="active")
        changed = await registry.set_active(installation_pk, active=active)
        installation = await registry.get(installation_pk)
    except CommitHabitError as exc:
        return error_result(exc)

    if changed and installation is not None:
        await audit.record(
            AuditEntryCreate(
                action=(
                    AuditAction.INSTALLATION_RESUMED
                    if active
                    else AuditAction.INSTALLATION_PAUSED
                ),
                actor_type=ActorType.ADMIN,
                target_user_id=installation.user_id,
                entity_type=EntityType.INSTALLATION,
                entity_id=installation.id,
                metadata={
                    "installation_id": installation.installation_id,
                    "repository": installation.repo_full_name,
                },
            )
        )
    return HandlerResult(
        HTTPStatus.OK,
        {"installation": installation_pk, "active": active, "changed": changed},
    )


async def handle_manual_commit(
    authorization: str | None,
    installation_pk: str,
    *,
    orchestrator: CommitOrchestrator,
    admin_token: str,
) -> HandlerResult:
    """Run the commit workflow for one installation now."""
    try:
        require_bearer(authorization, admin_token, ADMIN_TOKEN_ENV)
        outcome = await orchestrator.run_for_installation(installation_pk)
    except CommitHabitError as exc:
        return error_result(exc)
    return HandlerResult(HTTPStatus.OK, outcome.to_dict())
