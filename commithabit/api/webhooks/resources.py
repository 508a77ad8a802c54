"""GitHub App webhook receiver.

``POST /webhooks/github`` reads the raw body, hands it to
:func:`commithabit.api.handlers.handle_webhook` and writes the result.

Usage
-----
Register the resource on the Falcon app::

    app.add_route(
        "/webhooks/github",
        WebhookResource(ingester, secret=api_config.webhook_secret),
    )

"""

from __future__ import annotations

import typing as typ

from commithabit.api.handlers import WebhookRequest, handle_webhook
from commithabit.webhooks.observability import WebhookEventLogger

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from commithabit.webhooks.service import WebhookIngester

__all__ = ["WebhookResource"]

SIGNATURE_HEADER = "X-Hub-Signature-256"
EVENT_HEADER = "X-GitHub-Event"
DELIVERY_HEADER = "X-GitHub-Delivery"


class WebhookResource:
    """Resource accepting signed lifecycle deliveries."""

    def __init__(self, ingester: WebhookIngester, *, secret: str) -> None:
        """Configure the resource with its ingester and HMAC secret."""
        self._ingester = ingester
        self._secret = secret
        self._events = WebhookEventLogger()

    async def on_post(self, req: Request, resp: Response) -> None:
        """Handle POST /webhooks/github.

        Parameters
        ----------
        req
            Falcon request; the body is read unparsed so the signature can
            be checked over the exact bytes.
        resp
            Falcon response receiving the handler result.

        """
        body = await req.stream.read()
        result = await handle_webhook(
            WebhookRequest(
                body=body,
                signature=req.get_header(SIGNATURE_HEADER),
                event=req.get_header(EVENT_HEADER),
                delivery_id=req.get_header(DELIVERY_HEADER),
            ),
            ingester=self._ingester,
            secret=self._secret,
            event_logger=self._events,
        )
        resp.status = result.status
        resp.media = result.body
