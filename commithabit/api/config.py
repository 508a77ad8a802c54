"""Shared secrets guarding the HTTP surface."""

from __future__ import annotations

import dataclasses as dc

from commithabit.common.env import read_str

WEBHOOK_SECRET_ENV = "COMMITHABIT_WEBHOOK_SECRET"
SCHEDULER_SECRET_ENV = "COMMITHABIT_SCHEDULER_SECRET"
ADMIN_TOKEN_ENV = "COMMITHABIT_ADMIN_TOKEN"


@dc.dataclass(frozen=True, slots=True)
class ApiConfig:
    """Secrets checked by the request handlers.

    An empty value disables the corresponding endpoint: requests are
    answered with a configuration error rather than accepted unchecked.

    Attributes
    ----------
    webhook_secret
        HMAC key shared with the GitHub App webhook configuration.
    scheduler_secret
        Bearer token the external scheduler sends to ``POST /jobs/daily``.
    admin_token
        Bearer token for the ``/admin`` endpoints.

    """

    webhook_secret: str = dc.field(default="", repr=False)
    scheduler_secret: str = dc.field(default="", repr=False)
    admin_token: str = dc.field(default="", repr=False)

    @classmethod
    def from_env(cls) -> ApiConfig:
        """Read the three secrets from ``COMMITHABIT_*`` variables."""
        return cls(
            webhook_secret=read_str(WEBHOOK_SECRET_ENV),
            scheduler_secret=read_str(SCHEDULER_SECRET_ENV),
            admin_token=read_str(ADMIN_TOKEN_ENV),
        )
