"""Installation credential broker.

The broker owns the app identity (id and RSA private key) and an in-memory
cache of installation tokens. One broker instance is built per process and
handed to the orchestrator; tokens are never persisted, so a cold start
simply exchanges again.

Usage
-----
::

    broker = CredentialBroker(GitHubAppConfig.from_env(), issuer=rest_client)
    broker.ensure_configured()
    token = await broker.get_installation_token(installation_id)

"""

from __future__ import annotations

import asyncio
import datetime as dt
import typing as typ

from jose import jwt
from jose.exceptions import JOSEError

from commithabit.common.time import utcnow
from commithabit.errors import ConfigurationError
from commithabit.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from commithabit.github.client import InstallationTokenIssuer
    from commithabit.github.config import GitHubAppConfig
    from commithabit.github.models import InstallationToken

logger = get_logger(__name__)

# GitHub rejects assertions whose lifetime exceeds ten minutes.
_ASSERTION_BACKDATE = dt.timedelta(seconds=60)
_ASSERTION_LIFETIME = dt.timedelta(minutes=10)
DEFAULT_EXPIRY_SKEW = dt.timedelta(seconds=60)


class CredentialBroker:
    """Mint app assertions and hand out cached installation tokens.

    Parameters
    ----------
    config
        App identity and API settings.
    issuer
        Performs the assertion-for-token exchange.
    expiry_skew
        Tokens expiring within this margin are treated as expired.
    clock
        Returns the current aware UTC time.

    """

    def __init__(
        self,
        config: GitHubAppConfig,
        issuer: InstallationTokenIssuer,
        *,
        expiry_skew: dt.timedelta = DEFAULT_EXPIRY_SKEW,
        clock: cabc.Callable[[], dt.datetime] = utcnow,
    ) -> None:
        """Create a broker with an empty token cache."""
        self._config = config
        self._issuer = issuer
        self._skew = expiry_skew
        self._clock = clock
        self._tokens: dict[int, InstallationToken] = {}
        self._inflight: dict[int, asyncio.Task[InstallationToken]] = {}

    def ensure_configured(self) -> None:
        """Raise ``ConfigurationError`` unless the app id and key are set."""
        if not self._config.is_configured:
            raise ConfigurationError.missing_app_identity()

    def mint_app_assertion(self) -> str:
        """Return a signed RS256 JWT identifying the GitHub App.

        The token is backdated by a minute to tolerate clock drift and
        expires ten minutes after its issue time.

        Raises
        ------
        ConfigurationError
            If the app id or private key is missing, or the key is unusable.

        """
        self.ensure_configured()
        issued_at = self._clock() - _ASSERTION_BACKDATE
        claims = {
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + _ASSERTION_LIFETIME).timestamp()),
            "iss": self._config.app_id,
        }
        try:
            return jwt.encode(claims, self._config.private_key, algorithm="RS256")
        except JOSEError as exc:
            raise ConfigurationError.invalid_value(
                "GitHub App private key", "<redacted>", f"Cannot sign: {exc}"
            ) from exc

    def cached_token(self, installation_id: int) -> InstallationToken | None:
        """Return the cached token if it is still fresh."""
        token = self._tokens.get(installation_id)
        if token is not None and token.is_fresh(self._clock(), self._skew):
            return token
        return None

    async def get_installation_token(self, installation_id: int) -> InstallationToken:
        """Return a valid token for *installation_id*.

        Concurrent callers for the same installation share a single
        exchange; callers for different installations never wait on each
        other.

        Raises
        ------
        ConfigurationError
            If the app identity is not configured.
        AuthenticationError
            If the installation is revoked (``revoked=True``) or the
            assertion is rejected.
        ExternalApiError
            If the exchange fails upstream.

        """
        cached = self.cached_token(installation_id)
        if cached is not None:
            return cached

        task = self._inflight.get(installation_id)
        if task is None:
            task = asyncio.ensure_future(self._exchange(installation_id))
            self._inflight[installation_id] = task
            task.add_done_callback(
                lambda done: self._forget_inflight(installation_id, done)
            )
        # Shield so one cancelled waiter does not cancel the shared exchange.
        return await asyncio.shield(task)

    def invalidate(self, installation_id: int) -> None:
        """Drop the cached token so the next request exchanges again."""
        self._tokens.pop(installation_id, None)

    def _forget_inflight(
        self, installation_id: int, done: asyncio.Task[InstallationToken]
    ) -> None:
        if self._inflight.get(installation_id) is done:
            del self._inflight[installation_id]
        if not done.cancelled():
            # Mark the exception retrieved; waiters re-raise it themselves.
            done.exception()

    async def _exchange(self, installation_id: int) -> InstallationToken:
        assertion = self.mint_app_assertion()
        token = await self._issuer.create_installation_token(
            installation_id, assertion
        )
        self._tokens[installation_id] = token
        log_info(
            logger,
            "Issued installation token installation_id=%s expires_at=%s",
            installation_id,
            token.expires_at.isoformat(),
        )
        return token
