"""Configuration for the GitHub App identity and REST API access.

Usage
-----
>>> config = GitHubAppConfig(app_id="12345", private_key=pem)
>>> config.is_configured
True

Or load from environment variables::

    os.environ["COMMITHABIT_GITHUB_APP_ID"] = "12345"
    os.environ["COMMITHABIT_GITHUB_PRIVATE_KEY"] = "/run/secrets/app.pem"
    config = GitHubAppConfig.from_env()

"""

from __future__ import annotations

import dataclasses as dc
from pathlib import Path

from commithabit.common.env import read_positive_float, read_str
from commithabit.errors import ConfigurationError

_PEM_MARKER = "-----BEGIN"


def load_private_key(raw: str) -> str:
    """Return PEM text from an inline key or a path to a key file.

    Inline keys may encode newlines as a literal backslash-n, which is how
    single-line secret stores usually deliver them.

    Raises
    ------
    ConfigurationError
        If *raw* is neither PEM text nor a readable file.

    """
    if _PEM_MARKER in raw:
        return raw.replace("\\n", "\n")
    path = Path(raw).expanduser()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError.invalid_value(
            "COMMITHABIT_GITHUB_PRIVATE_KEY",
            raw,
            "Must be PEM text or a path to a readable PEM file",
        ) from exc
    if _PEM_MARKER not in text:
        raise ConfigurationError.invalid_value(
            "COMMITHABIT_GITHUB_PRIVATE_KEY", raw, "File does not contain a PEM key"
        )
    return text


@dc.dataclass(frozen=True, slots=True)
class GitHubAppConfig:
    """GitHub App identity and API settings.

    Attributes
    ----------
    app_id
        Numeric GitHub App id, as a string. ``None`` leaves the app
        unconfigured so the HTTP surface can still start.
    private_key
        PEM encoded RSA private key of the app.
    api_url
        REST API root. Default is ``https://api.github.com``.
    timeout_s
        Per-request timeout in seconds.
    user_agent
        Value sent in the ``User-Agent`` header.

    """

    app_id: str | None = None
    private_key: str | None = dc.field(default=None, repr=False)
    api_url: str = "https://api.github.com"
    timeout_s: float = 20.0
    user_agent: str = "commithabit/0.1"

    @property
    def is_configured(self) -> bool:
        """Return True when both the app id and private key are present."""
        return bool(self.app_id and self.private_key)

    @classmethod
    def from_env(cls) -> GitHubAppConfig:
        """Create configuration from environment variables.

        Reads the following environment variables:

        - ``COMMITHABIT_GITHUB_APP_ID``: GitHub App id.
        - ``COMMITHABIT_GITHUB_PRIVATE_KEY``: PEM text or path to a PEM file.
        - ``COMMITHABIT_GITHUB_API_URL``: REST API root.
        - ``COMMITHABIT_GITHUB_TIMEOUT_S``: Request timeout in seconds.

        Missing identity values are allowed here; the credential broker
        refuses to mint assertions until both are set.

        Raises
        ------
        ConfigurationError
            If a value is present but invalid.

        """
        raw_key = read_str("COMMITHABIT_GITHUB_PRIVATE_KEY")
        return cls(
            app_id=read_str("COMMITHABIT_GITHUB_APP_ID") or None,
            private_key=load_private_key(raw_key) if raw_key else None,
            api_url=read_str("COMMITHABIT_GITHUB_API_URL", "https://api.github.com"),
            timeout_s=read_positive_float("COMMITHABIT_GITHUB_TIMEOUT_S", 20.0),
        )
