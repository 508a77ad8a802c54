"""Configuration for the daily commit run.

Usage
-----
Create a configuration with defaults:

>>> config = OrchestratorConfig()
>>> config.max_workers
3

Or load from environment variables:

>>> import os
>>> os.environ["COMMITHABIT_MAX_WORKERS"] = "5"
>>> OrchestratorConfig.from_env().max_workers
5

"""

from __future__ import annotations

import dataclasses as dc

from commithabit.common.env import read_positive_float, read_positive_int, read_str
from commithabit.errors import ConfigurationError
from commithabit.github.models import CommitIdentity
from commithabit.orchestrator.toggle import ZERO_WIDTH_SPACE

MIN_WORKERS = 1
MAX_WORKERS = 5


@dc.dataclass(frozen=True, slots=True)
class OrchestratorConfig:
    """Settings for :class:`CommitOrchestrator`.

    Attributes
    ----------
    max_workers
        Installations processed concurrently. Kept small to respect GitHub
        rate limits. Default is 3, allowed range 1 to 5.
    batch_timeout_s
        Wall-clock budget for one daily run. Installations not started
        before it elapses are reported as not attempted. Default is 900.
    target_path
        File toggled in each repository. Default is ``README.md``.
    bot_name, bot_email
        Identity recorded as author and committer. The email is also used
        to detect whether today's commit already exists.
    marker
        Invisible character toggled at the end of the target file.
    max_attempts
        Attempts per GitHub call when the error is retryable. Default is 3.
    backoff_base_s
        First backoff delay; doubles per attempt unless GitHub sends
        ``Retry-After``.
    backoff_max_s
        Upper bound for a single backoff delay.

    """

    max_workers: int = 3
    batch_timeout_s: float = 900.0
    target_path: str = "README.md"
    bot_name: str = "commithabit[bot]"
    bot_email: str = "commithabit[bot]@users.noreply.github.com"
    marker: str = ZERO_WIDTH_SPACE
    max_attempts: int = 3
    backoff_base_s: float = 1.0
    backoff_max_s: float = 30.0

    def __post_init__(self) -> None:
        """Reject worker counts outside the supported range."""
        if not MIN_WORKERS <= self.max_workers <= MAX_WORKERS:
            raise ConfigurationError.invalid_value(
                "max_workers",
                self.max_workers,
                f"Must be between {MIN_WORKERS} and {MAX_WORKERS}",
            )

    @property
    def identity(self) -> CommitIdentity:
        """Return the bot identity used for keep-alive commits."""
        return CommitIdentity(name=self.bot_name, email=self.bot_email)

    @classmethod
    def from_env(cls) -> OrchestratorConfig:
        """Create configuration from environment variables.

        Reads ``COMMITHABIT_MAX_WORKERS``, ``COMMITHABIT_BATCH_TIMEOUT_S``,
        ``COMMITHABIT_TARGET_PATH``, ``COMMITHABIT_BOT_NAME``,
        ``COMMITHABIT_BOT_EMAIL`` and ``COMMITHABIT_MAX_ATTEMPTS``.

        Raises
        ------
        ConfigurationError
            If any numeric value is invalid.

        """
        defaults = cls()
        return cls(
            max_workers=read_positive_int(
                "COMMITHABIT_MAX_WORKERS", defaults.max_workers
            ),
            batch_timeout_s=read_positive_float(
                "COMMITHABIT_BATCH_TIMEOUT_S", defaults.batch_timeout_s
            ),
            target_path=read_str("COMMITHABIT_TARGET_PATH", defaults.target_path),
            bot_name=read_str("COMMITHABIT_BOT_NAME", defaults.bot_name),
            bot_email=read_str("COMMITHABIT_BOT_EMAIL", defaults.bot_email),
            max_attempts=read_positive_int(
                "COMMITHABIT_MAX_ATTEMPTS", defaults.max_attempts
            ),
        )
