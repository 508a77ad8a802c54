"""Configuration for audit log retention."""

from __future__ import annotations

import dataclasses as dc
import datetime as dt

from commithabit.common.env import read_positive_int


@dc.dataclass(frozen=True, slots=True)
class AuditConfig:
    """Audit retention settings.

    Attributes
    ----------
    retention_days
        Entries older than this many days are eligible for the retention
        sweep. Default is 365.

    """

    retention_days: int = 365

    def retention_cutoff(self, now: dt.datetime) -> dt.datetime:
        """Return the instant before which entries may be deleted."""
        return now - dt.timedelta(days=self.retention_days)

    @classmethod
    def from_env(cls) -> AuditConfig:
        """Read ``COMMITHABIT_AUDIT_RETENTION_DAYS`` (positive integer)."""
        return cls(
            retention_days=read_positive_int("COMMITHABIT_AUDIT_RETENTION_DAYS", 365)
        )
