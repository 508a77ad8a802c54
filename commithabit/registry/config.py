"""Configuration for the installation registry.

Usage
-----
>>> RegistryConfig().max_active_per_user
3

"""

from __future__ import annotations

import dataclasses as dc

from commithabit.common.env import read_positive_int


@dc.dataclass(frozen=True, slots=True)
class RegistryConfig:
    """Registry limits.

    Attributes
    ----------
    max_active_per_user
        Maximum number of active repositories a single user may enrol.
        Default is 3.

    """

    max_active_per_user: int = 3

    @classmethod
    def from_env(cls) -> RegistryConfig:
        """Read ``COMMITHABIT_MAX_ACTIVE_PER_USER`` (positive integer).

        Raises
        ------
        ConfigurationError
            If the variable is set but not a positive integer.

        """
        return cls(
            max_active_per_user=read_positive_int(
                "COMMITHABIT_MAX_ACTIVE_PER_USER", 3
            )
        )
