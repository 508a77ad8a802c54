"""Environment variable parsing shared by the ``from_env`` constructors."""

from __future__ import annotations

import os

from commithabit.errors import ConfigurationError


def read_str(env_var: str, default: str = "") -> str:
    """Return the stripped value of *env_var*, or *default* when blank."""
    raw = os.environ.get(env_var, "").strip()
    return raw or default


def read_positive_int(env_var: str, default: int) -> int:
    """Read a positive integer env var, falling back to a default.

    Raises
    ------
    ConfigurationError
        If the variable is set to anything other than a positive integer.

    """
    raw = os.environ.get(env_var, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError.invalid_value(
            env_var, raw, "Must be a positive integer"
        ) from exc
    if value < 1:
        raise ConfigurationError.invalid_value(
            env_var, raw, "Must be a positive integer"
        )
    return value


def read_positive_float(env_var: str, default: float) -> float:
    """Read a positive float env var, falling back to a default.

    Raises
    ------
    ConfigurationError
        If the variable is set to anything other than a positive number.

    """
    raw = os.environ.get(env_var, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError.invalid_value(
            env_var, raw, "Must be a positive number"
        ) from exc
    if value <= 0:
        raise ConfigurationError.invalid_value(
            env_var, raw, "Must be a positive number"
        )
    return value
