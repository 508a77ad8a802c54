"""Installation registry for repositories enrolled in daily commits.

The registry records each repository a user authorised the GitHub App on,
whether it is active, and when the last keep-alive commit landed. It
provides:

- Creation and reactivation with a per-user active cap
- Deactivation for removal, suspension and revocation (rows are kept)
- Listing of active installations for the daily run

Usage
-----
Enrol a repository::

    from commithabit.registry import InstallationRegistry

    registry = InstallationRegistry(session_factory)
    result = await registry.activate_repository(
        installation_id=101,
        repo_id=9001,
        repo_full_name="octo/reef",
        user_id="42",
    )

List the installations the daily run will process::

    for installation in await registry.list_active():
        print(installation.repo_full_name)

"""

from commithabit.registry.config import RegistryConfig
from commithabit.registry.models import (
    ActivationResult,
    ActivationStatus,
    InstallationInfo,
    ReactivationResult,
)
from commithabit.registry.service import InstallationRegistry

__all__ = [
    "ActivationResult",
    "ActivationStatus",
    "InstallationInfo",
    "InstallationRegistry",
    "ReactivationResult",
    "RegistryConfig",
]
