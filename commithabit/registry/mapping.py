"""Mapping helpers for registry DTOs."""

from __future__ import annotations

import typing as typ

from commithabit.registry.models import InstallationInfo

if typ.TYPE_CHECKING:
    from commithabit.registry.storage import Installation


def to_installation_info(row: Installation) -> InstallationInfo:
    """Convert an installation row to an InstallationInfo DTO.

    Parameters
    ----------
    row
        Installation row loaded in the current session.

    Returns
    -------
    InstallationInfo
        Detached copy safe to pass between tasks.

    """
    return InstallationInfo(
        id=row.id,
        installation_id=row.installation_id,
        repo_id=row.repo_id,
        repo_full_name=row.repo_full_name,
        user_id=row.user_id,
        active=row.active,
        last_commit_at=row.last_commit_at,
    )
