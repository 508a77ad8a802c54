"""GitHub App REST integration."""

from .client import GitHubRestClient, InstallationTokenIssuer, RepositoryContentsApi
from .config import GitHubAppConfig, load_private_key
from .models import CommitIdentity, CommitResult, FileContent, InstallationToken

__all__ = [
    "CommitIdentity",
    "CommitResult",
    "FileContent",
    "GitHubAppConfig",
    "GitHubRestClient",
    "InstallationToken",
    "InstallationTokenIssuer",
    "RepositoryContentsApi",
    "load_private_key",
]
