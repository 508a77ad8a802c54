"""Closed error taxonomy shared by every commithabit component.

Each concrete error carries a ``kind`` discriminant, a ``retryable`` flag, a
stable ``code`` for API consumers and the HTTP ``status_code`` used when the
error reaches a request boundary. Construct errors through the classmethod
factories so codes stay consistent.

Usage
-----
Raise a cap violation and render it for a client::

    from commithabit.errors import ValidationError

    error = ValidationError.installation_cap("42", cap=3)
    error.to_response()
    # {"error": "...", "code": "VALIDATION_002", "kind": "validation"}

Normalise an arbitrary exception raised inside a workflow::

    from commithabit.errors import classify_error

    classified = classify_error(exc)
    summary[classified.kind] += 1

"""

from __future__ import annotations

import contextlib
import enum
import typing as typ

import httpx
from sqlalchemy.exc import SQLAlchemyError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

__all__ = [
    "AuthenticationError",
    "CommitHabitError",
    "ConfigurationError",
    "ErrorKind",
    "ExternalApiError",
    "StorageError",
    "ValidationError",
    "WebhookError",
    "classify_error",
    "is_installation_revoked",
    "translate_storage_errors",
]


class ErrorKind(enum.StrEnum):
    """Discriminant identifying which variant an error belongs to."""

    CONFIGURATION = "configuration"
    AUTHENTICATION = "authentication"
    EXTERNAL_API = "external_api"
    VALIDATION = "validation"
    WEBHOOK = "webhook"
    STORAGE = "storage"
    INTERNAL = "internal"


class CommitHabitError(Exception):
    """Base class for all classified commithabit failures.

    Attributes
    ----------
    kind
        Variant discriminant.
    code
        Stable error code exposed to API clients.
    retryable
        Whether retrying the same operation may succeed.
    status_code
        HTTP status used when the error is rendered at a request boundary.

    """

    kind: typ.ClassVar[ErrorKind] = ErrorKind.INTERNAL
    default_code: typ.ClassVar[str] = "INTERNAL_001"
    default_status: typ.ClassVar[int] = 500

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        retryable: bool = False,
        status_code: int | None = None,
    ) -> None:
        """Initialise the error with its message and classification."""
        self.message = message
        self.code = code or self.default_code
        self.retryable = retryable
        self.status_code = status_code or self.default_status
        super().__init__(message)

    def to_response(self) -> dict[str, str]:
        """Return the structured body sent to API clients."""
        return {"error": self.message, "code": self.code, "kind": self.kind.value}

    @classmethod
    def unexpected(cls, exc: BaseException) -> CommitHabitError:
        """Wrap an unclassified exception so it can still be accounted for."""
        return cls(f"Unexpected {type(exc).__name__}: {exc}")


class ConfigurationError(CommitHabitError):
    """Raised when required configuration is absent or invalid. Never retried."""

    kind = ErrorKind.CONFIGURATION
    default_code = "CONFIG_001"

    @classmethod
    def missing(cls, env_var: str) -> ConfigurationError:
        """Return an error for a required environment variable that is unset."""
        return cls(f"{env_var} environment variable is required")

    @classmethod
    def missing_app_identity(cls) -> ConfigurationError:
        """Return an error when the GitHub App id or private key is absent."""
        return cls("GitHub App id and private key must both be configured")

    @classmethod
    def invalid_value(
        cls, name: str, value: object, constraint: str
    ) -> ConfigurationError:
        """Return an error for a configuration value outside its constraint."""
        return cls(f"Invalid {name} {value!r}. {constraint}")


class AuthenticationError(CommitHabitError):
    """Raised when a credential is invalid, expired or revoked.

    ``revoked`` marks failures where the installation itself no longer
    exists; callers deactivate it instead of re-issuing a token.
    """

    kind = ErrorKind.AUTHENTICATION
    default_code = "AUTH_001"
    default_status = 401

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        revoked: bool = False,
        status_code: int | None = None,
    ) -> None:
        """Initialise with the revocation flag."""
        self.revoked = revoked
        super().__init__(message, code=code, status_code=status_code)

    @classmethod
    def unauthorized(cls) -> AuthenticationError:
        """Return an error for a request presenting a wrong shared secret."""
        return cls("Unauthorized", code="AUTH_001")

    @classmethod
    def installation_revoked(cls, installation_id: int) -> AuthenticationError:
        """Return an error for an installation the platform no longer knows."""
        return cls(
            f"Installation {installation_id} is revoked or not found",
            code="AUTH_002",
            revoked=True,
        )

    @classmethod
    def invalid_credential(cls, detail: str) -> AuthenticationError:
        """Return an error for a credential the platform rejected."""
        return cls(f"GitHub rejected the credential: {detail}", code="AUTH_003")


class ExternalApiError(CommitHabitError):
    """Raised when the GitHub API call fails.

    Attributes
    ----------
    upstream_status
        HTTP status returned by GitHub, if any.
    retry_after
        Seconds GitHub asked us to wait, if provided.
    gone
        The repository or installation no longer exists; triggers
        deactivation.
    precondition_failed
        The write was rejected because the file changed since it was read.
    missing_target
        The repository exists but has no target file to toggle.

    """

    kind = ErrorKind.EXTERNAL_API
    default_code = "GITHUB_008"
    default_status = 502

    def __init__(  # noqa: PLR0913
        self,
        message: str,
        *,
        code: str | None = None,
        retryable: bool = False,
        upstream_status: int | None = None,
        retry_after: float | None = None,
        gone: bool = False,
        precondition_failed: bool = False,
        missing_target: bool = False,
    ) -> None:
        """Initialise with upstream response details."""
        self.upstream_status = upstream_status
        self.retry_after = retry_after
        self.gone = gone
        self.precondition_failed = precondition_failed
        self.missing_target = missing_target
        super().__init__(message, code=code, retryable=retryable)

    @classmethod
    def rate_limited(cls, retry_after: float | None = None) -> ExternalApiError:
        """Return a retryable error for 429 or exhausted rate limit responses."""
        msg = "GitHub API rate limit exceeded"
        if retry_after is not None:
            msg = f"{msg}, retry after {retry_after:g}s"
        return cls(
            msg,
            code="GITHUB_001",
            retryable=True,
            upstream_status=429,
            retry_after=retry_after,
        )

    @classmethod
    def not_found(cls, resource: str, *, status: int = 404) -> ExternalApiError:
        """Return a non-retryable error for a repository that is gone."""
        return cls(
            f"GitHub resource not found: {resource}",
            code="GITHUB_002",
            upstream_status=status,
            gone=True,
        )

    @classmethod
    def missing_file(cls, path: str) -> ExternalApiError:
        """Return a non-retryable error for an absent target file."""
        return cls(
            f"Target file not found in repository: {path}",
            code="GITHUB_002",
            upstream_status=404,
            missing_target=True,
        )

    @classmethod
    def permission_denied(cls, detail: str) -> ExternalApiError:
        """Return a non-retryable error for 403 responses."""
        return cls(
            f"GitHub permission denied: {detail}",
            code="GITHUB_003",
            upstream_status=403,
        )

    @classmethod
    def network_error(cls, detail: str) -> ExternalApiError:
        """Return a retryable error for connection-level failures."""
        return cls(
            f"GitHub API network error: {detail}", code="GITHUB_004", retryable=True
        )

    @classmethod
    def timeout(cls) -> ExternalApiError:
        """Return a retryable error for request timeouts."""
        return cls("GitHub API request timed out", code="GITHUB_005", retryable=True)

    @classmethod
    def precondition_mismatch(cls, path: str) -> ExternalApiError:
        """Return an error for a write whose blob sha no longer matches."""
        return cls(
            f"File {path} changed since it was read",
            code="GITHUB_006",
            upstream_status=409,
            precondition_failed=True,
        )

    @classmethod
    def server_error(cls, status: int) -> ExternalApiError:
        """Return a retryable error for 5xx responses."""
        return cls(
            f"GitHub API server error {status}",
            code="GITHUB_007",
            retryable=True,
            upstream_status=status,
        )

    @classmethod
    def http_error(cls, status: int, detail: str = "") -> ExternalApiError:
        """Return a non-retryable error for any other unexpected response."""
        msg = f"GitHub API HTTP error {status}"
        if detail:
            msg = f"{msg}: {detail}"
        return cls(msg, code="GITHUB_008", upstream_status=status)


class ValidationError(CommitHabitError):
    """Raised for rejected input or a violated business rule. Never retried."""

    kind = ErrorKind.VALIDATION
    default_code = "VALIDATION_001"
    default_status = 400

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        field: str | None = None,
        status_code: int | None = None,
    ) -> None:
        """Initialise with the offending field, if any."""
        self.field = field
        super().__init__(message, code=code, status_code=status_code)

    @classmethod
    def invalid_input(cls, reason: str, *, field: str | None = None) -> ValidationError:
        """Return an error for malformed request parameters."""
        message = f"{field}: {reason}" if field is not None else reason
        return cls(message, field=field)

    @classmethod
    def installation_cap(cls, user_id: str, cap: int) -> ValidationError:
        """Return an error for a user already at the active-installation cap."""
        return cls(
            f"User {user_id} already has the maximum of {cap} active repositories",
            code="VALIDATION_002",
            status_code=409,
        )

    @classmethod
    def malformed_payload(cls, detail: str) -> ValidationError:
        """Return an error for a webhook body that cannot be decoded."""
        return cls(f"Malformed webhook payload: {detail}", code="VALIDATION_003")

    @classmethod
    def unknown_installation(cls, installation_pk: str) -> ValidationError:
        """Return an error for an installation row that does not exist."""
        return cls(
            f"Installation {installation_pk} not found",
            code="VALIDATION_004",
            status_code=404,
        )

    @classmethod
    def batch_in_progress(cls) -> ValidationError:
        """Return an error for a daily run requested while one is running."""
        return cls(
            "A daily commit run is already in progress",
            code="BATCH_001",
            status_code=409,
        )


class WebhookError(CommitHabitError):
    """Raised when a webhook delivery is rejected before any side effect."""

    kind = ErrorKind.WEBHOOK
    default_code = "WEBHOOK_001"
    default_status = 401

    @classmethod
    def missing_signature(cls) -> WebhookError:
        """Return an error for a delivery without a signature header."""
        return cls("Missing webhook signature")

    @classmethod
    def invalid_signature(cls) -> WebhookError:
        """Return an error for a signature that does not match the payload."""
        return cls("Invalid webhook signature")

    @classmethod
    def missing_header(cls, header: str) -> WebhookError:
        """Return an error for a delivery missing a required header."""
        return cls(
            f"Missing webhook header: {header}", code="WEBHOOK_002", status_code=400
        )


class StorageError(CommitHabitError):
    """Raised when persistence is unavailable or a write fails."""

    kind = ErrorKind.STORAGE
    default_code = "DB_001"
    default_status = 503

    @classmethod
    def from_exception(cls, operation: str, exc: BaseException) -> StorageError:
        """Wrap a database driver exception raised during *operation*."""
        return cls(f"Storage failure during {operation}: {exc}", retryable=True)


def classify_error(exc: BaseException) -> CommitHabitError:
    """Map any exception onto the closed taxonomy.

    Parameters
    ----------
    exc
        Exception raised while processing one unit of work.

    Returns
    -------
    CommitHabitError
        ``exc`` itself when already classified, otherwise a wrapping variant.

    """
    if isinstance(exc, CommitHabitError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return ExternalApiError.timeout()
    if isinstance(exc, httpx.TransportError):
        return ExternalApiError.network_error(str(exc) or type(exc).__name__)
    if isinstance(exc, SQLAlchemyError):
        return StorageError.from_exception("workflow", exc)
    return CommitHabitError.unexpected(exc)


def is_installation_revoked(error: CommitHabitError) -> bool:
    """Return True when *error* means the installation should be deactivated."""
    if isinstance(error, AuthenticationError):
        return error.revoked
    if isinstance(error, ExternalApiError):
        return error.gone
    return False


@contextlib.contextmanager
def translate_storage_errors(operation: str) -> cabc.Iterator[None]:
    """Re-raise SQLAlchemy failures inside the block as ``StorageError``."""
    try:
        yield
    except SQLAlchemyError as exc:
        raise StorageError.from_exception(operation, exc) from exc
