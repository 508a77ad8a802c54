"""GitHub App credential issuance."""

from commithabit.credentials.broker import DEFAULT_EXPIRY_SKEW, CredentialBroker

__all__ = ["DEFAULT_EXPIRY_SKEW", "CredentialBroker"]
