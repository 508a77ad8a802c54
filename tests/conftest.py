"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import typing as typ

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from commithabit.audit.service import AuditTrail
from commithabit.common.storage import init_storage
from commithabit.credentials.broker import CredentialBroker
from commithabit.github.config import GitHubAppConfig
from commithabit.orchestrator.service import CommitOrchestrator
from commithabit.registry.service import InstallationRegistry
from tests.helpers.github_fakes import FakeGitHub

if typ.TYPE_CHECKING:
    from pathlib import Path


async def _setup_sqlite(tmp_path: Path) -> AsyncEngine:
    """Create a SQLite engine and create every table."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'commithabit_test.db'}",
        poolclass=NullPool,
    )
    try:
        await init_storage(engine)
    except Exception:
        await engine.dispose()
        raise
    return engine


@pytest_asyncio.fixture
async def session_factory(
    tmp_path: Path,
) -> typ.AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Yield a fresh async session factory backed by sqlite."""
    engine = await _setup_sqlite(tmp_path)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture(scope="session")
def private_key_pem() -> str:
    """Return a throwaway RSA private key in PEM form."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def app_config(private_key_pem: str) -> GitHubAppConfig:
    """Return a configured GitHub App identity for tests."""
    return GitHubAppConfig(
        app_id="12345",
        private_key=private_key_pem,
        api_url="https://github.test",
    )


@pytest.fixture
def registry(
    session_factory: async_sessionmaker[AsyncSession],
) -> InstallationRegistry:
    """Return a registry bound to the test database."""
    return InstallationRegistry(session_factory)


@pytest.fixture
def audit(session_factory: async_sessionmaker[AsyncSession]) -> AuditTrail:
    """Return an audit trail bound to the test database."""
    return AuditTrail(session_factory)


@pytest.fixture
def fake_github() -> FakeGitHub:
    """Return an empty in-memory GitHub."""
    return FakeGitHub()


@pytest.fixture
def broker(app_config: GitHubAppConfig, fake_github: FakeGitHub) -> CredentialBroker:
    """Return a credential broker that exchanges against the fake."""
    return CredentialBroker(app_config, fake_github)


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleeper() -> SleepRecorder:
    """Return a sleep recorder so backoff never waits."""
    return SleepRecorder()


@pytest.fixture
def orchestrator(
    registry: InstallationRegistry,
    broker: CredentialBroker,
    fake_github: FakeGitHub,
    audit: AuditTrail,
    sleeper: SleepRecorder,
) -> CommitOrchestrator:
    """Return an orchestrator wired to the fake GitHub and sqlite."""
    return CommitOrchestrator(
        registry=registry,
        broker=broker,
        github=fake_github,
        audit=audit,
        sleep=sleeper,
    )
