"""
Pytest configuration and shared fixtures

Fun fact: The name "conftest" comes from pytest's configuration testing
framework. Files named conftest.py are automatically discovered and their
fixtures are available to all tests in the same directory and subdirectories!
"""

import tempfile
from pathlib import Path
from typing import Iterator

import pytest

from decaying_license.engine import LicenseEngine
from decaying_license.kernel.event_store import SQLiteEventStore
from decaying_license.kernel.ledger import InMemoryLedger
from decaying_license.kernel.policy import LicensePolicy
from decaying_license.kernel.time import TestTimeProvider
from decaying_license.license.handlers import LicenseCommandHandlers
from decaying_license.license.projections import LicenseRegistry
from tests.helpers import STARTING_BALANCE


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database file that's cleaned up after test"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup (WAL mode leaves sidecar files)
    for suffix in ("", "-wal", "-shm"):
        path = Path(f"{db_path}{suffix}")
        if path.exists():
            path.unlink()


@pytest.fixture
def event_store(temp_db: Path) -> SQLiteEventStore:
    """Provide a fresh event store for each test"""
    return SQLiteEventStore(temp_db)


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Starts at the Unix epoch: "time 0" in the scenarios is a real instant,
    and a license acquired then is just as licensed as any other.
    """
    return TestTimeProvider()


@pytest.fixture
def policy() -> LicensePolicy:
    """Default mechanism parameters (full decay, per-period patronage)"""
    return LicensePolicy()


@pytest.fixture
def ledger() -> InMemoryLedger:
    """
    Strict ledger with funded wallets for every scenario participant

    alice drafts, bob licenses first, carol and dave bid or take over.
    """
    ledger = InMemoryLedger(strict=True)
    for identity in ("alice", "bob", "carol", "dave", "erin"):
        ledger.credit(identity, STARTING_BALANCE)
    return ledger


@pytest.fixture
def handlers(test_time: TestTimeProvider, policy: LicensePolicy) -> LicenseCommandHandlers:
    """
    Provide license command handlers for testing

    Handlers are stateless - they take the registry as a parameter.
    """
    return LicenseCommandHandlers(test_time, policy)


@pytest.fixture
def registry() -> LicenseRegistry:
    """Provide a fresh, empty license registry projection"""
    return LicenseRegistry()


@pytest.fixture
def engine(
    temp_db: Path,
    test_time: TestTimeProvider,
    policy: LicensePolicy,
    ledger: InMemoryLedger,
) -> LicenseEngine:
    """Engine over a temporary database, epoch clock and strict ledger"""
    return LicenseEngine(temp_db, policy=policy, time_provider=test_time, ledger=ledger)
