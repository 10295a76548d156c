"""Shared test fixtures."""

import tempfile
from pathlib import Path

import pytest

from fintrack.config import (
    Config,
    DisplayConfig,
    DriveConfig,
    SecurityConfig,
    StorageConfig,
)
from fintrack.db.kvstore import KeyValueStore
from fintrack.db.models import SyncState
from fintrack.db.persistence import PersistenceAdapter
from fintrack.ledger import Ledger


class FakeSyncEngine:
    """In-memory stand-in for SyncEngine that records what the ledger asks of it."""

    def __init__(self):
        self.state = SyncState()
        self.scheduled: list[tuple] = []
        self.full_syncs = 0
        self.remote: dict = {}
        self.source = dict

    def bind_source(self, source) -> None:
        self.source = source

    def schedule_push(self, *collections) -> None:
        self.scheduled.append(collections)

    async def full_sync(self) -> bool:
        self.full_syncs += 1
        return self.state.is_connected

    async def pull_collection(self, collection) -> list:
        return self.remote.get(collection, [])


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_db_path(temp_dir):
    """Create a temporary database path."""
    return temp_dir / "test.db"


@pytest.fixture
def drive_config():
    """Create a test Drive config."""
    return DriveConfig(
        client_id="test-client-id",
        client_secret="test-client-secret",
        redirect_uri="http://localhost:8086/callback",
    )


@pytest.fixture
def storage_config(temp_db_path):
    """Create a test storage config."""
    return StorageConfig(path=temp_db_path)


@pytest.fixture
def security_config():
    """Create a test security config without encryption."""
    return SecurityConfig(encryption_key=None)


@pytest.fixture
def security_config_with_encryption():
    """Create a test security config with encryption."""
    from cryptography.fernet import Fernet

    key = Fernet.generate_key().decode()
    return SecurityConfig(encryption_key=key)


@pytest.fixture
def config(drive_config, storage_config, security_config):
    """Create a test config."""
    return Config(
        drive=drive_config,
        storage=storage_config,
        security=security_config,
        display=DisplayConfig(currency_symbol="₹"),
    )


@pytest.fixture
async def store(temp_db_path):
    """Create a key-value store with a temporary database."""
    kv = KeyValueStore(temp_db_path)
    await kv.connect()
    yield kv
    await kv.close()


@pytest.fixture
def persistence(store):
    """Create a persistence adapter over the temporary store."""
    return PersistenceAdapter(store)


@pytest.fixture
def fake_sync():
    """Create a fake sync engine."""
    return FakeSyncEngine()


@pytest.fixture
async def ledger(persistence, fake_sync):
    """Create an empty ledger wired to the fake sync engine."""
    book = Ledger(persistence, fake_sync)
    await book.load()
    return book
