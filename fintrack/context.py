"""Application context wiring storage, ledger and sync together."""

import logging
from dataclasses import dataclass

from fintrack.api.sync import SyncEngine
from fintrack.auth import GoogleAuthorizer, TokenEncryption
from fintrack.config import Config
from fintrack.db.kvstore import KeyValueStore
from fintrack.db.persistence import PersistenceAdapter
from fintrack.ledger import Ledger

log = logging.getLogger("fintrack.context")


@dataclass
class AppContext:
    """Everything a running FinTrack session owns."""

    config: Config
    store: KeyValueStore
    persistence: PersistenceAdapter
    sync: SyncEngine
    ledger: Ledger

    async def close(self) -> None:
        """Finish background pushes and close storage."""
        await self.sync.drain()
        await self.store.close()


def build_context(config: Config) -> AppContext:
    """Construct all components without performing any I/O."""
    store = KeyValueStore(config.storage.path)
    encryption = TokenEncryption(config.security.encryption_key)
    if not encryption.enabled:
        log.warning("No encryption key configured; Drive tokens are stored in plain text")
    persistence = PersistenceAdapter(store, encryption)
    sync = SyncEngine(
        GoogleAuthorizer(config.drive),
        persistence,
        folder_name=config.drive.folder_name,
    )
    ledger = Ledger(persistence, sync)
    return AppContext(
        config=config, store=store, persistence=persistence, sync=sync, ledger=ledger
    )


async def open_context(config: Config) -> AppContext:
    """Build the context, open storage and load persisted state."""
    context = build_context(config)
    await context.store.connect()
    await context.ledger.load()
    await context.sync.load_settings()
    return context
