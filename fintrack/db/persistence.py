"""Persistence of ledger collections and sync settings to the key-value store.

This adapter owns every key written to the store. Failures are logged and
degraded to safe defaults: a failed save leaves the in-memory state as the
only copy, a failed load yields an empty collection.
"""

import json
import logging
from datetime import datetime

import aiosqlite
from cryptography.fernet import InvalidToken

from fintrack.auth import TokenEncryption
from fintrack.db.codec import RecordFormatError, decode_collection, encode_collection
from fintrack.db.kvstore import KeyValueStore
from fintrack.db.models import Collection, Credential

LAST_SYNC_KEY = 'lastSyncTime'
CONNECTED_KEY = 'isGoogleConnected'
CREDENTIAL_KEY = 'driveCredential'

log = logging.getLogger('fintrack.persistence')


class PersistenceAdapter:
    """Serializes ledger state to and from the durable store."""

    def __init__(self, store: KeyValueStore, encryption: TokenEncryption | None = None):
        self._store = store
        self._encryption = encryption or TokenEncryption(None)

    async def save(self, collection: Collection, records: list) -> bool:
        """Write one collection; returns False if the store rejected it."""
        payload = json.dumps(encode_collection(collection, records))
        try:
            await self._store.set(collection.value, payload)
        except (aiosqlite.Error, OSError) as e:
            log.error(f'Unable to save {collection.value}: {e}')
            return False
        return True

    async def load(self, collection: Collection) -> list:
        """Read one collection, or an empty list if missing or unreadable."""
        try:
            raw = await self._store.get(collection.value)
        except (aiosqlite.Error, OSError) as e:
            log.error(f'Unable to read {collection.value}: {e}')
            return []
        if raw is None:
            return []
        try:
            return decode_collection(collection, json.loads(raw))
        except (json.JSONDecodeError, RecordFormatError) as e:
            log.warning(f'Discarding malformed {collection.value}: {e}')
            return []

    async def save_sync_settings(self, last_sync: datetime | None, connected: bool) -> bool:
        """Persist the last sync time and the connected flag."""
        try:
            if last_sync:
                await self._store.set(LAST_SYNC_KEY, last_sync.isoformat())
            await self._store.set(CONNECTED_KEY, 'true' if connected else 'false')
        except (aiosqlite.Error, OSError) as e:
            log.error(f'Unable to save sync settings: {e}')
            return False
        return True

    async def load_sync_settings(self) -> tuple[datetime | None, bool]:
        """Read the last sync time and the connected flag."""
        try:
            raw_last_sync = await self._store.get(LAST_SYNC_KEY)
            connected = await self._store.get(CONNECTED_KEY) == 'true'
        except (aiosqlite.Error, OSError) as e:
            log.error(f'Unable to read sync settings: {e}')
            return None, False
        last_sync = None
        if raw_last_sync:
            try:
                last_sync = datetime.fromisoformat(raw_last_sync)
            except ValueError:
                log.warning(f'Ignoring malformed {LAST_SYNC_KEY}: {raw_last_sync!r}')
        return last_sync, connected

    async def save_credential(self, credential: Credential) -> bool:
        """Persist the OAuth credential with tokens encrypted when configured."""
        payload = json.dumps({
            'accessToken': self._encryption.encrypt(credential.access_token),
            'refreshToken': self._encryption.encrypt(credential.refresh_token),
            'expiresAt': credential.expires_at.isoformat(),
        })
        try:
            await self._store.set(CREDENTIAL_KEY, payload)
        except (aiosqlite.Error, OSError) as e:
            log.error(f'Unable to save credential: {e}')
            return False
        return True

    async def load_credential(self) -> Credential | None:
        """Read the stored OAuth credential, if any."""
        try:
            raw = await self._store.get(CREDENTIAL_KEY)
        except (aiosqlite.Error, OSError) as e:
            log.error(f'Unable to read credential: {e}')
            return None
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            return Credential(
                access_token=self._encryption.decrypt(data['accessToken']),
                refresh_token=self._encryption.decrypt(data['refreshToken']),
                expires_at=datetime.fromisoformat(data['expiresAt']),
            )
        except (KeyError, TypeError, ValueError, InvalidToken) as e:
            log.warning(f'Discarding unreadable credential: {e}')
            return None

    async def clear_credential(self) -> None:
        """Forget the stored OAuth credential."""
        try:
            await self._store.delete(CREDENTIAL_KEY)
        except (aiosqlite.Error, OSError) as e:
            log.error(f'Unable to clear credential: {e}')
