"""Synchronization of ledger collections with Google Drive.

Each collection is stored as one JSON file inside a dedicated Drive folder.
Pushes overwrite the whole file; pulls fetch the whole file. Nothing is
merged, so the last writer wins.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from datetime import datetime

import httpx

from fintrack.api import DriveAPIError, DriveClient, file_query, folder_query
from fintrack.auth import AuthorizationDenied, AuthorizationError, GoogleAuthorizer
from fintrack.config import DEFAULT_FOLDER_NAME
from fintrack.db.codec import RecordFormatError, decode_collection, encode_collection
from fintrack.db.models import Collection, Credential, SyncState, SyncStatus
from fintrack.db.persistence import PersistenceAdapter

SETTINGS_FILE_KEY = 'settings'

REMOTE_FILES = {
    Collection.EXPENSES.value: 'expenses_data.json',
    Collection.PAYMENT_METHODS.value: 'payment_methods.json',
    Collection.REMINDERS.value: 'reminders_data.json',
    SETTINGS_FILE_KEY: 'app_settings.json',
}

SYNCED_COLLECTIONS = (Collection.EXPENSES, Collection.PAYMENT_METHODS, Collection.REMINDERS)

ClientFactory = Callable[[str], DriveClient]
SnapshotSource = Callable[[], dict[Collection, list]]

log = logging.getLogger('fintrack.sync')


class SyncError(Exception):
    """Raised when the remote folder or files cannot be provisioned."""

    user_message = 'Failed to set up the Google Drive folder. Please try again.'


class SyncEngine:
    """Owns the Drive connection state and pushes/pulls collection snapshots."""

    def __init__(
        self,
        authorizer: GoogleAuthorizer,
        persistence: PersistenceAdapter,
        folder_name: str = DEFAULT_FOLDER_NAME,
        client_factory: ClientFactory = DriveClient,
    ):
        self._authorizer = authorizer
        self._persistence = persistence
        self._folder_name = folder_name
        self._client_factory = client_factory
        self._state = SyncState(file_ids={key: None for key in REMOTE_FILES})
        self._credential: Credential | None = None
        self._source: SnapshotSource = dict
        self._provision_lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()
        self._resume_requested = False

    @property
    def state(self) -> SyncState:
        """Current connection state, for status display."""
        return self._state

    def bind_source(self, source: SnapshotSource) -> None:
        """Set the callable that returns the current collections to push."""
        self._source = source

    async def load_settings(self) -> None:
        """Restore the last sync time and connected flag from storage."""
        last_sync, connected = await self._persistence.load_sync_settings()
        self._state.last_sync = last_sync
        self._resume_requested = connected

    # Connection lifecycle

    async def connect(self, interactive: bool = True) -> SyncStatus:
        """Authorize, provision the remote folder and files, then push everything.

        A call made while a connection attempt is in progress is ignored.
        Raises AuthorizationError or SyncError after resetting to offline.
        """
        if self._state.status == SyncStatus.SYNCING:
            log.info('Connect ignored: connection already in progress')
            return self._state.status
        if self._state.status == SyncStatus.ONLINE:
            return self._state.status

        self._state.status = SyncStatus.SYNCING
        try:
            credential = await self._authorize(interactive)
        except AuthorizationError as e:
            log.error(f'Drive authorization failed: {e}')
            self._go_offline()
            raise
        if self._state.status != SyncStatus.SYNCING:
            log.info('Connection abandoned after disconnect')
            return self._state.status
        self._credential = credential
        await self._persistence.save_credential(credential)

        try:
            async with self._client_factory(credential.access_token) as client:
                await self.provision(client)
        except (httpx.HTTPError, DriveAPIError) as e:
            log.error(f'Drive provisioning failed: {e}')
            self._go_offline()
            raise SyncError(f'Provisioning failed: {e}') from e
        if self._state.status != SyncStatus.SYNCING:
            return self._state.status

        self._state.status = SyncStatus.ONLINE
        await self._push_all()
        self._state.last_sync = datetime.now()
        await self._persistence.save_sync_settings(self._state.last_sync, connected=True)
        log.info('Connected to Google Drive')
        return self._state.status

    async def resume(self) -> SyncStatus:
        """Reconnect without user interaction if a previous session was connected."""
        if not self._resume_requested:
            return self._state.status
        try:
            return await self.connect(interactive=False)
        except (AuthorizationError, SyncError) as e:
            log.warning(f'Could not resume Drive session: {e}')
            return self._state.status

    async def disconnect(self, forget_credential: bool = False) -> None:
        """Stop syncing; remote ids are kept but must be re-verified.

        With forget_credential the stored grant is revoked and removed.
        """
        credential = self._credential
        self._go_offline()
        self._resume_requested = False
        await self._persistence.save_sync_settings(self._state.last_sync, connected=False)
        if forget_credential:
            credential = credential or await self._persistence.load_credential()
            if credential and credential.refresh_token:
                try:
                    await self._authorizer.revoke(credential)
                except httpx.HTTPError as e:
                    log.warning(f'Could not revoke Drive credential: {e}')
            await self._persistence.clear_credential()

    def _go_offline(self) -> None:
        """Reset connection flags, keeping ids for reuse."""
        self._state.status = SyncStatus.OFFLINE
        self._state.verified = False
        self._credential = None

    async def _authorize(self, interactive: bool) -> Credential:
        """Reuse, refresh or interactively obtain a credential."""
        stored = self._credential or await self._persistence.load_credential()
        if stored and not self._authorizer.is_token_expired(stored):
            return stored
        if stored and stored.refresh_token:
            try:
                return await self._authorizer.refresh(stored)
            except AuthorizationDenied:
                log.warning('Stored Drive credential was rejected')
                await self._persistence.clear_credential()
                if not interactive:
                    raise
        elif not interactive:
            raise AuthorizationDenied('No stored Drive credential')
        return await self._authorizer.request_access_token()

    async def _access_token(self) -> str | None:
        """Current access token, refreshed when close to expiry."""
        if self._credential is None:
            return None
        if self._authorizer.is_token_expired(self._credential):
            try:
                self._credential = await self._authorizer.refresh(self._credential)
            except AuthorizationError as e:
                log.error(f'Drive token refresh failed: {e}')
                return None
            await self._persistence.save_credential(self._credential)
        return self._credential.access_token

    # Provisioning

    async def provision(self, client: DriveClient) -> None:
        """Ensure the folder and every data file exist, reusing existing ones."""
        async with self._provision_lock:
            await self.ensure_folder(client)
            for key in REMOTE_FILES:
                await self.ensure_file(client, key)
            self._state.verified = True

    async def ensure_folder(self, client: DriveClient) -> str:
        """Find or create the app folder and remember its id."""
        existing = await client.list_files(folder_query(self._folder_name))
        if existing:
            folder_id = existing[0].id
            log.info(f'Found existing folder with ID: {folder_id}')
        else:
            folder_id = (await client.create_folder(self._folder_name)).id
            log.info(f'Folder created with ID: {folder_id}')
        self._state.folder_id = folder_id
        return folder_id

    async def ensure_file(self, client: DriveClient, key: str) -> str | None:
        """Find or create one data file; a failure leaves its id unset."""
        file_name = REMOTE_FILES[key]
        try:
            existing = await client.list_files(file_query(file_name, self._state.folder_id))
            if existing:
                file_id = existing[0].id
                log.info(f'Found existing file {file_name} with ID: {file_id}')
            else:
                created = await client.create_file(file_name, self._state.folder_id, '[]')
                file_id = created.id
                log.info(f'File {file_name} created with ID: {file_id}')
        except (httpx.HTTPError, DriveAPIError) as e:
            log.error(f'Failed to set up file {file_name}: {e}')
            self._state.file_ids[key] = None
            return None
        self._state.file_ids[key] = file_id
        return file_id

    # Push and pull

    async def push_collection(self, collection: Collection, records: list) -> bool:
        """Overwrite one collection's remote file; no-op without a file id."""
        return await self._push_document(collection.value, encode_collection(collection, records))

    async def _push_document(self, key: str, document) -> bool:
        """Overwrite a remote file with a JSON document."""
        file_id = self._state.file_ids.get(key)
        if not file_id:
            return False
        access_token = await self._access_token()
        if access_token is None:
            return False
        try:
            async with self._client_factory(access_token) as client:
                await client.update_file_content(file_id, json.dumps(document))
        except (httpx.HTTPError, DriveAPIError) as e:
            log.error(f'Failed to sync {key}: {e}')
            return False
        log.info(f'{key} synced successfully')
        return True

    async def pull_collection(self, collection: Collection) -> list:
        """Fetch one collection's remote snapshot, or an empty list on failure."""
        file_id = self._state.file_ids.get(collection.value)
        if not file_id:
            return []
        access_token = await self._access_token()
        if access_token is None:
            return []
        try:
            async with self._client_factory(access_token) as client:
                content = await client.get_file_content(file_id)
            return decode_collection(collection, json.loads(content or '[]'))
        except (httpx.HTTPError, DriveAPIError, json.JSONDecodeError, RecordFormatError) as e:
            log.error(f'Failed to load {collection.value} from Drive: {e}')
            return []

    async def _push_all(self) -> bool:
        """Push every collection and the settings document sequentially."""
        snapshot = self._source()
        results = []
        for collection in SYNCED_COLLECTIONS:
            results.append(await self.push_collection(collection, snapshot.get(collection, [])))
        settings = {
            'lastSyncTime': datetime.now().isoformat(),
            'counts': {c.value: len(snapshot.get(c, [])) for c in SYNCED_COLLECTIONS},
        }
        await self._push_document(SETTINGS_FILE_KEY, settings)
        return all(results)

    async def full_sync(self) -> bool:
        """Push all collections; no-op unless connected."""
        if not self._state.is_connected:
            return False
        log.info('Performing full sync...')
        self._state.status = SyncStatus.SYNCING
        try:
            succeeded = await self._push_all()
        finally:
            if self._state.status == SyncStatus.SYNCING:
                self._state.status = SyncStatus.ONLINE
        self._state.last_sync = datetime.now()
        await self._persistence.save_sync_settings(
            self._state.last_sync, connected=self._state.is_connected
        )
        return succeeded

    def schedule_push(self, *collections: Collection) -> asyncio.Task | None:
        """Push collections in the background if connected."""
        if not self._state.is_connected:
            return None
        task = asyncio.get_running_loop().create_task(self._push_and_stamp(collections))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _push_and_stamp(self, collections: tuple[Collection, ...]) -> None:
        """Push collections and record the sync time if all succeeded."""
        snapshot = self._source()
        results = [
            await self.push_collection(collection, snapshot.get(collection, []))
            for collection in collections
        ]
        if all(results) and self._state.is_connected:
            self._state.last_sync = datetime.now()
            await self._persistence.save_sync_settings(self._state.last_sync, connected=True)

    async def drain(self) -> None:
        """Wait for background pushes to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
