"""Google Drive API client module."""

import json
import logging
from dataclasses import dataclass

import httpx

BASE_URL = "https://www.googleapis.com"
API_VERSION = "v3"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
JSON_MIME_TYPE = "application/json"
MULTIPART_BOUNDARY = "fintrack_boundary"

log = logging.getLogger('fintrack.api')


@dataclass
class DriveFile:
    """File or folder metadata returned by Drive."""

    id: str
    name: str


def folder_query(name: str) -> str:
    """Drive search expression for a folder by name."""
    return (
        f"name='{_escape(name)}' and mimeType='{FOLDER_MIME_TYPE}' and trashed=false"
    )


def file_query(name: str, parent_id: str) -> str:
    """Drive search expression for a file by name inside a folder."""
    return f"name='{_escape(name)}' and '{_escape(parent_id)}' in parents and trashed=false"


def _escape(value: str) -> str:
    """Escape a literal for use inside a Drive query string."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_multipart_body(metadata: dict, content: str) -> bytes:
    """Build a multipart/related upload body of metadata and JSON content."""
    delimiter = f"--{MULTIPART_BOUNDARY}"
    body = (
        f"{delimiter}\r\n"
        f"Content-Type: {JSON_MIME_TYPE}; charset=UTF-8\r\n\r\n"
        f"{json.dumps(metadata)}\r\n"
        f"{delimiter}\r\n"
        f"Content-Type: {JSON_MIME_TYPE}\r\n\r\n"
        f"{content}\r\n"
        f"{delimiter}--"
    )
    return body.encode()


class DriveClient:
    """Async client for the Google Drive files API."""

    def __init__(self, access_token: str, base_url: str = BASE_URL):
        self._access_token = access_token
        self._base_url = base_url
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "DriveClient":
        """Enter async context."""
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._get_headers(),
            timeout=30.0,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_headers(self) -> dict[str, str]:
        """Get request headers with authorization."""
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Accept": JSON_MIME_TYPE,
        }

    def _files_url(self, file_id: str | None = None, upload: bool = False) -> str:
        """Build a files endpoint URL."""
        prefix = "/upload" if upload else ""
        url = f"{prefix}/drive/{API_VERSION}/files"
        return f"{url}/{file_id}" if file_id else url

    async def list_files(self, query: str) -> list[DriveFile]:
        """List files matching a Drive search expression."""
        params = {"q": query, "spaces": "drive", "fields": "files(id, name)"}
        response = await self._client.get(self._files_url(), params=params)
        response.raise_for_status()
        files = response.json().get("files", [])
        return [self._parse_file(f) for f in files]

    async def create_folder(self, name: str) -> DriveFile:
        """Create a folder at the root of the user's Drive."""
        payload = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        response = await self._client.post(self._files_url(), json=payload)
        response.raise_for_status()
        return self._parse_file(response.json(), default_name=name)

    async def create_file(self, name: str, parent_id: str, content: str) -> DriveFile:
        """Create a JSON file with initial content inside a folder."""
        metadata = {"name": name, "parents": [parent_id], "mimeType": JSON_MIME_TYPE}
        response = await self._client.post(
            self._files_url(upload=True),
            params={"uploadType": "multipart"},
            headers={"Content-Type": f'multipart/related; boundary="{MULTIPART_BOUNDARY}"'},
            content=build_multipart_body(metadata, content),
        )
        response.raise_for_status()
        return self._parse_file(response.json(), default_name=name)

    async def update_file_content(self, file_id: str, content: str) -> None:
        """Replace a file's entire content."""
        response = await self._client.patch(
            self._files_url(file_id, upload=True),
            params={"uploadType": "media"},
            headers={"Content-Type": JSON_MIME_TYPE},
            content=content.encode(),
        )
        if response.status_code >= 400:
            log.error(f'Drive error response: {response.text}')
        response.raise_for_status()

    async def get_file_content(self, file_id: str) -> str:
        """Download a file's content."""
        response = await self._client.get(self._files_url(file_id), params={"alt": "media"})
        response.raise_for_status()
        return response.text

    def _parse_file(self, data: dict, default_name: str = "") -> DriveFile:
        """Parse file metadata from an API response."""
        if "id" not in data:
            raise DriveAPIError(f"Drive response missing file id: {data}")
        return DriveFile(id=data["id"], name=data.get("name", default_name))


class DriveAPIError(Exception):
    """Exception raised for malformed Drive API responses."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
