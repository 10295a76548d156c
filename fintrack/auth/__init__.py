"""Authentication module for Google Drive OAuth."""

import asyncio
import logging
import secrets
import webbrowser
from dataclasses import dataclass
from datetime import datetime, timedelta
from html import escape
from http.server import BaseHTTPRequestHandler, HTTPServer
from threading import Event, Thread
from urllib.parse import parse_qs, urlencode, urlparse

import httpx
from cryptography.fernet import Fernet

from fintrack.config import DriveConfig
from fintrack.db.models import Credential

AUTHORIZATION_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
REVOKE_URL = "https://oauth2.googleapis.com/revoke"
OAUTH_SCOPES = [
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
]
TOKEN_EXPIRY_BUFFER_SECONDS = 300
CALLBACK_TIMEOUT_SECONDS = 120.0

log = logging.getLogger("fintrack.auth")


class AuthorizationError(Exception):
    """Base class for failures while obtaining an access token."""

    user_message = (
        "Failed to connect to Google Drive. "
        "Please check your internet connection and try again."
    )


class AuthorizationDenied(AuthorizationError):
    """The user refused consent or the grant was revoked."""

    user_message = (
        "Failed to connect to Google Drive. Access was denied. "
        "Please try again and grant the necessary permissions."
    )


class AuthorizationBlocked(AuthorizationError):
    """The consent page could not be shown to the user."""

    user_message = (
        "Failed to connect to Google Drive. "
        "Please allow the browser to open and try again."
    )


class AuthorizationNetworkError(AuthorizationError):
    """The token endpoint could not be reached or rejected the request."""

    pass


class TokenEncryption:
    """Fernet encryption for tokens at rest; values pass through without a key."""

    def __init__(self, encryption_key: str | None):
        self._fernet = Fernet(encryption_key) if encryption_key else None

    @property
    def enabled(self) -> bool:
        """Whether a key is configured."""
        return self._fernet is not None

    def encrypt(self, plaintext: str) -> str:
        """Encrypt ``plaintext`` for storage."""
        if self._fernet is None:
            return plaintext
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, token: str) -> str:
        """Reverse ``encrypt``; raises ``InvalidToken`` for a wrong key."""
        if self._fernet is None:
            return token
        return self._fernet.decrypt(token.encode()).decode()


@dataclass
class RedirectParams:
    """Query parameters Google appends to the redirect URI."""

    code: str | None = None
    state: str | None = None
    error: str | None = None

    @classmethod
    def from_path(cls, path: str) -> "RedirectParams":
        query = parse_qs(urlparse(path).query)
        return cls(
            code=query.get("code", [None])[0],
            state=query.get("state", [None])[0],
            error=query.get("error", [None])[0],
        )


RESULT_PAGE = (
    "<!DOCTYPE html><html><head><title>FinTrack - {title}</title></head>"
    "<body><h1>{title}</h1><p>{message}</p></body></html>"
)


class CallbackHandler(BaseHTTPRequestHandler):
    """Answers the OAuth redirect and hands its parameters to the server."""

    def log_message(self, format: str, *args) -> None:
        """Route request logging to the module logger."""
        log.debug(f"Redirect listener: {format % args}")

    def do_GET(self) -> None:
        """Record the redirect and show a closing page."""
        params = RedirectParams.from_path(self.path)
        if params.error:
            page = RESULT_PAGE.format(
                title="Authorization Failed", message=f"Error: {escape(params.error)}"
            )
        else:
            page = RESULT_PAGE.format(
                title="Authorization Successful",
                message="You can close this window and return to FinTrack.",
            )
        body = page.encode()
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)
        self.server.deliver(params)


class RedirectListener(HTTPServer):
    """Single-request HTTP server holding the received redirect."""

    def __init__(self, port: int):
        super().__init__(("localhost", port), CallbackHandler)
        self.received = RedirectParams()
        self.arrived = Event()

    def deliver(self, params: RedirectParams) -> None:
        self.received = params
        self.arrived.set()


class CallbackServer:
    """Waits on the loopback redirect URI for the consent result."""

    def __init__(self, port: int):
        self._port = port
        self._listener: RedirectListener | None = None
        self._worker: Thread | None = None
        self.params = RedirectParams()

    def start(self) -> None:
        """Bind the port and serve one request in a daemon thread."""
        self.params = RedirectParams()
        self._listener = RedirectListener(self._port)
        self._worker = Thread(target=self._listener.handle_request, daemon=True)
        self._worker.start()

    def wait_for_callback(self, timeout: float = CALLBACK_TIMEOUT_SECONDS) -> bool:
        """Block until the redirect arrives; False on timeout or if never started."""
        if self._listener is None or not self._listener.arrived.wait(timeout):
            return False
        self.params = self._listener.received
        return True

    def stop(self) -> None:
        """Release the port."""
        if self._listener is not None:
            self._listener.server_close()
            self._listener = None
        self._worker = None


class GoogleAuthorizer:
    """Obtains and refreshes Google OAuth credentials.

    The interactive flow opens the consent page in the user's browser and
    listens on the loopback redirect URI for the authorization code.
    """

    def __init__(self, config: DriveConfig):
        self._config = config
        self._state: str | None = None

    def get_authorization_url(self) -> str:
        """Generate the consent page URL for the OAuth flow."""
        self._state = secrets.token_urlsafe(32)
        params = {
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_uri,
            "response_type": "code",
            "scope": " ".join(OAUTH_SCOPES),
            "state": self._state,
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{AUTHORIZATION_URL}?{urlencode(params)}"

    async def request_access_token(self, open_browser: bool = True) -> Credential:
        """Run the interactive consent flow and return a fresh credential."""
        server = CallbackServer(self._get_callback_port())
        try:
            server.start()
        except OSError as e:
            raise AuthorizationError(f"Could not listen for the OAuth redirect: {e}") from e
        try:
            auth_url = self.get_authorization_url()
            if open_browser and not webbrowser.open(auth_url):
                raise AuthorizationBlocked("Browser could not be opened for consent")
            arrived = await asyncio.get_running_loop().run_in_executor(
                None, server.wait_for_callback, CALLBACK_TIMEOUT_SECONDS
            )
            params = server.params
            if params.error == "access_denied":
                raise AuthorizationDenied("User denied access")
            if params.error:
                raise AuthorizationError(f"Authorization failed: {params.error}")
            if not arrived or not params.code:
                raise AuthorizationError("No authorization code received")
            if params.state != self._state:
                raise AuthorizationError("State mismatch - possible CSRF attack")
            return await self._exchange_code(params.code)
        finally:
            server.stop()

    async def _exchange_code(self, auth_code: str) -> Credential:
        """Exchange an authorization code for tokens."""
        data = await self._post_token_request({
            "code": auth_code,
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
            "redirect_uri": self._config.redirect_uri,
            "grant_type": "authorization_code",
        })
        return self._credential_from_response(data, refresh_token=None)

    async def refresh(self, credential: Credential) -> Credential:
        """Obtain a new access token using the stored refresh token."""
        if not credential.refresh_token:
            raise AuthorizationDenied("No refresh token available")
        data = await self._post_token_request({
            "refresh_token": credential.refresh_token,
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
            "grant_type": "refresh_token",
        })
        return self._credential_from_response(data, refresh_token=credential.refresh_token)

    async def revoke(self, credential: Credential) -> None:
        """Revoke a credential at the provider."""
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(REVOKE_URL, data={"token": credential.refresh_token})
            response.raise_for_status()

    async def _post_token_request(self, form: dict) -> dict:
        """POST to the token endpoint, mapping failures to typed errors."""
        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.post(TOKEN_URL, data=form)
        except httpx.HTTPError as e:
            log.error(f"Token endpoint unreachable: {e}")
            raise AuthorizationNetworkError(f"Token request failed: {e}") from e
        if response.status_code == 400 and _error_code(response) == "invalid_grant":
            raise AuthorizationDenied("Grant is invalid or has been revoked")
        if response.status_code >= 400:
            log.error(f"Token endpoint error response: {response.text}")
            raise AuthorizationNetworkError(
                f"Token endpoint returned {response.status_code}: {response.text}"
            )
        return response.json()

    def _credential_from_response(self, data: dict, refresh_token: str | None) -> Credential:
        """Build a Credential from a token endpoint response."""
        if "access_token" not in data:
            raise AuthorizationError("Token response did not include an access token")
        expires_at = datetime.now() + timedelta(seconds=int(data.get("expires_in", 3600)))
        return Credential(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or refresh_token or "",
            expires_at=expires_at,
        )

    def is_token_expired(self, credential: Credential) -> bool:
        """Check if a credential is expired or about to expire."""
        buffer = timedelta(seconds=TOKEN_EXPIRY_BUFFER_SECONDS)
        return datetime.now() >= (credential.expires_at - buffer)

    def _get_callback_port(self) -> int:
        """Extract the port from the redirect URI."""
        return urlparse(self._config.redirect_uri).port or 8086


def _error_code(response: httpx.Response) -> str | None:
    """Extract the OAuth error code from an error response body."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("error")
    return None
