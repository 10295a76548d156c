"""Tests for Google OAuth authorization."""

import io
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, Mock, patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import respx

from fintrack.auth import (
    OAUTH_SCOPES,
    REVOKE_URL,
    TOKEN_EXPIRY_BUFFER_SECONDS,
    TOKEN_URL,
    AuthorizationBlocked,
    AuthorizationDenied,
    AuthorizationError,
    AuthorizationNetworkError,
    CallbackHandler,
    CallbackServer,
    GoogleAuthorizer,
    RedirectParams,
    TokenEncryption,
)
from fintrack.config import DriveConfig
from fintrack.db.models import Credential


def make_credential(expires_in: timedelta = timedelta(hours=1), refresh_token: str = "refresh"):
    """Create a test credential."""
    return Credential(
        access_token="access",
        refresh_token=refresh_token,
        expires_at=datetime.now() + expires_in,
    )


def mock_callback_server(error=None, auth_code=None, state=None) -> Mock:
    """Create a callback server double with the given redirect values."""
    server = Mock()
    server.params = RedirectParams(code=auth_code, state=state, error=error)
    return server


class TestTokenEncryption:
    """Tests for TokenEncryption class."""

    def test_encrypt_decrypt_with_key(self, security_config_with_encryption):
        """Test encryption and decryption with a key."""
        encryption = TokenEncryption(security_config_with_encryption.encryption_key)
        encrypted = encryption.encrypt("secret_token_value")
        assert encryption.enabled is True
        assert encrypted != "secret_token_value"
        assert encryption.decrypt(encrypted) == "secret_token_value"

    def test_passthrough_without_key(self, security_config):
        """Test values pass through unchanged without a key."""
        encryption = TokenEncryption(security_config.encryption_key)
        assert encryption.enabled is False
        assert encryption.encrypt("secret") == "secret"
        assert encryption.decrypt("secret") == "secret"


class TestErrors:
    """Tests for authorization error types."""

    def test_subclasses(self):
        """Test every failure is an AuthorizationError."""
        for cls in (AuthorizationDenied, AuthorizationBlocked, AuthorizationNetworkError):
            assert issubclass(cls, AuthorizationError)

    def test_user_messages(self):
        """Test each failure has its own user-facing message."""
        assert "denied" in AuthorizationDenied.user_message
        assert "browser" in AuthorizationBlocked.user_message
        assert "internet connection" in AuthorizationNetworkError.user_message


class TestRedirectParams:
    """Tests for RedirectParams parsing."""

    def test_from_path(self):
        """Test code and state are read from the query string."""
        params = RedirectParams.from_path("/callback?code=auth123&state=state789")
        assert params == RedirectParams(code="auth123", state="state789")

    def test_error_only(self):
        """Test a refusal carries just the error."""
        assert RedirectParams.from_path("/callback?error=access_denied") == RedirectParams(
            error="access_denied"
        )


class TestCallbackHandler:
    """Tests for CallbackHandler.do_GET method."""

    def _create_handler(self, path):
        """Create a CallbackHandler with a mocked request and server."""
        handler = CallbackHandler.__new__(CallbackHandler)
        handler.path = path
        handler.requestline = f"GET {path} HTTP/1.1"
        handler.request_version = "HTTP/1.1"
        handler.client_address = ("127.0.0.1", 12345)
        handler.wfile = io.BytesIO()
        handler.headers = {}
        handler.server = Mock()
        return handler

    def test_do_get_success(self):
        """Test handling a successful redirect."""
        handler = self._create_handler("/callback?code=auth123&state=state789")
        with (
            patch.object(handler, "send_response"),
            patch.object(handler, "send_header"),
            patch.object(handler, "end_headers"),
        ):
            handler.do_GET()
        handler.server.deliver.assert_called_once_with(
            RedirectParams(code="auth123", state="state789")
        )
        assert b"Authorization Successful" in handler.wfile.getvalue()

    def test_do_get_error(self):
        """Test handling a redirect with an error."""
        handler = self._create_handler("/callback?error=%3Cscript%3E")
        with (
            patch.object(handler, "send_response"),
            patch.object(handler, "send_header"),
            patch.object(handler, "end_headers"),
        ):
            handler.do_GET()
        page = handler.wfile.getvalue()
        assert b"Authorization Failed" in page
        assert b"&lt;script&gt;" in page
        assert handler.server.deliver.call_args.args[0].error == "<script>"


class TestCallbackServer:
    """Tests for CallbackServer."""

    def test_start_and_stop(self):
        """Test starting and stopping the callback server."""
        server = CallbackServer(18187)
        server.start()
        assert server._listener is not None
        assert server.params == RedirectParams()
        server.stop()
        assert server._listener is None
        assert server._worker is None

    def test_wait_without_start(self):
        """Test waiting before the server was started."""
        assert CallbackServer(18188).wait_for_callback(timeout=0.1) is False

    def test_wait_times_out(self):
        """Test no redirect within the timeout."""
        server = CallbackServer(18189)
        server.start()
        try:
            assert server.wait_for_callback(timeout=0.1) is False
        finally:
            server.stop()

    def test_receives_redirect(self):
        """Test a real request to the loopback listener."""
        server = CallbackServer(18190)
        server.start()
        try:
            response = httpx.get(
                "http://127.0.0.1:18190/callback?code=abc&state=xyz", trust_env=False
            )
            assert response.status_code == 200
            assert server.wait_for_callback(timeout=5) is True
        finally:
            server.stop()
        assert server.params == RedirectParams(code="abc", state="xyz")


class TestGoogleAuthorizer:
    """Tests for GoogleAuthorizer helpers."""

    def test_get_authorization_url(self, drive_config):
        """Test the consent URL parameters."""
        authorizer = GoogleAuthorizer(drive_config)
        url = authorizer.get_authorization_url()
        params = parse_qs(urlparse(url).query)
        assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
        assert params["client_id"] == ["test-client-id"]
        assert params["redirect_uri"] == ["http://localhost:8086/callback"]
        assert params["scope"] == [" ".join(OAUTH_SCOPES)]
        assert params["access_type"] == ["offline"]
        assert params["state"] == [authorizer._state]

    def test_state_changes_per_url(self, drive_config):
        """Test each consent URL gets a fresh state."""
        authorizer = GoogleAuthorizer(drive_config)
        authorizer.get_authorization_url()
        first = authorizer._state
        authorizer.get_authorization_url()
        assert authorizer._state != first

    def test_is_token_expired(self, drive_config):
        """Test expiry including the safety buffer."""
        authorizer = GoogleAuthorizer(drive_config)
        assert authorizer.is_token_expired(make_credential(timedelta(hours=-1))) is True
        within_buffer = timedelta(seconds=TOKEN_EXPIRY_BUFFER_SECONDS - 60)
        assert authorizer.is_token_expired(make_credential(within_buffer)) is True
        assert authorizer.is_token_expired(make_credential(timedelta(hours=1))) is False

    def test_get_callback_port(self, drive_config):
        """Test the port comes from the redirect URI."""
        assert GoogleAuthorizer(drive_config)._get_callback_port() == 8086

    def test_get_callback_port_default(self):
        """Test the default port when the URI has none."""
        config = DriveConfig(client_id="id", client_secret="s", redirect_uri="http://localhost/cb")
        assert GoogleAuthorizer(config)._get_callback_port() == 8086


class TestRequestAccessToken:
    """Tests for the interactive consent flow."""

    async def test_denied(self, drive_config):
        """Test the user refusing consent."""
        authorizer = GoogleAuthorizer(drive_config)
        with patch("fintrack.auth.CallbackServer") as server_class:
            server_class.return_value = mock_callback_server(error="access_denied")
            with pytest.raises(AuthorizationDenied):
                await authorizer.request_access_token(open_browser=False)
            server_class.return_value.stop.assert_called_once()

    async def test_other_error(self, drive_config):
        """Test a provider error other than a refusal."""
        authorizer = GoogleAuthorizer(drive_config)
        with patch("fintrack.auth.CallbackServer") as server_class:
            server_class.return_value = mock_callback_server(error="server_error")
            with pytest.raises(AuthorizationError, match="server_error"):
                await authorizer.request_access_token(open_browser=False)

    async def test_browser_blocked(self, drive_config):
        """Test a browser that cannot be opened."""
        authorizer = GoogleAuthorizer(drive_config)
        with (
            patch("fintrack.auth.CallbackServer") as server_class,
            patch("fintrack.auth.webbrowser") as browser,
        ):
            server_class.return_value = mock_callback_server()
            browser.open.return_value = False
            with pytest.raises(AuthorizationBlocked):
                await authorizer.request_access_token(open_browser=True)

    async def test_port_in_use(self, drive_config):
        """Test failing to listen for the redirect."""
        authorizer = GoogleAuthorizer(drive_config)
        with patch("fintrack.auth.CallbackServer") as server_class:
            server_class.return_value.start.side_effect = OSError("Address in use")
            with pytest.raises(AuthorizationError, match="Address in use"):
                await authorizer.request_access_token(open_browser=False)

    async def test_no_auth_code(self, drive_config):
        """Test a redirect that never arrived."""
        authorizer = GoogleAuthorizer(drive_config)
        with patch("fintrack.auth.CallbackServer") as server_class:
            server_class.return_value = mock_callback_server()
            with pytest.raises(AuthorizationError, match="No authorization code"):
                await authorizer.request_access_token(open_browser=False)

    async def test_state_mismatch(self, drive_config):
        """Test the CSRF state check."""
        authorizer = GoogleAuthorizer(drive_config)
        with patch("fintrack.auth.CallbackServer") as server_class:
            server_class.return_value = mock_callback_server(auth_code="code", state="wrong")
            with pytest.raises(AuthorizationError, match="State mismatch"):
                await authorizer.request_access_token(open_browser=False)

    async def test_success(self, drive_config):
        """Test a completed flow exchanges the code."""
        authorizer = GoogleAuthorizer(drive_config)
        server = mock_callback_server(auth_code="auth123")
        credential = make_credential()

        def set_state():
            authorizer._state = "expected"
            server.params.state = "expected"
            return "http://auth.url"

        with (
            patch("fintrack.auth.CallbackServer", return_value=server),
            patch("fintrack.auth.webbrowser") as browser,
            patch.object(authorizer, "get_authorization_url", side_effect=set_state),
            patch.object(authorizer, "_exchange_code", AsyncMock(return_value=credential)),
        ):
            browser.open.return_value = True
            result = await authorizer.request_access_token()
        assert result is credential
        browser.open.assert_called_once_with("http://auth.url")


class TestTokenEndpoint:
    """Tests for code exchange, refresh and revoke."""

    @respx.mock
    async def test_exchange_code(self, drive_config):
        """Test exchanging an authorization code."""
        route = respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "access_token": "new-access",
                    "refresh_token": "new-refresh",
                    "expires_in": 3599,
                },
            )
        )
        credential = await GoogleAuthorizer(drive_config)._exchange_code("code123")
        assert credential.access_token == "new-access"
        assert credential.refresh_token == "new-refresh"
        assert credential.expires_at > datetime.now() + timedelta(minutes=59)
        form = parse_qs(route.calls.last.request.content.decode())
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["code123"]

    @respx.mock
    async def test_refresh_keeps_refresh_token(self, drive_config):
        """Test a refresh response without a new refresh token keeps the old one."""
        respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600})
        )
        credential = await GoogleAuthorizer(drive_config).refresh(make_credential())
        assert credential.access_token == "fresh"
        assert credential.refresh_token == "refresh"

    async def test_refresh_without_refresh_token(self, drive_config):
        """Test refreshing with no refresh token."""
        with pytest.raises(AuthorizationDenied):
            await GoogleAuthorizer(drive_config).refresh(make_credential(refresh_token=""))

    @respx.mock
    async def test_invalid_grant(self, drive_config):
        """Test a revoked grant maps to AuthorizationDenied."""
        respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(400, json={"error": "invalid_grant"})
        )
        with pytest.raises(AuthorizationDenied):
            await GoogleAuthorizer(drive_config).refresh(make_credential())

    @respx.mock
    async def test_server_error(self, drive_config):
        """Test other error responses map to AuthorizationNetworkError."""
        respx.post(TOKEN_URL).mock(return_value=httpx.Response(503, text="unavailable"))
        with pytest.raises(AuthorizationNetworkError, match="503"):
            await GoogleAuthorizer(drive_config).refresh(make_credential())

    @respx.mock
    async def test_unreachable(self, drive_config):
        """Test connection failures map to AuthorizationNetworkError."""
        respx.post(TOKEN_URL).mock(side_effect=httpx.ConnectError("no route"))
        with pytest.raises(AuthorizationNetworkError):
            await GoogleAuthorizer(drive_config).refresh(make_credential())

    @respx.mock
    async def test_missing_access_token(self, drive_config):
        """Test a success response without a token."""
        respx.post(TOKEN_URL).mock(return_value=httpx.Response(200, json={}))
        with pytest.raises(AuthorizationError, match="access token"):
            await GoogleAuthorizer(drive_config).refresh(make_credential())

    @respx.mock
    async def test_revoke(self, drive_config):
        """Test revoking posts the refresh token."""
        route = respx.post(REVOKE_URL).mock(return_value=httpx.Response(200))
        await GoogleAuthorizer(drive_config).revoke(make_credential())
        assert parse_qs(route.calls.last.request.content.decode())["token"] == ["refresh"]
