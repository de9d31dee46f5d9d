"""
OAuth2 (PKCE) authentication and token management for the Spotify API

The authorization code flow with PKCE needs no client secret on the user's
machine:
1. Generate a random code verifier and its SHA-256 challenge
2. Open the browser on the authorization URL
3. Receive the authorization code on a one-shot localhost callback server
4. Exchange code and verifier for access and refresh tokens
5. Store the token record in the local store (token/spotify)
6. Refresh the access token shortly before it expires

SpotifyAuth is the token provider used by the Spotify client: access_token()
returns a usable bearer token and refresh() forces a new one after the Web
API rejected the current token.
"""

import base64
import hashlib
import secrets
import string
import threading
import time
import urllib.parse
import webbrowser
from http.server import HTTPServer, BaseHTTPRequestHandler
from typing import Any, Callable, Dict, Optional

import requests
import spotipy

from ..exceptions import AuthError, ConfigError, MalformedData
from ..spotify.models import CacheToken
from ..sync.store import TOKEN, Store, open_store
from ..utils.logger import get_logger
from .settings import Settings, get_settings

AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"
TOKEN_KEY = "spotify"

_VERIFIER_ALPHABET = string.ascii_letters + string.digits


def generate_code_verifier(length: int = 128) -> str:
    """Random PKCE code verifier of letters and digits"""
    return ''.join(secrets.choice(_VERIFIER_ALPHABET) for _ in range(length))


def generate_code_challenge(verifier: str) -> str:
    """S256 code challenge: unpadded base64url of the verifier's SHA-256 digest"""
    digest = hashlib.sha256(verifier.encode('ascii')).digest()
    return base64.urlsafe_b64encode(digest).decode('ascii').rstrip('=')


class CallbackHandler(BaseHTTPRequestHandler):
    """
    Receives the redirect from the accounts service

    Stores either server.authorization_code (with server.returned_state) or
    server.authorization_error on the parent server for the login flow.
    """

    def do_GET(self):
        parsed_url = urllib.parse.urlparse(self.path)
        query_params = urllib.parse.parse_qs(parsed_url.query)

        if 'code' in query_params:
            self.server.authorization_code = query_params['code'][0]
            self.server.returned_state = query_params.get('state', [None])[0]
            self._respond(200, "Authorization Successful!",
                          "Release Radar can now read your followed artists. You can close this window.")
        elif 'error' in query_params:
            self.server.authorization_error = query_params['error'][0]
            self._respond(400, "Authorization Failed",
                          f"Error: {query_params['error'][0]}. Please try again.")
        else:
            self.send_response(404)
            self.end_headers()

    def _respond(self, status: int, title: str, message: str) -> None:
        self.send_response(status)
        self.send_header('Content-type', 'text/html')
        self.end_headers()
        html = f"""
        <html>
        <head><title>{title}</title></head>
        <body style="font-family: Arial, sans-serif; text-align: center; margin-top: 50px;">
            <h1>{title}</h1>
            <p>{message}</p>
        </body>
        </html>
        """
        self.wfile.write(html.encode())

    def log_message(self, format, *args):
        """Keep the console clean during login"""
        pass


class SpotifyAuth:
    """
    Spotify token provider backed by the local store

    Args:
        store: Store holding the token record, defaults to the configured file store
        settings: Application settings
        session: requests.Session used for token requests
        clock: Wall clock returning epoch seconds
    """

    def __init__(
        self,
        store: Optional[Store] = None,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time
    ):
        self.settings = settings or get_settings()
        self.store = store if store is not None else open_store(self.settings.get_cache_directory())
        self.session = session or requests.Session()
        self._clock = clock
        self.logger = get_logger(__name__)

        self.client_id = self.settings.spotify.client_id
        self.redirect_uri = self.settings.spotify.redirect_url
        self.scope = self.settings.spotify.scope
        self.refresh_buffer = int(self.settings.spotify.token_refresh_buffer)

    # Token record

    def load_token(self) -> Optional[CacheToken]:
        """Stored token, or None when absent or unreadable"""
        data = self.store.get(TOKEN, TOKEN_KEY)
        if data is None:
            return None
        try:
            return CacheToken.from_dict(data)
        except MalformedData as e:
            self.logger.warning(f"Ignoring unreadable token record: {e}")
            return None

    def _save_token(self, token: CacheToken) -> None:
        self.store.put(TOKEN, TOKEN_KEY, token.to_dict())

    def _post_token(self, data: Dict[str, str]) -> Dict[str, Any]:
        """POST to the token endpoint, raising AuthError on any failure"""
        try:
            response = self.session.post(
                TOKEN_URL,
                data=data,
                headers={'Content-Type': 'application/x-www-form-urlencoded'},
                timeout=self.settings.network.request_timeout
            )
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.RequestException as e:
            raise AuthError(f"Token request failed: {e}")
        except ValueError as e:
            raise AuthError(f"Token response is not JSON: {e}")

        if 'access_token' not in payload:
            raise AuthError("Token response has no access token")
        return payload

    # Token provider

    def refresh(self) -> str:
        """
        Exchange the refresh token for a new access token

        Returns:
            The new access token

        Raises:
            AuthError: When not logged in or the refresh is rejected
        """
        token = self.load_token()
        if token is None or not token.refresh_token:
            raise AuthError("Not logged in. Run 'release-radar auth login' first.")

        payload = self._post_token({
            'grant_type': 'refresh_token',
            'refresh_token': token.refresh_token,
            'client_id': self.client_id,
        })
        new_token = CacheToken.from_token_response(payload, previous=token, now=self._clock())
        self._save_token(new_token)
        self.logger.debug("Access token refreshed")
        return new_token.access_token

    def get_valid_token(self) -> Optional[str]:
        """
        Access token valid beyond the refresh buffer, refreshing if needed

        Returns:
            Access token, or None when not logged in or the refresh failed
        """
        token = self.load_token()
        if token is None:
            return None
        if not token.is_expired(self.refresh_buffer, now=self._clock()):
            return token.access_token
        try:
            return self.refresh()
        except AuthError as e:
            self.logger.warning(f"Failed to refresh token: {e}")
            return None

    def access_token(self) -> str:
        """
        Bearer token for Web API calls

        Raises:
            AuthError: When no valid token can be obtained
        """
        token = self.get_valid_token()
        if token is None:
            raise AuthError("Not authenticated. Run 'release-radar auth login' first.")
        return token

    def is_authenticated(self) -> bool:
        return self.get_valid_token() is not None

    def logout(self) -> None:
        """Forget the stored token"""
        self.store.delete(TOKEN, TOKEN_KEY)

    def get_user_info(self) -> Optional[Dict[str, Any]]:
        """Profile of the logged in user, None when unavailable"""
        token = self.get_valid_token()
        if token is None:
            return None
        try:
            return spotipy.Spotify(auth=token, requests_timeout=self.settings.network.request_timeout).current_user()
        except (spotipy.SpotifyException, requests.exceptions.RequestException) as e:
            self.logger.debug(f"Failed to get user info: {e}")
            return None

    # Login flow

    def authorization_url(self, code_challenge: str, state: str) -> str:
        params = {
            'client_id': self.client_id,
            'response_type': 'code',
            'redirect_uri': self.redirect_uri,
            'code_challenge_method': 'S256',
            'code_challenge': code_challenge,
            'scope': self.scope,
            'state': state,
        }
        return f"{AUTHORIZE_URL}?{urllib.parse.urlencode(params)}"

    def exchange_code(self, code: str, code_verifier: str) -> CacheToken:
        """
        Exchange an authorization code for a token and store it

        Raises:
            AuthError: When the exchange is rejected
        """
        payload = self._post_token({
            'grant_type': 'authorization_code',
            'code': code,
            'redirect_uri': self.redirect_uri,
            'client_id': self.client_id,
            'code_verifier': code_verifier,
        })
        if not payload.get('refresh_token'):
            raise AuthError("Token response has no refresh token")
        token = CacheToken.from_token_response(payload, now=self._clock())
        self._save_token(token)
        return token

    def _is_local_redirect(self) -> bool:
        host = urllib.parse.urlparse(self.redirect_uri).hostname or ''
        return host in ('localhost', '127.0.0.1')

    def login(self, open_browser: bool = True, timeout: float = 300) -> CacheToken:
        """
        Run the interactive PKCE authorization flow

        With a localhost redirect URL a one-shot callback server receives the
        code. Any other redirect URL falls back to pasting the code manually.

        Args:
            open_browser: Open the authorization URL in the default browser
            timeout: Seconds to wait for the callback

        Returns:
            The stored token

        Raises:
            ConfigError: Missing client id
            AuthError: Authorization denied, timed out or exchange failed
        """
        if not self.client_id:
            raise ConfigError("Spotify client_id must be configured (SPOTIFY_CLIENT_ID)")

        verifier = generate_code_verifier()
        state = secrets.token_urlsafe(16)
        url = self.authorization_url(generate_code_challenge(verifier), state)

        self.logger.console_info("Opening browser for Spotify authorization...")
        self.logger.console_info(f"If the browser doesn't open, visit: {url}")

        if not self._is_local_redirect():
            if open_browser:
                webbrowser.open(url)
            code = input("Enter the 'code' parameter from the redirect URL: ").strip()
            if not code:
                raise AuthError("No authorization code provided")
            return self.exchange_code(code, verifier)

        parsed = urllib.parse.urlparse(self.redirect_uri)
        server = HTTPServer((parsed.hostname, parsed.port or 80), CallbackHandler)
        server.authorization_code = None
        server.authorization_error = None
        server.returned_state = None

        server_thread = threading.Thread(target=server.serve_forever)
        server_thread.daemon = True
        server_thread.start()

        try:
            if open_browser:
                webbrowser.open(url)

            deadline = time.time() + timeout
            while server.authorization_code is None and server.authorization_error is None:
                if time.time() > deadline:
                    raise AuthError("Timed out waiting for authorization")
                time.sleep(0.5)

            if server.authorization_error:
                raise AuthError(f"Authorization failed: {server.authorization_error}")
            if server.returned_state != state:
                raise AuthError("Authorization state mismatch")

            token = self.exchange_code(server.authorization_code, verifier)
            self.logger.console_info("Authorization successful!")
            return token
        finally:
            server.shutdown()
            server.server_close()


_auth_instance: Optional[SpotifyAuth] = None


def get_auth() -> SpotifyAuth:
    """
    Get the global authentication instance

    Returns:
        Shared SpotifyAuth, created on first access
    """
    global _auth_instance
    if not _auth_instance:
        _auth_instance = SpotifyAuth()
    return _auth_instance


def reset_auth() -> None:
    """Drop the global authentication instance"""
    global _auth_instance
    _auth_instance = None
