"""
Google OAuth 2.0 credential provider.

Owns the access/refresh tokens for the single signed-in account and gives
them an explicit lifecycle:

    authorization_url()  -> where /auth redirects the admin
    exchange_code(code)  -> acquire tokens (called from /oauth2callback)
    access_token()       -> valid bearer token, refreshed when expired
    revoke()             -> forget tokens (called from /logout)

Tokens live in memory only; a restart needs a fresh sign-in.
"""

import logging
import threading
import time
from typing import Any, Dict, Iterable, Optional
from urllib.parse import urlencode

import requests

from .sc_errors import AuthenticationError, CredentialExpiredError, TransientFetchError

logger = logging.getLogger(__name__)

AUTH_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
REVOKE_ENDPOINT = "https://oauth2.googleapis.com/revoke"

# Refresh a little early so a token never expires mid-request
EXPIRY_MARGIN_SECS = 60


class OAuthCredentials:
    def __init__(self, client_id: str, client_secret: str, redirect_uri: str,
                 scopes: Iterable[str], session: Optional[requests.Session] = None,
                 timeout: float = 15.0):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = list(scopes)
        self.session = session or requests.Session()
        self.timeout = timeout

        self._lock = threading.Lock()
        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._expires_at: float = 0.0

    @property
    def has_token(self) -> bool:
        with self._lock:
            return self._access_token is not None

    def authorization_url(self, state: Optional[str] = None) -> str:
        """Consent URL; offline access + forced consent so we get a refresh token."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{AUTH_ENDPOINT}?{urlencode(params)}"

    def exchange_code(self, code: Optional[str]) -> None:
        """
        Trade an authorization code for tokens.

        Raises:
            AuthenticationError: missing code, network failure or rejected exchange.
        """
        if not code:
            raise AuthenticationError("Missing authorization code")

        try:
            resp = self.session.post(TOKEN_ENDPOINT, data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            }, timeout=self.timeout)
        except requests.RequestException as e:
            raise AuthenticationError(f"Token exchange failed: {e}") from e

        if resp.status_code != 200:
            raise AuthenticationError(f"Token exchange rejected: HTTP {resp.status_code} {error_code(resp)}")

        try:
            tokens = resp.json()
        except ValueError as e:
            raise AuthenticationError("Token endpoint returned invalid JSON") from e
        if "access_token" not in tokens:
            raise AuthenticationError("Token endpoint returned no access_token")

        with self._lock:
            self._store(tokens)
        logger.info("OAuth code exchange succeeded")

    def access_token(self) -> str:
        """
        Return a usable bearer token, refreshing it if it has expired.

        Raises:
            CredentialExpiredError: no token, or the refresh token was rejected.
            TransientFetchError: the refresh request itself failed.
        """
        with self._lock:
            if self._access_token is None:
                raise CredentialExpiredError("No credentials; sign-in required")
            if time.time() < self._expires_at - EXPIRY_MARGIN_SECS:
                return self._access_token
            if not self._refresh_token:
                raise CredentialExpiredError("invalid_token: access token expired and no refresh token")
            self._refresh()
            return self._access_token

    def revoke(self) -> None:
        """Best-effort revoke at Google, then drop the tokens locally."""
        with self._lock:
            token = self._refresh_token or self._access_token
            self._access_token = None
            self._refresh_token = None
            self._expires_at = 0.0
        if not token:
            return
        try:
            self.session.post(REVOKE_ENDPOINT, data={"token": token}, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Token revoke failed (tokens dropped locally anyway): {e}")

    # ----- internals (caller holds _lock) -----

    def _refresh(self) -> None:
        try:
            resp = self.session.post(TOKEN_ENDPOINT, data={
                "refresh_token": self._refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
            }, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransientFetchError(f"Token refresh failed: {e}") from e

        if resp.status_code in (400, 401):
            code = error_code(resp)
            if code in ("invalid_grant", "invalid_token", "unauthorized_client"):
                self._access_token = None
                self._refresh_token = None
                raise CredentialExpiredError(f"Token refresh rejected: {code}")
        if resp.status_code != 200:
            raise TransientFetchError(f"Token refresh failed: HTTP {resp.status_code}")

        try:
            self._store(resp.json())
        except (ValueError, KeyError) as e:
            raise TransientFetchError("Token refresh returned an invalid body") from e
        logger.info("OAuth access token refreshed")

    def _store(self, tokens: Dict[str, Any]) -> None:
        self._access_token = tokens["access_token"]
        # Google only returns a refresh token on the first consent
        self._refresh_token = tokens.get("refresh_token") or self._refresh_token
        self._expires_at = time.time() + int(tokens.get("expires_in", 3600))


def error_code(resp: requests.Response) -> str:
    """Pull the OAuth 'error' field out of a response, if there is one."""
    try:
        body = resp.json()
    except ValueError:
        return ""
    err = body.get("error", "") if isinstance(body, dict) else ""
    if isinstance(err, dict):
        # Google API style: {"error": {"status": ..., "errors": [{"reason": ...}]}}
        reasons = [e.get("reason", "") for e in err.get("errors", []) if isinstance(e, dict)]
        return reasons[0] if reasons else str(err.get("status", ""))
    return str(err)
