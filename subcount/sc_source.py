"""
Metric source adapter: exact subscriber count of the signed-in channel.

Uses the YouTube Data API v3 with the OAuth bearer token, which returns the
exact subscriberCount instead of the rounded public figure.

fetch_count() returns an int or raises one of:
  - CredentialExpiredError: token missing/expired/revoked
  - TransientFetchError:    network errors, timeouts, 5xx, quota, bad body
"""

import logging
from typing import Optional

import requests

from .sc_errors import CredentialExpiredError, TransientFetchError
from .sc_oauth import OAuthCredentials, error_code

logger = logging.getLogger(__name__)

CHANNELS_ENDPOINT = "https://www.googleapis.com/youtube/v3/channels"

# 403 reasons that mean the grant itself is unusable
CREDENTIAL_REASONS = ("authError", "insufficientPermissions", "invalid_grant", "invalid_token")


class YouTubeSubscriberSource:
    def __init__(self, credentials: OAuthCredentials, session: Optional[requests.Session] = None,
                 timeout: float = 15.0):
        self.credentials = credentials
        self.session = session or credentials.session
        self.timeout = timeout

    def fetch_count(self) -> int:
        token = self.credentials.access_token()

        try:
            resp = self.session.get(
                CHANNELS_ENDPOINT,
                params={"part": "statistics", "mine": "true"},
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransientFetchError(f"Channel request failed: {e}") from e

        if resp.status_code == 401:
            raise CredentialExpiredError(f"invalid_token: {error_code(resp) or 'unauthorized'}")
        if resp.status_code == 403 and error_code(resp) in CREDENTIAL_REASONS:
            raise CredentialExpiredError(f"Access revoked: {error_code(resp)}")
        if resp.status_code != 200:
            raise TransientFetchError(f"Channel request failed: HTTP {resp.status_code} {error_code(resp)}".strip())

        try:
            items = resp.json().get("items") or []
        except ValueError as e:
            raise TransientFetchError("Channel response was not JSON") from e
        if not items:
            raise TransientFetchError("No channel found for the signed-in account")

        try:
            count = int(items[0]["statistics"]["subscriberCount"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransientFetchError(f"Channel response has no usable subscriberCount: {e}") from e
        if count < 0:
            raise TransientFetchError(f"Negative subscriberCount {count}")
        logger.debug(f"Fetched subscriberCount={count}")
        return count
