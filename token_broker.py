"""Client side of the token relay.

The relay (relay.py) holds the client secret and talks to the Spotify token
endpoint. This module builds the authorize URL, pulls the code out of the
redirect, and asks the relay to exchange or refresh tokens.
"""

from urllib.parse import urlencode, urlparse, parse_qs

import requests

from config import RELAY_URL, REQUEST_TIMEOUT
from errors import AuthError, InvalidRequest, UpstreamError
from log_setup import get_logger
from models import AccessToken

SPOTIFY_AUTH_URL = "https://accounts.spotify.com/authorize"

log = get_logger("token_broker")


def new_session():
    """requests.Session with retries disabled: a failure is reported, never retried."""
    session = requests.Session()
    session.mount("https://", requests.adapters.HTTPAdapter(max_retries=0))
    session.mount("http://", requests.adapters.HTTPAdapter(max_retries=0))
    return session


def build_authorize_url(client_id, redirect_uri, scopes, state=None):
    """Build the Spotify authorization-code URL the user opens in a browser."""
    if not client_id:
        raise InvalidRequest("Spotify client ID is required")
    params = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "scope": scopes,
    }
    if state:
        params["state"] = state
    return f"{SPOTIFY_AUTH_URL}?{urlencode(params)}"


def parse_redirect(redirect_url, expected_state=None):
    """Extract the authorization code from the URL Spotify redirected to."""
    if not redirect_url:
        raise AuthError("Auth cancelled")
    query = parse_qs(urlparse(redirect_url.strip()).query)
    if "error" in query:
        raise AuthError("Spotify authorization failed", query["error"][0])
    if expected_state and query.get("state", [None])[0] != expected_state:
        raise AuthError("State mismatch in redirect")
    code = query.get("code", [None])[0]
    if not code:
        raise AuthError("No authorization code received")
    return code


class TokenBroker:
    def __init__(self, relay_url=RELAY_URL, session=None, timeout=REQUEST_TIMEOUT):
        self.relay_url = relay_url.rstrip("/")
        self.session = session or new_session()
        self.timeout = timeout

    def exchange_code(self, code):
        """Exchange an authorization code for an AccessToken via the relay."""
        if not code:
            raise InvalidRequest("Authorization code is required")
        data = self._post("/token-exchange", {"code": code})
        log.info("Exchanged authorization code for an access token.")
        return AccessToken.from_response(data)

    def refresh(self, refresh_value):
        """Refresh an access token. The old refresh value is kept if none is returned."""
        if not refresh_value:
            raise InvalidRequest("Refresh token is required")
        data = self._post("/refresh-token", {"refresh_token": refresh_value})
        log.info("Refreshed access token.")
        return AccessToken.from_response(data, refresh_value=refresh_value)

    def _post(self, path, body):
        url = f"{self.relay_url}{path}"
        try:
            r = self.session.post(url, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            log.error(f"Relay request failed: {url}: {e}")
            raise UpstreamError("Relay unreachable", str(e), status=502) from e

        try:
            data = r.json()
        except ValueError:
            data = {}

        if r.status_code != 200:
            log.error(f"Relay answered {r.status_code} for {path}: {data}")
            raise AuthError(
                data.get("error") or f"Token request failed ({r.status_code})",
                data.get("details"),
                status=r.status_code,
            )
        if not data.get("access_token"):
            raise AuthError("Relay response has no access_token", status=502)
        return data
