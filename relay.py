#!/usr/bin/env python3
"""
Relay server holding the Spotify client secret.

The CLI (and any other front end) never sees the secret: it sends the
authorization code or refresh token here, and this server talks to the
Spotify token endpoint. It also proxies the playlist listing and returns a
playlist's tracks fully paginated.

Usage:
  python3 relay.py                 # listens on RELAY_PORT (default 3000)
"""

import requests
from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError
from werkzeug.exceptions import HTTPException

from config import (
    ALLOWED_ORIGIN, RELAY_PORT, SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET,
    SPOTIFY_REDIRECT_URI, SPOTIFY_SCOPES,
)
from errors import TransferError
from log_setup import get_logger
from models import utc_now_iso
from spotify_catalog import SpotifyCatalog

log = get_logger("relay")

spotify_api = Blueprint("spotify", __name__, url_prefix="/api/spotify")


def create_oauth():
    """SpotifyOAuth holding the client secret. Tokens are never cached server-side."""
    return SpotifyOAuth(
        client_id=SPOTIFY_CLIENT_ID,
        client_secret=SPOTIFY_CLIENT_SECRET,
        redirect_uri=SPOTIFY_REDIRECT_URI,
        scope=SPOTIFY_SCOPES,
        cache_handler=MemoryCacheHandler(),
        open_browser=False,
    )


def _oauth():
    oauth = current_app.extensions.get("spotify_oauth")
    if oauth is None:
        oauth = create_oauth()
        current_app.extensions["spotify_oauth"] = oauth
    return oauth


def _catalog():
    return current_app.extensions["spotify_catalog"]


def _bearer_token():
    header = request.headers.get("Authorization", "")
    parts = header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        return None
    return parts[1].strip()


def _upstream_failure(message, e):
    """Shape a failed token-endpoint call as 500 {error, details}."""
    if isinstance(e, SpotifyOauthError):
        details = e.error_description or e.error or str(e)
    else:
        details = str(e)
    log.error(f"{message}: {details}")
    return jsonify({"error": message, "details": details}), 500


# --- Token endpoints ---

@spotify_api.post("/token-exchange")
def token_exchange():
    body = request.get_json(silent=True) or {}
    code = body.get("code")
    if not code:
        return jsonify({"error": "Authorization code is required"}), 400

    try:
        token_info = _oauth().get_access_token(code, as_dict=True, check_cache=False)
    except (SpotifyOauthError, requests.RequestException) as e:
        return _upstream_failure("Failed to exchange authorization code", e)

    return jsonify({
        "access_token": token_info.get("access_token"),
        "refresh_token": token_info.get("refresh_token"),
        "expires_in": token_info.get("expires_in"),
        "token_type": token_info.get("token_type"),
    })


@spotify_api.post("/refresh-token")
def refresh_token():
    body = request.get_json(silent=True) or {}
    refresh_value = body.get("refresh_token")
    if not refresh_value:
        return jsonify({"error": "Refresh token is required"}), 400

    try:
        token_info = _oauth().refresh_access_token(refresh_value)
    except (SpotifyOauthError, requests.RequestException) as e:
        return _upstream_failure("Failed to refresh token", e)

    return jsonify({
        "access_token": token_info.get("access_token"),
        "expires_in": token_info.get("expires_in"),
        "token_type": token_info.get("token_type"),
    })


# --- Source API proxy ---

@spotify_api.get("/playlists")
def playlists():
    token = _bearer_token()
    if not token:
        return jsonify({"error": "Authorization header missing"}), 401
    try:
        return jsonify(_catalog().raw_playlists(token))
    except TransferError as e:
        log.error(f"Playlists fetch error: {e.status} {e}")
        return jsonify({"error": "Failed to fetch playlists", "details": e.details or e.message}), e.status


@spotify_api.get("/playlists/<playlist_id>/tracks")
def playlist_tracks(playlist_id):
    token = _bearer_token()
    if not token:
        return jsonify({"error": "Authorization header missing"}), 401
    try:
        tracks = _catalog().list_tracks(playlist_id, token)
    except TransferError as e:
        log.error(f"Tracks fetch error: {e.status} {e}")
        return jsonify({"error": "Failed to fetch playlist tracks", "details": e.details or e.message}), e.status
    return jsonify([t.to_dict() for t in tracks])


def health():
    return jsonify({"status": "Server is running", "timestamp": utc_now_iso()})


def handle_unexpected(e):
    if isinstance(e, HTTPException):
        return e
    log.exception(f"Unhandled error: {e}")
    return jsonify({"error": "Internal server error"}), 500


def create_app(oauth=None, catalog=None):
    app = Flask(__name__)
    CORS(app, origins=ALLOWED_ORIGIN)

    app.extensions["spotify_oauth"] = oauth
    app.extensions["spotify_catalog"] = catalog or SpotifyCatalog()

    app.register_blueprint(spotify_api)
    app.add_url_rule("/api/health", "health", health)
    app.add_url_rule("/api/spotify/health", "spotify_health", health)
    app.register_error_handler(Exception, handle_unexpected)
    return app


def main(port=RELAY_PORT):
    app = create_app()
    log.info(f"Relay running on http://localhost:{port}")
    log.info(f"API base URL: http://localhost:{port}/api/spotify")
    app.run(host="127.0.0.1", port=port)


if __name__ == "__main__":
    main()
