"""Local persistence: a flat key-value JSON file, the transfer history and cached tokens.

Nothing here is global. The CLI and the dispatcher build one JsonStore and hand
it to HistoryStore / TokenStore.
"""

import json
import os
import tempfile
import threading
from dataclasses import replace

from log_setup import get_logger
from models import AccessToken, TransferRecord, utc_now_iso

TRANSFERS_KEY = "transfers"
SPOTIFY_TOKEN_KEY = "spotifyToken"
YOUTUBE_TOKEN_KEY = "youtubeToken"

log = get_logger("storage")


# --- File I/O ---

def load_json(path, default):
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        return default


def atomic_write_json(path, data):
    """Write JSON atomically: write to temp file then rename."""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def initial_state():
    return {TRANSFERS_KEY: [], SPOTIFY_TOKEN_KEY: None, YOUTUBE_TOKEN_KEY: None}


class JsonStore:
    """Key-value store backed by one JSON file. Every write rewrites the file."""

    def __init__(self, path):
        self.path = path
        self._lock = threading.Lock()

    def _read(self):
        data = load_json(self.path, None)
        if not isinstance(data, dict):
            return initial_state()
        return data

    def get(self, key, default=None):
        with self._lock:
            value = self._read().get(key)
        return default if value is None else value

    def set(self, key, value):
        with self._lock:
            data = self._read()
            data[key] = value
            atomic_write_json(self.path, data)

    def update(self, key, fn, default=None):
        """Read-modify-write one key under the store lock. Returns the new value."""
        with self._lock:
            data = self._read()
            current = data.get(key)
            value = fn(default if current is None else current)
            data[key] = value
            atomic_write_json(self.path, data)
        return value

    def reset(self):
        with self._lock:
            atomic_write_json(self.path, initial_state())


class HistoryStore:
    """Append-only list of TransferRecord, kept in insertion order."""

    def __init__(self, store):
        self.store = store

    def append(self, record):
        """Append one record, stamping it with the current UTC time if it has none."""
        if isinstance(record, dict):
            record = TransferRecord.from_dict(record)
        if not record.timestamp:
            record = replace(record, timestamp=utc_now_iso())
        data = record.to_dict()
        self.store.update(TRANSFERS_KEY, lambda transfers: transfers + [data], default=[])
        log.debug(f"Saved transfer: {record.playlist_name} {record.tracks_matched}/{record.tracks_total}")
        return True

    def list(self):
        return [TransferRecord.from_dict(d) for d in self.store.get(TRANSFERS_KEY, [])]

    def recent(self, n=5):
        """Last `n` records, newest first."""
        if n <= 0:
            return []
        return list(reversed(self.list()[-n:]))

    def clear(self):
        """Wipe the history and every cached token (logout)."""
        self.store.reset()
        log.info("Cleared transfer history and cached tokens.")
        return True


class TokenStore:
    """Cached source-service token plus the destination login marker."""

    def __init__(self, store):
        self.store = store

    def save(self, token):
        self.store.set(SPOTIFY_TOKEN_KEY, token.to_dict())

    def load(self):
        data = self.store.get(SPOTIFY_TOKEN_KEY)
        if not data or not data.get("access_token"):
            return None
        return AccessToken.from_dict(data)

    def mark_destination_login(self, profile_dir):
        self.store.set(YOUTUBE_TOKEN_KEY, {"authenticated": True, "profile": profile_dir})

    def destination_login(self):
        return self.store.get(YOUTUBE_TOKEN_KEY)

    def valid_token(self, broker):
        """Return a usable token, refreshing it through the broker when it has expired.

        Returns None when nothing is cached. Refresh failures propagate (AuthError)."""
        token = self.load()
        if token is None:
            return None
        if not token.is_expired():
            return token
        if not token.refresh_value:
            log.warning("Spotify token expired and no refresh token is cached. Run: login")
            return token
        log.info("Spotify token expired, refreshing...")
        fresh = broker.refresh(token.refresh_value)
        self.save(fresh)
        return fresh
