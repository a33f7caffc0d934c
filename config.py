"""Configuration for the playlist transfer tool.

Values come from the environment (or a .env file next to this module).
Copy .env.example to .env and fill in your Spotify app credentials.
Create an app at https://developer.spotify.com/dashboard

The client secret is only needed by the relay (relay.py). The CLI talks to the
relay for token exchange and never sees the secret.
"""

import os

from dotenv import load_dotenv

DIR = os.path.dirname(os.path.abspath(__file__))

load_dotenv(os.path.join(DIR, ".env"))


def _flag(name, default):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET", "")
SPOTIFY_REDIRECT_URI = os.getenv("SPOTIFY_REDIRECT_URI", "http://127.0.0.1:8888/callback")
SPOTIFY_SCOPES = os.getenv("SPOTIFY_SCOPES", "playlist-read-private playlist-read-collaborative")

RELAY_URL = os.getenv("RELAY_URL", "http://localhost:3000/api/spotify")
RELAY_PORT = int(os.getenv("RELAY_PORT", "3000"))
ALLOWED_ORIGIN = os.getenv("ALLOWED_ORIGIN", "*")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "15"))

DATA_DIR = os.getenv("DATA_DIR", os.path.join(DIR, "data"))
LOG_DIR = os.getenv("LOG_DIR", os.path.join(DIR, "logs"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
STORE_FILE = os.path.join(DATA_DIR, "storage.json")

YTMUSIC_URL = os.getenv("YTMUSIC_URL", "https://music.youtube.com/")
BROWSER_PROFILE_DIR = os.getenv("BROWSER_PROFILE_DIR", os.path.join(DATA_DIR, "browser_profile"))
HEADLESS = _flag("HEADLESS", "false")

WAIT_TIMEOUT_MS = int(os.getenv("WAIT_TIMEOUT_MS", "5000"))
RESULTS_TIMEOUT_MS = int(os.getenv("RESULTS_TIMEOUT_MS", "3000"))
SEARCH_SETTLE_MS = int(os.getenv("SEARCH_SETTLE_MS", "800"))
