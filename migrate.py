#!/usr/bin/env python3
"""
Unified CLI for Spotify → YouTube Music playlist transfer.

Usage:
  python3 migrate.py relay                           # Run the token relay (keep it running)
  python3 migrate.py login                           # Authorize Spotify (via the relay)
  python3 migrate.py ytlogin                         # Log in to YouTube Music in the automation browser
  python3 migrate.py playlists                       # List your Spotify playlists
  python3 migrate.py transfer PLAYLIST_ID            # Transfer one playlist
  python3 migrate.py transfer PLAYLIST_ID --name X   # Transfer under another name
  python3 migrate.py history --last 10               # Show recent transfers
  python3 migrate.py logout                          # Clear history and cached tokens
  python3 migrate.py health                          # Check the relay is up
"""

import argparse
import logging
import secrets
import sys
import webbrowser

import requests

from config import (
    BROWSER_PROFILE_DIR, HEADLESS, RELAY_URL, SPOTIFY_CLIENT_ID, SPOTIFY_REDIRECT_URI,
    SPOTIFY_SCOPES, STORE_FILE, YTMUSIC_URL,
)
from errors import TransferError
from log_setup import get_logger, reset_latest, set_console_level
from messages import ClearStorage, GetSpotifyPlaylists, Services, dispatch
from models import Playlist
from spotify_catalog import SpotifyCatalog
from storage import HistoryStore, JsonStore, TokenStore
from token_broker import TokenBroker, build_authorize_url, new_session, parse_redirect

log = get_logger("migrate")


def build_services(store_file=STORE_FILE, relay_url=RELAY_URL):
    store = JsonStore(store_file)
    return Services(
        broker=TokenBroker(relay_url),
        catalog=SpotifyCatalog(),
        history=HistoryStore(store),
        tokens=TokenStore(store),
    )


def print_progress(percent, matched, not_found, status):
    log.info(f"[{percent:3.0f}%] matched={matched} not_found={not_found}  {status}")


def require_token(services):
    token = services.tokens.valid_token(services.broker)
    if token is None:
        log.error("Spotify is not connected. Run: python3 migrate.py login")
        sys.exit(1)
    return token


def cmd_login(services):
    state = secrets.token_urlsafe(16)
    url = build_authorize_url(SPOTIFY_CLIENT_ID, SPOTIFY_REDIRECT_URI, SPOTIFY_SCOPES, state=state)
    log.info("Opening Spotify authorization page in your browser...")
    log.info(f"If it does not open, visit:\n  {url}")
    webbrowser.open(url)
    redirect_url = input("Paste the URL you were redirected to: ").strip()

    code = parse_redirect(redirect_url, expected_state=state)
    token = services.broker.exchange_code(code)
    services.tokens.save(token)
    log.info("Spotify authenticated successfully.")


def cmd_ytlogin(services):
    from ytmusic_automator import open_browser

    with open_browser(YTMUSIC_URL, headless=False):
        input("Log in to YouTube Music in the browser window, then press Enter here...")
    services.tokens.mark_destination_login(BROWSER_PROFILE_DIR)
    log.info("YouTube Music session saved.")


def cmd_playlists(services):
    response = dispatch(GetSpotifyPlaylists(), services)
    if not response.ok:
        log.error(f"Error loading playlists: {response.error}")
        sys.exit(1)
    if not response.value:
        log.info("No playlists found.")
        return
    for p in response.value:
        log.info(f"  {p['id']}  {p['name']} ({p['trackCount']} songs)")


def find_playlist(services, token, playlist_id, name=None):
    """Resolve a playlist ID to a Playlist, preferring the user's own listing for the name."""
    if name:
        return Playlist(playlist_id, name)
    for p in services.catalog.list_playlists(token.value):
        if p.id == playlist_id:
            return p
    log.error(f"No playlist with ID {playlist_id} in your library. Pass --name to transfer it anyway.")
    sys.exit(1)


def cmd_transfer(services, playlist_id, name=None, headless=HEADLESS):
    from transfer import TransferEngine
    from ytmusic_automator import YouTubeMusicAutomator, open_browser

    token = require_token(services)
    playlist = find_playlist(services, token, playlist_id, name)

    if not services.tokens.destination_login():
        log.warning("YouTube Music login not recorded. If the transfer fails, run: python3 migrate.py ytlogin")

    with open_browser(YTMUSIC_URL, headless=headless) as page:
        services.automator = YouTubeMusicAutomator(page)
        engine = TransferEngine(services.catalog, services.automator, services.history)
        record = engine.transfer(playlist, token.value, progress_cb=print_progress)

    rate = round(record.tracks_matched / record.tracks_total * 100) if record.tracks_total else 0
    log.info("\nTransfer Complete!")
    log.info(f"  Playlist:  {record.playlist_name}")
    log.info(f"  Matched:   {record.tracks_matched}/{record.tracks_total} songs ({rate}%)")
    log.info(f"  Not found: {record.tracks_not_found} songs")


def cmd_history(services, last=5):
    records = services.history.recent(last)
    if not records:
        log.info("No transfers yet")
        return
    for r in records:
        log.info(f"  {r.timestamp[:10]}  {r.playlist_name}  {r.tracks_matched}/{r.tracks_total} matched"
                 f"  ({r.source} -> {r.destination})")


def cmd_logout(services):
    answer = input("Clear all data and log out? [y/N] ").strip().lower()
    if answer != "y":
        return
    dispatch(ClearStorage(), services)


def cmd_health(relay_url=RELAY_URL):
    base = relay_url.rstrip("/")
    try:
        r = new_session().get(f"{base}/health", timeout=5)
        r.raise_for_status()
    except requests.RequestException as e:
        log.error(f"Relay not reachable at {base}: {e}")
        sys.exit(1)
    log.info(f"Relay OK: {r.json()}")


def main(argv=None):
    reset_latest()

    class HelpOnErrorParser(argparse.ArgumentParser):
        def error(self, message):
            self.print_help(sys.stderr)
            sys.stderr.write(f"\nerror: {message}\n")
            sys.exit(2)

    parser = HelpOnErrorParser(
        description="Spotify → YouTube Music playlist transfer",
        usage="%(prog)s <flow> [options]",
    )
    parser.add_argument(
        "flow",
        choices=["relay", "login", "ytlogin", "playlists", "transfer", "history", "logout", "health"],
        help="What to do: relay, login, ytlogin, playlists, transfer, history, logout, health",
    )
    parser.add_argument("playlist_id", nargs="?", help="Spotify playlist ID (for transfer)")
    parser.add_argument("--name", help="Destination playlist name (default: the Spotify name)")
    parser.add_argument("--headless", action="store_true", default=HEADLESS, help="Run the browser headless")
    parser.add_argument("--last", type=int, default=5, metavar="N", help="With history: show the last N transfers")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show per-step automation details on the console")
    args = parser.parse_args(argv)
    if args.verbose:
        set_console_level(logging.DEBUG)

    if args.flow == "relay":
        import relay
        relay.main()
        return
    if args.flow == "health":
        cmd_health()
        return

    services = build_services()
    try:
        if args.flow == "login":
            cmd_login(services)
        elif args.flow == "ytlogin":
            cmd_ytlogin(services)
        elif args.flow == "playlists":
            cmd_playlists(services)
        elif args.flow == "transfer":
            if not args.playlist_id:
                parser.error("transfer needs a PLAYLIST_ID (see: playlists)")
            cmd_transfer(services, args.playlist_id, name=args.name, headless=args.headless)
        elif args.flow == "history":
            cmd_history(services, last=args.last)
        elif args.flow == "logout":
            cmd_logout(services)
    except TransferError as e:
        log.error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
