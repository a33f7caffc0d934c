"""Read playlists and playlist tracks from the Spotify Web API.

Follows every `next` page link until none remains and maps each page's items
into Track records as it goes. No deduplication: a track listed twice in the
playlist (or returned twice by overlapping pages) is returned twice.
"""

import requests
import spotipy
import spotipy.exceptions

from config import REQUEST_TIMEOUT
from errors import AuthError, InvalidRequest, UpstreamError
from log_setup import get_logger
from models import Playlist, Track
from token_broker import new_session

PLAYLIST_PAGE_SIZE = 50
TRACK_PAGE_SIZE = 100

log = get_logger("spotify_catalog")


def create_client(token):
    """Create a spotipy.Spotify bound to a bearer token, with retries disabled."""
    return spotipy.Spotify(
        auth=token,
        requests_session=new_session(),
        requests_timeout=REQUEST_TIMEOUT,
        retries=0,
        status_retries=0,
    )


def _translate(e, what):
    """Map a spotipy/requests failure to AuthError or UpstreamError."""
    if isinstance(e, spotipy.exceptions.SpotifyException):
        if e.http_status == 401:
            return AuthError("Spotify rejected the access token", e.msg, status=401)
        return UpstreamError(f"Failed to fetch {what}", e.msg, status=e.http_status or 502)
    return UpstreamError(f"Failed to fetch {what}", str(e), status=502)


class SpotifyCatalog:
    def __init__(self, client_factory=create_client):
        self.client_factory = client_factory

    def _client(self, token):
        if not token:
            raise AuthError("Authorization header missing")
        return self.client_factory(token)

    def _pages(self, sp, first_page, what):
        """Yield the first page and every page reachable through `next`."""
        results = first_page
        while results:
            yield results
            if not results.get("next"):
                break
            try:
                results = sp.next(results)
            except (spotipy.exceptions.SpotifyException, requests.RequestException) as e:
                raise _translate(e, what) from e

    def raw_playlists(self, token):
        """First page of the current user's playlists, unchanged (relay passthrough)."""
        sp = self._client(token)
        try:
            return sp.current_user_playlists(limit=PLAYLIST_PAGE_SIZE)
        except (spotipy.exceptions.SpotifyException, requests.RequestException) as e:
            raise _translate(e, "playlists") from e

    def list_playlists(self, token):
        sp = self._client(token)
        try:
            first = sp.current_user_playlists(limit=PLAYLIST_PAGE_SIZE)
        except (spotipy.exceptions.SpotifyException, requests.RequestException) as e:
            raise _translate(e, "playlists") from e

        playlists = []
        for page in self._pages(sp, first, "playlists"):
            for item in page.get("items") or []:
                if item:
                    playlists.append(Playlist.from_spotify(item))
        log.info(f"Fetched {len(playlists)} playlists from Spotify.")
        return playlists

    def list_tracks(self, playlist_id, token):
        """Every track of a playlist, in playlist order."""
        if not playlist_id:
            raise InvalidRequest("Playlist ID is required")
        sp = self._client(token)
        try:
            first = sp.playlist_items(playlist_id, limit=TRACK_PAGE_SIZE, additional_types=("track",))
        except (spotipy.exceptions.SpotifyException, requests.RequestException) as e:
            raise _translate(e, "playlist tracks") from e

        tracks = []
        pages = 0
        for page in self._pages(sp, first, "playlist tracks"):
            pages += 1
            for item in page.get("items") or []:
                item = item or {}
                tracks.append(Track.from_spotify(item.get("track") or item.get("item")))
            log.debug(f"  page {pages}: {len(tracks)} tracks so far")
        log.info(f"Fetched {len(tracks)} tracks from playlist {playlist_id} ({pages} pages).")
        return tracks
