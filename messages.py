"""One-shot request/response messages between the front end and the workers.

Each request is a small dataclass tagged by its `type`. `dispatch` routes a
request to its handler and always returns exactly one Response, with either a
value or an {error, details} body.
"""

from dataclasses import dataclass
from typing import ClassVar, Optional

from errors import InvalidRequest, TransferError, UnknownRequestType
from log_setup import get_logger
from models import Track, TransferRecord
from token_broker import parse_redirect

log = get_logger("messages")


@dataclass(frozen=True)
class SpotifyAuth:
    type: ClassVar[str] = "SPOTIFY_AUTH"
    redirect_url: str = ""


@dataclass(frozen=True)
class GetSpotifyPlaylists:
    type: ClassVar[str] = "GET_SPOTIFY_PLAYLISTS"
    token: Optional[str] = None


@dataclass(frozen=True)
class GetSpotifyPlaylistTracks:
    type: ClassVar[str] = "GET_SPOTIFY_PLAYLIST_TRACKS"
    playlist_id: str = ""
    token: Optional[str] = None


@dataclass(frozen=True)
class YoutubeCreatePlaylist:
    type: ClassVar[str] = "YOUTUBE_CREATE_PLAYLIST"
    playlist_name: str = ""


@dataclass(frozen=True)
class YoutubeSearchAndAdd:
    type: ClassVar[str] = "YOUTUBE_SEARCH_AND_ADD"
    track: Track = None
    playlist_name: str = ""


@dataclass(frozen=True)
class SaveTransfer:
    type: ClassVar[str] = "SAVE_TRANSFER"
    transfer: TransferRecord = None


@dataclass(frozen=True)
class GetTransfers:
    type: ClassVar[str] = "GET_TRANSFERS"


@dataclass(frozen=True)
class ClearStorage:
    type: ClassVar[str] = "CLEAR_STORAGE"


REQUEST_TYPES = {
    cls.type: cls
    for cls in (
        SpotifyAuth, GetSpotifyPlaylists, GetSpotifyPlaylistTracks, YoutubeCreatePlaylist,
        YoutubeSearchAndAdd, SaveTransfer, GetTransfers, ClearStorage,
    )
}


@dataclass
class Response:
    value: object = None
    error: dict = None

    @property
    def ok(self):
        return self.error is None

    def to_dict(self):
        if self.ok:
            return self.value
        return self.error


@dataclass
class Services:
    """What the handlers work with. `automator` is None until a browser page is open."""

    broker: object
    catalog: object
    history: object
    tokens: object
    automator: object = None


def parse_request(payload):
    """Build a request from its wire form: {"type": ..., <camelCase fields>}.

    Raises UnknownRequestType for an unrecognized type and InvalidRequest for
    a payload that is not an object or whose fields cannot be read."""
    if not isinstance(payload, dict):
        raise InvalidRequest("Message must be an object", type(payload).__name__)
    request_type = payload.get("type")
    cls = REQUEST_TYPES.get(request_type)
    if cls is None:
        raise UnknownRequestType(request_type)

    try:
        return _build(cls, payload)
    except (AttributeError, TypeError, ValueError) as e:
        raise InvalidRequest(f"Malformed {request_type} message", str(e)) from e


def _build(cls, payload):
    if cls is SpotifyAuth:
        return SpotifyAuth(payload.get("redirectUrl", ""))
    if cls is GetSpotifyPlaylists:
        return GetSpotifyPlaylists(payload.get("token"))
    if cls is GetSpotifyPlaylistTracks:
        return GetSpotifyPlaylistTracks(payload.get("playlistId", ""), payload.get("token"))
    if cls is YoutubeCreatePlaylist:
        return YoutubeCreatePlaylist(payload.get("playlistName", ""))
    if cls is YoutubeSearchAndAdd:
        return YoutubeSearchAndAdd(Track.from_dict(payload.get("track") or {}), payload.get("playlistName", ""))
    if cls is SaveTransfer:
        return SaveTransfer(TransferRecord.from_dict(payload.get("transfer") or {}))
    return cls()


# --- Handlers ---

def _token(request, services):
    if request.token:
        return request.token
    cached = services.tokens.valid_token(services.broker)
    if cached is None:
        raise InvalidRequest("Please authenticate Spotify first")
    return cached.value


def _require_automator(services):
    if services.automator is None:
        raise InvalidRequest("YouTube Music page not open")
    return services.automator


def _spotify_auth(request, services):
    code = parse_redirect(request.redirect_url)
    token = services.broker.exchange_code(code)
    services.tokens.save(token)
    return {"token": token.to_dict(), "success": True}


def _get_playlists(request, services):
    playlists = services.catalog.list_playlists(_token(request, services))
    return [p.to_dict() for p in playlists]


def _get_playlist_tracks(request, services):
    tracks = services.catalog.list_tracks(request.playlist_id, _token(request, services))
    return [t.to_dict() for t in tracks]


def _create_playlist(request, services):
    handle = _require_automator(services).create_playlist(request.playlist_name)
    return {"success": True, "playlistId": handle.id}


def _search_and_add(request, services):
    if request.track is None:
        raise InvalidRequest("Track is required")
    result = _require_automator(services).search_and_add(request.track, request.playlist_name or None)
    return result.to_dict()


def _save_transfer(request, services):
    if request.transfer is None:
        raise InvalidRequest("Transfer is required")
    services.history.append(request.transfer)
    return {"success": True}


def _get_transfers(request, services):
    return [r.to_dict() for r in services.history.list()]


def _clear_storage(request, services):
    services.history.clear()
    return {"success": True}


HANDLERS = {
    SpotifyAuth: _spotify_auth,
    GetSpotifyPlaylists: _get_playlists,
    GetSpotifyPlaylistTracks: _get_playlist_tracks,
    YoutubeCreatePlaylist: _create_playlist,
    YoutubeSearchAndAdd: _search_and_add,
    SaveTransfer: _save_transfer,
    GetTransfers: _get_transfers,
    ClearStorage: _clear_storage,
}


def dispatch(request, services):
    """Run one request. Errors come back as a Response, never as an exception."""
    handler = HANDLERS.get(type(request))
    if handler is None:
        return Response(error=UnknownRequestType(getattr(request, "type", None)).to_dict())
    try:
        return Response(value=handler(request, services))
    except TransferError as e:
        log.error(f"{request.type} failed: {e}")
        error = e.to_dict()
    except Exception as e:
        log.exception(f"{request.type} failed unexpectedly: {e}")
        error = {"error": "Internal error", "details": str(e)}
    if isinstance(request, YoutubeSearchAndAdd):
        error["found"] = False
    return Response(error=error)


def handle_message(payload, services):
    """Wire-level entry point: dict in, dict (or list) out."""
    try:
        request = parse_request(payload)
    except TransferError as e:
        log.error(f"Rejected message: {e}")
        return e.to_dict()
    return dispatch(request, services).to_dict()
