"""Records passed between the source reader, the automator, the orchestrator and the stores.

Wire/storage dicts use the camelCase keys the relay and the history file expose.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def utc_now_iso():
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _first_image(images):
    for image in images or []:
        if image and image.get("url"):
            return image["url"]
    return None


@dataclass(frozen=True)
class Track:
    title: str
    artist: str
    album: str = ""
    duration_ms: int = 0
    source_id: str = ""
    isrc: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_spotify(cls, track):
        """Map a Spotify track object. Missing fields become empty/None, never an error."""
        track = track or {}
        album = track.get("album") or {}
        artists = [a.get("name", "") for a in (track.get("artists") or []) if a]
        return cls(
            title=track.get("name") or "",
            artist=", ".join(n for n in artists if n),
            album=album.get("name") or "",
            duration_ms=max(int(track.get("duration_ms") or 0), 0),
            source_id=track.get("id") or "",
            isrc=(track.get("external_ids") or {}).get("isrc"),
            image_url=_first_image(album.get("images")),
        )

    @classmethod
    def from_dict(cls, data):
        return cls(
            title=data.get("title") or "",
            artist=data.get("artist") or "",
            album=data.get("album") or "",
            duration_ms=int(data.get("durationMs") or 0),
            source_id=data.get("sourceId") or "",
            isrc=data.get("isrc"),
            image_url=data.get("imageUrl"),
        )

    def to_dict(self):
        return {
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "durationMs": self.duration_ms,
            "sourceId": self.source_id,
            "isrc": self.isrc,
            "imageUrl": self.image_url,
        }

    @property
    def search_query(self):
        return f"{self.title} {self.artist}".strip()


@dataclass(frozen=True)
class Playlist:
    id: str
    name: str
    track_count: int = 0
    image_url: Optional[str] = None

    @classmethod
    def from_spotify(cls, item):
        tracks = item.get("tracks") or item.get("items") or {}
        return cls(
            id=item.get("id") or "",
            name=item.get("name") or "",
            track_count=int(tracks.get("total") or 0),
            image_url=_first_image(item.get("images")),
        )

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data.get("id") or "",
            name=data.get("name") or "",
            track_count=int(data.get("trackCount") or 0),
            image_url=data.get("imageUrl"),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "trackCount": self.track_count,
            "imageUrl": self.image_url,
        }


@dataclass
class MatchResult:
    track: Track
    found: bool
    matched_element_ref: Any = None
    state: str = ""
    reason: Optional[str] = None

    def to_dict(self):
        body = {"found": self.found, "track": self.track.to_dict(), "state": self.state}
        if self.reason:
            body["reason"] = self.reason
        return body


@dataclass(frozen=True)
class TransferRecord:
    source: str
    destination: str
    playlist_name: str
    tracks_matched: int
    tracks_total: int
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def tracks_not_found(self):
        return self.tracks_total - self.tracks_matched

    @classmethod
    def from_dict(cls, data):
        return cls(
            source=data.get("source", ""),
            destination=data.get("destination", ""),
            playlist_name=data.get("playlistName", ""),
            tracks_matched=int(data.get("tracksMatched", 0)),
            tracks_total=int(data.get("tracksTotal", 0)),
            timestamp=data.get("timestamp") or "",
        )

    def to_dict(self):
        return {
            "source": self.source,
            "destination": self.destination,
            "playlistName": self.playlist_name,
            "tracksMatched": self.tracks_matched,
            "tracksTotal": self.tracks_total,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_in_seconds: int = 3600
    token_type: str = "Bearer"
    refresh_value: Optional[str] = None
    obtained_at: float = field(default_factory=time.time)

    @classmethod
    def from_response(cls, data, refresh_value=None):
        """Build from a token endpoint/relay response (access_token, expires_in, ...)."""
        return cls(
            value=data["access_token"],
            expires_in_seconds=int(data.get("expires_in") or 3600),
            token_type=data.get("token_type") or "Bearer",
            refresh_value=data.get("refresh_token") or refresh_value,
        )

    @classmethod
    def from_dict(cls, data):
        return cls(
            value=data["access_token"],
            expires_in_seconds=int(data.get("expires_in") or 3600),
            token_type=data.get("token_type") or "Bearer",
            refresh_value=data.get("refresh_token"),
            obtained_at=float(data.get("obtained_at") or 0),
        )

    def to_dict(self):
        return {
            "access_token": self.value,
            "expires_in": self.expires_in_seconds,
            "token_type": self.token_type,
            "refresh_token": self.refresh_value,
            "obtained_at": self.obtained_at,
        }

    def is_expired(self, now=None, margin=60):
        now = time.time() if now is None else now
        return now >= self.obtained_at + self.expires_in_seconds - margin
