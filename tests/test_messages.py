"""Tests for messages.py — every service behind Services is a MagicMock."""

import os
import sys
from unittest.mock import MagicMock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

import messages as m
from errors import AuthError, ElementNotFound
from models import AccessToken, MatchResult, Playlist, Track, TransferRecord
from ytmusic_automator import PlaylistHandle


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_services(automator=True, cached_token="cached"):
    tokens = MagicMock()
    tokens.valid_token.return_value = AccessToken(cached_token) if cached_token else None
    return m.Services(
        broker=MagicMock(),
        catalog=MagicMock(),
        history=MagicMock(),
        tokens=tokens,
        automator=MagicMock() if automator else None,
    )


TRACK = Track("Yesterday", "The Beatles", source_id="t1")


# ---------------------------------------------------------------------------
# parse_request()
# ---------------------------------------------------------------------------

class TestParseRequest:
    def test_every_type_has_a_handler(self):
        assert set(m.REQUEST_TYPES.values()) == set(m.HANDLERS)

    def test_camel_case_fields(self):
        req = m.parse_request({"type": "GET_SPOTIFY_PLAYLIST_TRACKS", "playlistId": "p1", "token": "t"})
        assert req == m.GetSpotifyPlaylistTracks("p1", "t")

    def test_track_payload(self):
        req = m.parse_request({"type": "YOUTUBE_SEARCH_AND_ADD",
                               "track": {"title": "Yesterday", "artist": "The Beatles", "sourceId": "t1"},
                               "playlistName": "Mix"})
        assert req.track == TRACK
        assert req.playlist_name == "Mix"

    def test_transfer_payload(self):
        req = m.parse_request({"type": "SAVE_TRANSFER", "transfer": {
            "source": "Spotify", "destination": "YouTube Music", "playlistName": "Mix",
            "tracksMatched": 1, "tracksTotal": 2, "timestamp": "2026-01-01T00:00:00.000Z"}})
        assert req.transfer.tracks_total == 2

    def test_unknown_type(self):
        with pytest.raises(m.UnknownRequestType):
            m.parse_request({"type": "NOPE"})


# ---------------------------------------------------------------------------
# dispatch()
# ---------------------------------------------------------------------------

class TestDispatch:
    def test_spotify_auth(self):
        services = make_services()
        services.broker.exchange_code.return_value = AccessToken("acc", refresh_value="ref")

        response = m.dispatch(m.SpotifyAuth("http://127.0.0.1:8888/callback?code=abc"), services)

        assert response.ok
        assert response.value["success"] is True
        assert response.value["token"]["access_token"] == "acc"
        services.broker.exchange_code.assert_called_once_with("abc")
        services.tokens.save.assert_called_once()

    def test_spotify_auth_cancelled(self):
        services = make_services()
        response = m.dispatch(m.SpotifyAuth(""), services)
        assert response.error == {"error": "Auth cancelled"}
        services.broker.exchange_code.assert_not_called()

    def test_playlists_use_cached_token(self):
        services = make_services()
        services.catalog.list_playlists.return_value = [Playlist("p1", "Mix", 2)]

        response = m.dispatch(m.GetSpotifyPlaylists(), services)

        services.catalog.list_playlists.assert_called_once_with("cached")
        assert response.value == [{"id": "p1", "name": "Mix", "trackCount": 2, "imageUrl": None}]

    def test_playlists_explicit_token_wins(self):
        services = make_services()
        services.catalog.list_playlists.return_value = []
        m.dispatch(m.GetSpotifyPlaylists("explicit"), services)
        services.catalog.list_playlists.assert_called_once_with("explicit")
        services.tokens.valid_token.assert_not_called()

    def test_playlists_not_authenticated(self):
        services = make_services(cached_token=None)
        response = m.dispatch(m.GetSpotifyPlaylists(), services)
        assert response.error == {"error": "Please authenticate Spotify first"}

    def test_tracks(self):
        services = make_services()
        services.catalog.list_tracks.return_value = [TRACK]
        response = m.dispatch(m.GetSpotifyPlaylistTracks("p1"), services)
        services.catalog.list_tracks.assert_called_once_with("p1", "cached")
        assert response.value[0]["title"] == "Yesterday"

    def test_source_error_becomes_error_response(self):
        services = make_services()
        services.catalog.list_tracks.side_effect = AuthError("Spotify rejected the access token", "expired")
        response = m.dispatch(m.GetSpotifyPlaylistTracks("p1"), services)
        assert not response.ok
        assert response.error == {"error": "Spotify rejected the access token", "details": "expired"}

    def test_create_playlist(self):
        services = make_services()
        services.automator.create_playlist.return_value = PlaylistHandle("PLx", "Mix")
        response = m.dispatch(m.YoutubeCreatePlaylist("Mix"), services)
        assert response.value == {"success": True, "playlistId": "PLx"}

    def test_create_playlist_failure(self):
        services = make_services()
        services.automator.create_playlist.side_effect = ElementNotFound("navigation bar")
        response = m.dispatch(m.YoutubeCreatePlaylist("Mix"), services)
        assert response.error["error"] == "Element not found: navigation bar"

    def test_create_playlist_without_page(self):
        response = m.dispatch(m.YoutubeCreatePlaylist("Mix"), make_services(automator=False))
        assert response.error == {"error": "YouTube Music page not open"}

    def test_search_and_add(self):
        services = make_services()
        services.automator.search_and_add.return_value = MatchResult(TRACK, True, object(), "playlist_selected")

        response = m.dispatch(m.YoutubeSearchAndAdd(TRACK, "Mix"), services)

        services.automator.search_and_add.assert_called_once_with(TRACK, "Mix")
        assert response.value["found"] is True

    def test_search_and_add_without_page_reports_not_found(self):
        response = m.dispatch(m.YoutubeSearchAndAdd(TRACK, "Mix"), make_services(automator=False))
        assert response.error["found"] is False

    def test_save_and_get_transfers(self):
        services = make_services()
        record = TransferRecord("Spotify", "YouTube Music", "Mix", 1, 2, "2026-01-01T00:00:00.000Z")
        services.history.list.return_value = [record]

        assert m.dispatch(m.SaveTransfer(record), services).value == {"success": True}
        services.history.append.assert_called_once_with(record)
        assert m.dispatch(m.GetTransfers(), services).value == [record.to_dict()]

    def test_clear_storage(self):
        services = make_services()
        assert m.dispatch(m.ClearStorage(), services).value == {"success": True}
        services.history.clear.assert_called_once()

    def test_unregistered_request_object(self):
        response = m.dispatch(object(), make_services())
        assert response.error["error"] == "Unknown request type"


# ---------------------------------------------------------------------------
# handle_message()
# ---------------------------------------------------------------------------

class TestHandleMessage:
    def test_round_trip(self):
        services = make_services()
        services.history.list.return_value = []
        assert m.handle_message({"type": "GET_TRANSFERS"}, services) == []

    def test_unknown_type(self):
        assert m.handle_message({"type": "DELETE_EVERYTHING"}, make_services()) == {
            "error": "Unknown request type", "details": "DELETE_EVERYTHING"}

    def test_missing_type(self):
        assert m.handle_message({}, make_services())["error"] == "Unknown request type"

    def test_payload_not_an_object(self):
        assert m.handle_message(["not", "a", "dict"], make_services()) == {
            "error": "Message must be an object", "details": "list"}

    def test_non_numeric_track_duration(self):
        services = make_services()
        body = m.handle_message({"type": "YOUTUBE_SEARCH_AND_ADD",
                                 "track": {"title": "A", "durationMs": "abc"}}, services)
        assert body["error"] == "Malformed YOUTUBE_SEARCH_AND_ADD message"
        services.automator.search_and_add.assert_not_called()

    def test_track_not_an_object(self):
        body = m.handle_message({"type": "YOUTUBE_SEARCH_AND_ADD", "track": "Yesterday"}, make_services())
        assert body["error"] == "Malformed YOUTUBE_SEARCH_AND_ADD message"

    def test_non_numeric_transfer_counts(self):
        services = make_services()
        body = m.handle_message({"type": "SAVE_TRANSFER", "transfer": {"playlistName": "Mix", "tracksMatched": "two"}},
                                services)
        assert body["error"] == "Malformed SAVE_TRANSFER message"
        services.history.append.assert_not_called()

    def test_unexpected_handler_error(self):
        services = make_services()
        services.automator.create_playlist.side_effect = RuntimeError("browser has been closed")
        body = m.handle_message({"type": "YOUTUBE_CREATE_PLAYLIST", "playlistName": "Mix"}, services)
        assert body == {"error": "Internal error", "details": "browser has been closed"}


class TestDispatchUnexpected:
    def test_unexpected_error_in_search_reports_not_found(self):
        services = make_services()
        services.automator.search_and_add.side_effect = RuntimeError("boom")
        response = m.dispatch(m.YoutubeSearchAndAdd(TRACK, "Mix"), services)
        assert response.error == {"error": "Internal error", "details": "boom", "found": False}

    def test_parse_rejects_non_object(self):
        with pytest.raises(m.InvalidRequest):
            m.parse_request("SPOTIFY_AUTH")
