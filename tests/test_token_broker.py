"""Tests for token_broker.py — the relay is a mocked requests.Session."""

import os
import sys
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlparse

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
import requests

from errors import AuthError, InvalidRequest, UpstreamError
from token_broker import TokenBroker, build_authorize_url, parse_redirect


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_response(status, body):
    r = MagicMock()
    r.status_code = status
    r.json.return_value = body
    return r


def make_broker(response=None, error=None):
    session = MagicMock()
    if error is not None:
        session.post.side_effect = error
    else:
        session.post.return_value = response
    return TokenBroker("http://relay.test/api/spotify/", session=session, timeout=5), session


# ---------------------------------------------------------------------------
# build_authorize_url() / parse_redirect()
# ---------------------------------------------------------------------------

class TestAuthorizeUrl:
    def test_contains_code_flow_params(self):
        url = build_authorize_url("cid", "http://127.0.0.1:8888/callback", "playlist-read-private", state="s1")
        query = parse_qs(urlparse(url).query)
        assert url.startswith("https://accounts.spotify.com/authorize?")
        assert query["client_id"] == ["cid"]
        assert query["response_type"] == ["code"]
        assert query["redirect_uri"] == ["http://127.0.0.1:8888/callback"]
        assert query["state"] == ["s1"]

    def test_requires_client_id(self):
        with pytest.raises(InvalidRequest):
            build_authorize_url("", "http://x", "scope")


class TestParseRedirect:
    def test_extracts_code(self):
        assert parse_redirect("http://127.0.0.1:8888/callback?code=abc&state=s1", "s1") == "abc"

    def test_empty_is_cancelled(self):
        with pytest.raises(AuthError, match="Auth cancelled"):
            parse_redirect("")

    def test_error_param(self):
        with pytest.raises(AuthError) as exc:
            parse_redirect("http://127.0.0.1:8888/callback?error=access_denied")
        assert exc.value.details == "access_denied"

    def test_state_mismatch(self):
        with pytest.raises(AuthError):
            parse_redirect("http://127.0.0.1:8888/callback?code=abc&state=evil", "s1")

    def test_no_code(self):
        with pytest.raises(AuthError, match="No authorization code received"):
            parse_redirect("http://127.0.0.1:8888/callback?foo=bar")


# ---------------------------------------------------------------------------
# TokenBroker.exchange_code()
# ---------------------------------------------------------------------------

class TestExchangeCode:
    def test_success(self):
        broker, session = make_broker(make_response(200, {
            "access_token": "acc", "refresh_token": "ref", "expires_in": 3600, "token_type": "Bearer",
        }))
        token = broker.exchange_code("the-code")

        session.post.assert_called_once_with(
            "http://relay.test/api/spotify/token-exchange", json={"code": "the-code"}, timeout=5)
        assert token.value == "acc"
        assert token.refresh_value == "ref"
        assert token.expires_in_seconds == 3600

    def test_empty_code_never_reaches_relay(self):
        broker, session = make_broker(make_response(200, {}))
        with pytest.raises(InvalidRequest, match="Authorization code is required"):
            broker.exchange_code("")
        session.post.assert_not_called()

    def test_relay_rejection(self):
        broker, _ = make_broker(make_response(500, {
            "error": "Failed to exchange token", "details": "Invalid authorization code",
        }))
        with pytest.raises(AuthError) as exc:
            broker.exchange_code("bad")
        assert exc.value.status == 500
        assert exc.value.to_dict() == {"error": "Failed to exchange token", "details": "Invalid authorization code"}

    def test_relay_unreachable(self):
        broker, _ = make_broker(error=requests.ConnectionError("refused"))
        with pytest.raises(UpstreamError) as exc:
            broker.exchange_code("code")
        assert exc.value.status == 502

    def test_response_without_token(self):
        broker, _ = make_broker(make_response(200, {"token_type": "Bearer"}))
        with pytest.raises(AuthError):
            broker.exchange_code("code")

    def test_non_json_error_body(self):
        r = make_response(502, None)
        r.json.side_effect = ValueError("no json")
        broker, _ = make_broker(r)
        with pytest.raises(AuthError) as exc:
            broker.exchange_code("code")
        assert exc.value.status == 502


# ---------------------------------------------------------------------------
# TokenBroker.refresh()
# ---------------------------------------------------------------------------

class TestRefresh:
    def test_success_keeps_refresh_value(self):
        broker, session = make_broker(make_response(200, {"access_token": "new", "expires_in": 3600}))
        token = broker.refresh("ref")

        session.post.assert_called_once_with(
            "http://relay.test/api/spotify/refresh-token", json={"refresh_token": "ref"}, timeout=5)
        assert token.value == "new"
        assert token.refresh_value == "ref"

    def test_empty_refresh_value_never_reaches_relay(self):
        broker, session = make_broker(make_response(200, {}))
        with pytest.raises(InvalidRequest, match="Refresh token is required"):
            broker.refresh(None)
        session.post.assert_not_called()

    def test_invalid_grant(self):
        broker, _ = make_broker(make_response(500, {"error": "Failed to refresh token", "details": "invalid_grant"}))
        with pytest.raises(AuthError, match="Failed to refresh token"):
            broker.refresh("revoked")
