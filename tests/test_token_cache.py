"""
Unit tests for the TokenCache.

The identity endpoint is mocked with responses; the clock is injected.
"""

import threading
from urllib.parse import parse_qs

import pytest
import requests
import responses

from login_engine.auth import TokenCache, token_preview
from login_engine.exceptions import AuthError

AUTH_URL = "https://auth.test/oauth2/token"


class FakeClock:
    """Controllable epoch-seconds clock."""

    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TokenCache(AUTH_URL, "Basic c2VjcmV0", clock=clock)


@pytest.fixture
def mock_responses():
    """Enable responses mock for HTTP requests."""
    with responses.RequestsMock() as rsps:
        yield rsps


def token_response(rsps, token="tok-1", expires_in=3600):
    rsps.add(responses.POST, AUTH_URL, json={"access_token": token, "expires_in": expires_in}, status=200)


# =============================================================================
# Exchange
# =============================================================================


class TestTokenExchange:
    """Tests for the client-credentials exchange."""

    def test_first_call_exchanges(self, cache, mock_responses):
        token_response(mock_responses)

        assert cache.get_valid_token() == "tok-1"
        assert len(mock_responses.calls) == 1
        assert cache.refresh_count == 1
        assert cache.has_token is True

    def test_exchange_request_format(self, cache, mock_responses):
        token_response(mock_responses)

        cache.get_valid_token()

        request = mock_responses.calls[0].request
        assert request.headers["Authorization"] == "Basic c2VjcmV0"
        assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
        assert parse_qs(request.body) == {
            "grant_type": ["client_credentials"],
            "scope": ["partner_management"],
        }

    def test_non_2xx_raises(self, cache, mock_responses):
        mock_responses.add(responses.POST, AUTH_URL, json={"error": "invalid_client"}, status=401)

        with pytest.raises(AuthError) as exc_info:
            cache.get_valid_token()

        assert exc_info.value.status_code == 401
        assert cache.has_token is False

    @pytest.mark.parametrize("body", [
        {"expires_in": 3600},
        {"access_token": "tok-1"},
        {"access_token": "", "expires_in": 3600},
        {"access_token": "tok-1", "expires_in": "soon"},
    ])
    def test_incomplete_response_raises(self, cache, mock_responses, body):
        mock_responses.add(responses.POST, AUTH_URL, json=body, status=200)

        with pytest.raises(AuthError):
            cache.get_valid_token()

    def test_non_json_body_raises(self, cache, mock_responses):
        mock_responses.add(responses.POST, AUTH_URL, body="<html>oops</html>", status=200)

        with pytest.raises(AuthError):
            cache.get_valid_token()

    def test_transport_error_raises(self, cache, mock_responses):
        mock_responses.add(responses.POST, AUTH_URL, body=requests.exceptions.ConnectionError("refused"))

        with pytest.raises(AuthError, match="refused"):
            cache.get_valid_token()


# =============================================================================
# Caching
# =============================================================================


class TestTokenCaching:
    """Tests for freshness and the safety margin."""

    def test_fresh_token_is_reused(self, cache, clock, mock_responses):
        token_response(mock_responses)

        cache.get_valid_token()
        clock.advance(60)
        cache.get_valid_token()

        assert len(mock_responses.calls) == 1

    def test_token_inside_margin_is_refreshed(self, cache, clock, mock_responses):
        token_response(mock_responses, token="tok-1", expires_in=100)
        token_response(mock_responses, token="tok-2", expires_in=100)

        assert cache.get_valid_token() == "tok-1"
        clock.advance(71)

        assert cache.get_valid_token() == "tok-2"
        assert len(mock_responses.calls) == 2

    def test_token_just_outside_margin_is_reused(self, cache, clock, mock_responses):
        token_response(mock_responses, expires_in=100)

        cache.get_valid_token()
        clock.advance(69)
        cache.get_valid_token()

        assert len(mock_responses.calls) == 1

    def test_invalidate_forces_exactly_one_refresh(self, cache, mock_responses):
        token_response(mock_responses, token="tok-1")
        token_response(mock_responses, token="tok-2")

        cache.get_valid_token()
        cache.invalidate()

        assert cache.has_token is False
        assert cache.get_valid_token() == "tok-2"
        assert cache.get_valid_token() == "tok-2"
        assert len(mock_responses.calls) == 2

    def test_invalidate_without_token_is_harmless(self, cache):
        cache.invalidate()
        assert cache.expires_in_seconds() == 0

    def test_expires_in_seconds(self, cache, clock, mock_responses):
        token_response(mock_responses, expires_in=600)

        cache.get_valid_token()
        clock.advance(100)

        assert cache.expires_in_seconds() == 500

    def test_concurrent_callers_share_one_exchange(self, cache, mock_responses):
        token_response(mock_responses)
        tokens = []

        threads = [threading.Thread(target=lambda: tokens.append(cache.get_valid_token())) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert tokens == ["tok-1"] * 8
        assert len(mock_responses.calls) == 1


class TestTokenPreview:
    """Tests for token_preview."""

    def test_long_token_is_shortened(self):
        assert token_preview("a" * 80) == "a" * 50 + "..."

    def test_missing_token(self):
        assert token_preview(None) == "null"
