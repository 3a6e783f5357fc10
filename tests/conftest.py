import json
from urllib.parse import parse_qs

import pytest

from vibelist.app import create_app
from vibelist.utils.settings import SPOTIFY_API_BASE, SPOTIFY_TOKEN_URL, Settings


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text
        self.content = text.encode("utf-8")

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeHttp:
    """Stands in for `requests`: routes (method, url) to canned responses and records calls."""

    def __init__(self):
        self.routes = []
        self.calls = []

    def on(self, method, url, responder):
        if url.startswith("/"):
            url = SPOTIFY_API_BASE + url
        self.routes.append((method, url, responder))
        return self

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        for m, u, responder in self.routes:
            if m == method and u == url:
                if isinstance(responder, Exception):
                    raise responder
                if callable(responder):
                    return responder(**kwargs)
                return responder
        raise AssertionError(f"unexpected upstream call {method} {url}")

    def calls_to(self, url, method=None):
        if url.startswith("/"):
            url = SPOTIFY_API_BASE + url
        return [c for c in self.calls if c["url"] == url and (method is None or c["method"] == method)]

    def token_grants(self):
        return [parse_qs_flat(c["data"]) for c in self.calls_to(SPOTIFY_TOKEN_URL)]


def parse_qs_flat(data):
    if isinstance(data, dict):
        return dict(data)
    return {k: v[0] for k, v in parse_qs(data).items()}


def token_response(access="new-access", expires_in=3600, refresh=None):
    payload = {"access_token": access, "token_type": "Bearer", "expires_in": expires_in}
    if refresh:
        payload["refresh_token"] = refresh
    return FakeResponse(200, payload)


def make_tracks(prefix, n):
    return [{"uri": f"spotify:track:{prefix}{i}", "name": f"{prefix} song {i}"} for i in range(n)]


class Clock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def settings():
    return Settings(
        client_id="cid",
        client_secret="csecret",
        redirect_uri="http://localhost:5500/callback",
        session_secret="test-secret",
    )


@pytest.fixture
def demo_settings():
    return Settings(
        client_id="cid",
        client_secret="csecret",
        redirect_uri="http://localhost:5500/callback",
        service_refresh_token="service-refresh",
        session_secret="test-secret",
    )


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def app(settings, http):
    app = create_app(settings, http=http)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
