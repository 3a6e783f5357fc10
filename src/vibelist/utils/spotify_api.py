from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional

import requests

from vibelist.utils.errors import UpstreamApiError, UpstreamAuthError, UpstreamTimeoutError
from vibelist.utils.settings import DEFAULT_TIMEOUT, SPOTIFY_API_BASE, SPOTIFY_TOKEN_URL, Settings

log = logging.getLogger(__name__)


def _error_message(resp: requests.Response, fallback: str) -> str:
    """Pull a human message out of either the accounts or the Web API error shape."""
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or "").strip() or fallback
    if not isinstance(body, dict):
        return fallback
    err = body.get("error")
    if isinstance(err, dict):
        return err.get("message") or fallback
    return body.get("error_description") or err or fallback


def _json_object(resp: requests.Response) -> Optional[Dict[str, Any]]:
    """Decoded JSON body if it is an object, else None."""
    try:
        body = resp.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _items(data: Dict[str, Any], section: str) -> List[dict]:
    page = data.get(section)
    if not isinstance(page, dict):
        return []
    return [i for i in (page.get("items") or []) if isinstance(i, dict)]


def _send(http, method: str, url: str, *, timeout: float, **kwargs) -> requests.Response:
    try:
        return http.request(method, url, timeout=timeout, **kwargs)
    except requests.Timeout as e:
        raise UpstreamTimeoutError(f"Spotify did not answer within {timeout:g}s") from e
    except requests.RequestException as e:
        raise UpstreamApiError(f"Could not reach Spotify: {e}") from e


# ---- Accounts service ----
def basic_auth_header(client_id: str, client_secret: str) -> str:
    raw = f"{client_id}:{client_secret}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


def exchange_token(settings: Settings, payload: Dict[str, str], http=None) -> Dict[str, Any]:
    """
    POST a grant to the token endpoint with client credentials in Basic auth.
    Returns the decoded token response, raises UpstreamAuthError on rejection.
    """
    resp = _send(
        http or requests,
        "POST",
        SPOTIFY_TOKEN_URL,
        timeout=settings.request_timeout,
        data=payload,
        headers={
            "Authorization": basic_auth_header(settings.client_id, settings.client_secret),
            "Content-Type": "application/x-www-form-urlencoded",
        },
    )
    if resp.status_code != 200:
        raise UpstreamAuthError(_error_message(resp, "Failed to get tokens"), status_code=resp.status_code)
    tok = _json_object(resp)
    if tok is None:
        raise UpstreamAuthError("Failed to get tokens", status_code=resp.status_code)
    if not tok.get("access_token"):
        raise UpstreamAuthError("Token response did not include an access token", status_code=resp.status_code)
    return tok


# ---- Web API ----
class SpotifyClient:
    """Bearer-token client for the handful of Web API calls the app makes."""

    def __init__(self, access_token: str, timeout: float = DEFAULT_TIMEOUT, http=None):
        self.access_token = access_token
        self.timeout = timeout
        self._http = http or requests

    def _call(self, method: str, path: str, **kwargs) -> requests.Response:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        if "json" in kwargs:
            headers["Content-Type"] = "application/json"
        return _send(self._http, method, f"{SPOTIFY_API_BASE}{path}", timeout=self.timeout, headers=headers, **kwargs)

    def _checked(self, method: str, path: str, fallback: str, **kwargs) -> Dict[str, Any]:
        r = self._call(method, path, **kwargs)
        if not 200 <= r.status_code < 300:
            raise UpstreamApiError(_error_message(r, fallback), status_code=r.status_code)
        if not r.content:
            return {}
        data = _json_object(r)
        if data is None:
            raise UpstreamApiError(f"{fallback}: unreadable response from Spotify", status_code=r.status_code)
        return data

    def search(self, q: str, type_: str, limit: int) -> Dict[str, Any]:
        return self._checked(
            "GET", "/search", "Spotify API error",
            params={"q": q, "type": type_, "limit": limit},
        )

    def search_artists(self, q: str, limit: int = 5) -> List[dict]:
        data = self.search(q, "artist", limit)
        return _items(data, "artists")

    def search_tracks(self, q: str, limit: int = 15) -> List[dict]:
        data = self.search(q, "track", limit)
        return _items(data, "tracks")

    def me(self) -> Dict[str, Any]:
        return self._checked("GET", "/me", "Failed to get user information")

    def create_playlist(self, user_id: str, name: str, public: bool = True) -> Dict[str, Any]:
        return self._checked(
            "POST", f"/users/{user_id}/playlists", "Failed to create playlist",
            json={"name": name, "public": public},
        )

    def add_tracks(self, playlist_id: str, uris: List[str]) -> Dict[str, Any]:
        return self._checked(
            "POST", f"/playlists/{playlist_id}/tracks", "Failed to add tracks",
            json={"uris": uris},
        )

    def unfollow_playlist(self, playlist_id: str) -> None:
        # Spotify has no hard delete; unfollowing removes it from the owner's library.
        self._checked("DELETE", f"/playlists/{playlist_id}/followers", "Failed to remove playlist")
