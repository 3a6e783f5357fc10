from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional
from urllib.parse import urlencode

from vibelist.utils.errors import UpstreamApiError
from vibelist.utils.session_utils import SessionTokens, TokenBundle
from vibelist.utils.settings import SPOTIFY_AUTH_URL, Settings
from vibelist.utils.spotify_api import exchange_token

log = logging.getLogger(__name__)


class HandshakeState(str, Enum):
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


@dataclass(frozen=True)
class HandshakeResult:
    state: HandshakeState
    message: str = ""
    http_status: int = 200

    @property
    def ok(self) -> bool:
        return self.state is HandshakeState.AUTHENTICATED


def _failed(message: str, http_status: int = 400) -> HandshakeResult:
    return HandshakeResult(HandshakeState.FAILED, message, http_status)


class OAuthHandshake:
    """Authorization Code redirect and callback against the Spotify accounts service."""

    def __init__(self, settings: Settings, http=None, clock: Callable[[], float] = time.time):
        self.settings = settings
        self._http = http
        self._clock = clock

    def begin(self, tokens: SessionTokens) -> str:
        """Store a fresh anti-forgery state and return the authorize URL to redirect to."""
        state = secrets.token_urlsafe(24)
        tokens.set_state(state)
        params = {
            "response_type": "code",
            "client_id": self.settings.client_id,
            "scope": self.settings.scope,
            "redirect_uri": self.settings.redirect_uri,
            "state": state,
            "show_dialog": "true",
        }
        return f"{SPOTIFY_AUTH_URL}?{urlencode(params)}"

    def complete(
        self,
        tokens: SessionTokens,
        code: Optional[str],
        returned_state: Optional[str],
        error: Optional[str] = None,
    ) -> HandshakeResult:
        if error:
            tokens.clear_state()
            return _failed(f"Spotify authorization was denied: {error}")

        if not code:
            return _failed("Missing authorization code")

        expected_state = tokens.get_state()
        if not expected_state:
            log.warning("Callback arrived without a stored state; accepting it anyway")
        elif returned_state != expected_state:
            log.warning("OAuth state mismatch on callback")
            return _failed("Invalid state")

        try:
            tok = exchange_token(
                self.settings,
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.settings.redirect_uri,
                },
                http=self._http,
            )
        except UpstreamApiError as e:
            # authorization codes are single-use; a replay lands here and is not retried
            tokens.clear_state()
            log.warning("Authorization code exchange failed: %s", e)
            return _failed(e.message, http_status=500)

        tokens.set(TokenBundle(
            access_token=tok["access_token"],
            refresh_token=tok.get("refresh_token"),
            expires_at=self._clock() + float(tok.get("expires_in", 3600)),
        ))
        tokens.clear_state()
        return HandshakeResult(HandshakeState.AUTHENTICATED, "Success! You can close this window.")
