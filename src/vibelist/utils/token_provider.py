from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Literal, Optional

from vibelist.utils.errors import NoCredentialsError, UpstreamApiError, UpstreamAuthError, VibelistError
from vibelist.utils.session_utils import SessionTokens, TokenBundle
from vibelist.utils.settings import Settings
from vibelist.utils.spotify_api import exchange_token

log = logging.getLogger(__name__)

Mode = Literal["user", "demo"]


@dataclass(frozen=True)
class AccessToken:
    token: str
    mode: Mode


@dataclass(frozen=True)
class TokenResolution:
    """Outcome of picking a credential: user(token), demo(token) or unavailable(error)."""

    kind: Literal["user", "demo", "unavailable"]
    token: Optional[str] = None
    error: Optional[VibelistError] = None

    @classmethod
    def user(cls, token: str) -> "TokenResolution":
        return cls("user", token=token)

    @classmethod
    def demo(cls, token: str) -> "TokenResolution":
        return cls("demo", token=token)

    @classmethod
    def unavailable(cls, error: VibelistError) -> "TokenResolution":
        return cls("unavailable", error=error)

    def unwrap(self) -> AccessToken:
        if self.kind == "unavailable":
            raise self.error
        return AccessToken(self.token, self.kind)


class TokenProvider:
    """
    Resolves the bearer token for an upstream call.

    Order: the session's unexpired access token, then a refresh of the
    session's refresh token, then the operator's service refresh token
    (demo mode). A failed user refresh falls through; a failed demo
    exchange does not, since nothing is left to try.
    """

    def __init__(self, settings: Settings, http=None, clock: Callable[[], float] = time.time):
        self.settings = settings
        self._http = http
        self._clock = clock
        self._guard = threading.Lock()
        self._flights: Dict[str, threading.Lock] = {}
        self._landed: Dict[str, TokenBundle] = {}

    def resolve(self, tokens: Optional[SessionTokens]) -> AccessToken:
        return self.decide(tokens).unwrap()

    def decide(self, tokens: Optional[SessionTokens]) -> TokenResolution:
        tb = tokens.get() if tokens is not None else None

        if tb and tb.is_fresh(self._clock()):
            return TokenResolution.user(tb.access_token)

        if tb and tb.refresh_token:
            access = self._refresh_user(tokens, tb)
            if access:
                return TokenResolution.user(access)

        if self.settings.service_refresh_token:
            try:
                tok = exchange_token(
                    self.settings,
                    {"grant_type": "refresh_token", "refresh_token": self.settings.service_refresh_token},
                    http=self._http,
                )
            except UpstreamApiError as e:
                log.error("Service token exchange failed: %s", e)
                return TokenResolution.unavailable(
                    UpstreamAuthError(f"Spotify API error: {e.message}", status_code=e.status_code)
                )
            return TokenResolution.demo(tok["access_token"])

        return TokenResolution.unavailable(NoCredentialsError())

    def status(self, tokens: Optional[SessionTokens]) -> dict:
        """Auth summary for the front-end. Never touches the network."""
        tb = tokens.get() if tokens is not None else None
        has_user = bool(tb and tb.is_fresh(self._clock()))
        demo = self.settings.demo_available
        out = {
            "authenticated": has_user,
            "mode": "user" if has_user else ("demo" if demo else "none"),
            "demoAvailable": demo,
        }
        if tb and tb.expires_at is not None:
            out["expiresAt"] = int(tb.expires_at * 1000)
        return out

    # ---- user refresh, one exchange per refresh token at a time ----
    def _flight_lock(self, refresh_token: str) -> threading.Lock:
        with self._guard:
            lock = self._flights.get(refresh_token)
            if lock is None:
                lock = self._flights[refresh_token] = threading.Lock()
            return lock

    def _refresh_user(self, tokens: SessionTokens, tb: TokenBundle) -> Optional[str]:
        lock = self._flight_lock(tb.refresh_token)
        with lock:
            now = self._clock()
            landed = self._landed.get(tb.refresh_token)
            if landed and landed.is_fresh(now):
                # a concurrent request already refreshed this session
                tokens.set(landed)
                return landed.access_token

            try:
                tok = exchange_token(
                    self.settings,
                    {"grant_type": "refresh_token", "refresh_token": tb.refresh_token},
                    http=self._http,
                )
            except UpstreamApiError as e:
                log.warning("Error refreshing user token, falling back: %s", e)
                self._drop_flight(tb.refresh_token, lock)
                return None

            fresh = TokenBundle(
                access_token=tok["access_token"],
                refresh_token=tok.get("refresh_token") or tb.refresh_token,  # may rotate
                expires_at=now + float(tok.get("expires_in", 3600)),
            )
            tokens.set(fresh)
            self._remember(tb.refresh_token, fresh, now)
            return fresh.access_token

    def _remember(self, refresh_token: str, fresh: TokenBundle, now: float) -> None:
        with self._guard:
            self._landed[refresh_token] = fresh
            for key in [k for k, v in self._landed.items() if not v.is_fresh(now)]:
                del self._landed[key]
                lock = self._flights.get(key)
                if lock is not None and not lock.locked():
                    del self._flights[key]

    def _drop_flight(self, refresh_token: str, lock: threading.Lock) -> None:
        # a rejected refresh token will not be seen again; don't keep its lock around
        with self._guard:
            if self._flights.get(refresh_token) is lock:
                del self._flights[refresh_token]
