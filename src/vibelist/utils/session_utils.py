from __future__ import annotations

import time
from dataclasses import dataclass
from typing import MutableMapping, Optional

TOKENS_KEY = "spotify"
STATE_KEY = "oauth_state"


# ---- Token state kept in the user's session ----
@dataclass
class TokenBundle:
    access_token: Optional[str]
    refresh_token: Optional[str]
    expires_at: Optional[float]  # epoch seconds

    def is_fresh(self, now: Optional[float] = None) -> bool:
        if not self.access_token or self.expires_at is None:
            return False
        return (now if now is not None else time.time()) < self.expires_at


class SessionTokens:
    """
    Per-request handle on the session's token fields.

    Wraps any mutable mapping (the Flask session in the app, a dict in tests)
    so the token provider and the OAuth callback never reach for a global.
    """

    def __init__(self, store: MutableMapping):
        self._store = store

    def get(self) -> Optional[TokenBundle]:
        data = self._store.get(TOKENS_KEY)
        if not data:
            return None
        expires_at = data.get("expires_at")
        return TokenBundle(
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            expires_at=float(expires_at) if expires_at is not None else None,
        )

    def set(self, tb: TokenBundle) -> None:
        self._store[TOKENS_KEY] = {
            "access_token": tb.access_token,
            "refresh_token": tb.refresh_token,
            "expires_at": tb.expires_at,
        }

    def clear(self) -> None:
        self._store.pop(TOKENS_KEY, None)

    # ---- anti-forgery state for the authorization redirect ----
    def set_state(self, state: str) -> None:
        self._store[STATE_KEY] = state

    def get_state(self) -> Optional[str]:
        return self._store.get(STATE_KEY)

    def clear_state(self) -> None:
        self._store.pop(STATE_KEY, None)

    def destroy(self) -> None:
        """Forget everything this session knows (logout)."""
        self._store.clear()
