from __future__ import annotations

import os
import secrets
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional, Tuple

from dotenv import find_dotenv, load_dotenv

from vibelist.utils.errors import ConfigError

# ---- Spotify endpoints ----
SPOTIFY_AUTH_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_API_BASE = "https://api.spotify.com/v1"

SCOPES = [
    "playlist-modify-public",
    "playlist-modify-private",
]

DEFAULT_PORT = 5500
DEFAULT_TIMEOUT = 20  # seconds, per upstream call
SESSION_LIFETIME = timedelta(hours=1)


@dataclass(frozen=True)
class Settings:
    client_id: str
    client_secret: str
    redirect_uri: str
    service_refresh_token: Optional[str] = None
    session_secret: str = field(default_factory=lambda: secrets.token_hex(16), repr=False)
    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    request_timeout: float = DEFAULT_TIMEOUT
    session_lifetime: timedelta = SESSION_LIFETIME
    cors_origins: Tuple[str, ...] = ()
    search_workers: int = 1
    log_level: str = "INFO"

    def __post_init__(self):
        missing = [
            name
            for name in ("client_id", "client_secret", "redirect_uri")
            if not (getattr(self, name) or "").strip()
        ]
        if missing:
            raise ConfigError(
                "Missing required configuration: "
                + ", ".join(n.upper() for n in missing)
                + ". Check your .env file."
            )
        if self.request_timeout <= 0:
            raise ConfigError("REQUEST_TIMEOUT must be positive.")
        if self.search_workers < 1:
            raise ConfigError("ARTIST_SEARCH_WORKERS must be at least 1.")

    @property
    def demo_available(self) -> bool:
        return bool(self.service_refresh_token)

    @property
    def scope(self) -> str:
        return " ".join(SCOPES)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def load_settings() -> Settings:
    """Build the process-wide Settings from the environment (and ./.env if present)."""
    load_dotenv(find_dotenv(filename=".env", usecwd=True))

    origins = os.getenv("CORS_ORIGINS", "")
    return Settings(
        client_id=os.getenv("CLIENT_ID") or "",
        client_secret=os.getenv("CLIENT_SECRET") or "",
        redirect_uri=os.getenv("REDIRECT_URI") or "",
        service_refresh_token=os.getenv("SERVICE_REFRESH_TOKEN") or None,
        session_secret=os.getenv("SESSION_SECRET") or secrets.token_hex(16),
        host=os.getenv("HOST", "127.0.0.1"),
        port=_int_env("PORT", DEFAULT_PORT),
        request_timeout=_float_env("REQUEST_TIMEOUT", DEFAULT_TIMEOUT),
        cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        search_workers=_int_env("ARTIST_SEARCH_WORKERS", 1),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )
