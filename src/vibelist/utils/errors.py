from __future__ import annotations


class VibelistError(Exception):
    """Base error; `http_status` is what the JSON error handler answers with."""

    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigError(VibelistError):
    """Missing or malformed startup configuration. Fatal."""


class ValidationError(VibelistError):
    http_status = 400


class NoCredentialsError(VibelistError):
    def __init__(self, message: str = "No authentication available. Please log in or configure SERVICE_REFRESH_TOKEN."):
        super().__init__(message)


class NoTracksFoundError(VibelistError):
    http_status = 404

    def __init__(self, message: str = "No songs found for these artists/years."):
        super().__init__(message)


class UpstreamApiError(VibelistError):
    """Spotify answered with a non-success status (or could not be reached)."""

    http_status = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamAuthError(UpstreamApiError):
    """A token exchange at the accounts service failed."""


class UpstreamTimeoutError(UpstreamApiError):
    """No answer within the configured request timeout."""
