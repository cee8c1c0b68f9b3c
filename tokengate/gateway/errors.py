"""Exception hierarchy for the tokenization gateway.

Only configuration, authentication and transport failures are raised.
Per-item failures are returned as `ItemError` values (see schemas.py) and
session expiry is absorbed by the orchestrator after one retry.
"""

from __future__ import annotations

# Substrings the remote service uses when a bearer session has lapsed.
# The wording is not contractually stable, so matching stays loose.
_EXPIRY_MARKERS: tuple[str, ...] = ("expired", "Session")


class GatewayError(Exception):
    """Base class for every error raised by the gateway."""


class ConfigurationError(GatewayError):
    """A role or field is missing required static configuration."""


class AuthenticationError(GatewayError):
    """The remote authentication exchange did not yield a usable credential."""


class MissingApiKeyError(AuthenticationError, ConfigurationError):
    """The role has no API key configured, so no session can be opened."""

    def __init__(self, role: str) -> None:
        super().__init__(f"Missing API key for role: {role}")
        self.role = role


class TransportError(GatewayError):
    """Batch-wide failure: timeout, network error, non-2xx or malformed body."""

    def __init__(self, message: str, *, status_code: int | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class SessionExpiredError(TransportError):
    """The remote service rejected the bearer credential as expired."""


def is_session_expired(text: str | None) -> bool:
    """Classify a free-text remote error payload as a session expiry.

    Substring match only. Every expiry decision in the gateway goes through
    this function.
    """
    if not text:
        return False
    return any(marker in text for marker in _EXPIRY_MARKERS)
