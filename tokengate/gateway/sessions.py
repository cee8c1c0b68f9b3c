"""Per-role bearer sessions against the remote cryptographic service.

One cached credential per role. Sessions are created lazily on first use,
dropped when the orchestrator sees an expiry, and never refreshed ahead of
time. Roles are fully independent: invalidating one never touches another.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from tokengate.gateway.credentials import CredentialStore
from tokengate.gateway.errors import AuthenticationError, MissingApiKeyError, TransportError
from tokengate.gateway.schemas import Role, key_of

logger = logging.getLogger(__name__)

AUTH_PATH = "/sys/v1/session/auth"


class SessionManager:
    """Caches one bearer credential per role.

    The cache is a plain dict mutated only between awaits, so no lock is held
    across the network exchange. Two concurrent first acquisitions for the
    same role may both authenticate; the last write wins and both callers get
    a valid credential.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        credentials: CredentialStore,
        endpoint: str,
        timeout: float | None = None,
    ) -> None:
        self._http = http
        self._credentials = credentials
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._sessions: dict[str, str] = {}

    def _timeout_arg(self, timeout: float | None) -> Any:
        if timeout is not None:
            return timeout
        if self._timeout is not None:
            return self._timeout
        return httpx.USE_CLIENT_DEFAULT

    def cached(self, role: Role | str) -> str | None:
        return self._sessions.get(key_of(role))

    async def acquire(self, role: Role | str, force_refresh: bool = False, timeout: float | None = None) -> str:
        """Return the role's bearer credential, authenticating if needed."""
        role_key = key_of(role)
        if not force_refresh:
            cached = self._sessions.get(role_key)
            if cached is not None:
                return cached

        api_key = self._credentials.api_key_for(role_key)
        if not api_key:
            raise MissingApiKeyError(role_key)

        logger.info(
            "%s with DSM for role %s",
            "Re-authenticating" if force_refresh else "Authenticating",
            role_key,
        )

        try:
            response = await self._http.post(
                f"{self._endpoint}{AUTH_PATH}",
                headers={"Authorization": f"Basic {api_key}"},
                timeout=self._timeout_arg(timeout),
            )
        except httpx.TimeoutException as exc:
            logger.warning("DSM auth timeout for role %s", role_key)
            raise TransportError(f"Authentication request timed out for role {role_key}") from exc
        except httpx.HTTPError as exc:
            logger.warning("DSM auth transport error for role %s: %s", role_key, exc)
            raise TransportError(f"Authentication request failed for role {role_key}: {exc}") from exc

        if response.is_error:
            logger.warning("DSM auth rejected for role %s (HTTP %s)", role_key, response.status_code)
            raise AuthenticationError(
                f"Failed to authenticate role {role_key}: HTTP {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthenticationError(f"Authentication response for role {role_key} is not JSON") from exc

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token or not isinstance(token, str):
            raise AuthenticationError(f"Failed to get access token for role {role_key}")

        self._sessions[role_key] = token
        logger.info("Authenticated with DSM for role %s", role_key)
        return token

    def invalidate(self, role: Role | str) -> None:
        """Drop the cached credential for this role only."""
        if self._sessions.pop(key_of(role), None) is not None:
            logger.info("Cleared cached DSM session for role %s", key_of(role))
