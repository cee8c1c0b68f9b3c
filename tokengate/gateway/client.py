"""Async httpx client for the remote batch encrypt/decrypt endpoints.

Endpoints:
    POST {endpoint}/crypto/v1/keys/batch/encrypt
    POST {endpoint}/crypto/v1/keys/batch/decrypt
Auth: Bearer session from SessionManager.

Each call sends all items in one request. The service answers with a JSON
array aligned by position with the request; `_correlate` is the only place
that relies on that alignment.
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Sequence
from typing import Any

import httpx

from tokengate.gateway.credentials import CredentialStore
from tokengate.gateway.errors import ConfigurationError, SessionExpiredError, TransportError, is_session_expired
from tokengate.gateway.schemas import BatchResult, ItemError, ItemValue

logger = logging.getLogger(__name__)

ENCRYPT_PATH = "/crypto/v1/keys/batch/encrypt"
DECRYPT_PATH = "/crypto/v1/keys/batch/decrypt"

_ALG = "AES"
_MODE = "FPE"


def _b64encode(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def _b64decode(value: str) -> str:
    return base64.b64decode(value).decode("utf-8")


def _error_text(error: Any) -> str:
    return error if isinstance(error, str) else json.dumps(error)


def _extract(entry: Any, key: str) -> Any:
    """Pull `key` from a result entry, either top-level or under `body`."""
    if not isinstance(entry, dict):
        return None
    value = entry.get(key)
    if not value and isinstance(entry.get("body"), dict):
        value = entry["body"].get(key)
    return value or None


def _correlate(payload: list[Any], expected: int, key: str) -> list[BatchResult]:
    """Map a positional response array back onto request indexes.

    Index i of the result always describes request item i. Missing entries,
    entries carrying `error`, and undecodable values become ItemError.
    """
    results: list[BatchResult] = []
    for index in range(expected):
        if index >= len(payload):
            results.append(ItemError(detail=f"No result returned for item {index}"))
            continue

        entry = payload[index]
        encoded = _extract(entry, key)
        if encoded is not None:
            if not isinstance(encoded, str):
                results.append(ItemError(detail=f"Undecodable {key} for item {index}"))
                continue
            try:
                results.append(ItemValue(_b64decode(encoded)))
            except (ValueError, UnicodeDecodeError):
                results.append(ItemError(detail=f"Undecodable {key} for item {index}"))
            continue

        error = entry.get("error") if isinstance(entry, dict) else None
        if error is not None:
            detail = _error_text(error)
            results.append(ItemError(detail=detail, session_expired=is_session_expired(detail)))
        else:
            results.append(ItemError(detail=f"No {key} in result for item {index}"))
    return results


class BatchCryptoClient:
    """Builds batch requests, sends them, and decodes per-item results."""

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

    def _timeout_arg(self, timeout: float | None) -> Any:
        if timeout is not None:
            return timeout
        if self._timeout is not None:
            return self._timeout
        return httpx.USE_CLIENT_DEFAULT

    def _kid(self, field: str) -> str:
        key_id = self._credentials.key_id_for(field)
        if key_id is None:
            raise ConfigurationError(f"Missing key id for {field}")
        return key_id

    async def encrypt_batch(
        self,
        items: Sequence[tuple[str, str]],
        bearer: str,
        timeout: float | None = None,
    ) -> list[BatchResult]:
        """Encrypt (field, plaintext) pairs. Returns one result per item, in order."""
        if not items:
            return []
        body = [
            {
                "kid": self._kid(field),
                "request": {"alg": _ALG, "plain": _b64encode(plain), "mode": _MODE},
            }
            for field, plain in items
        ]
        fields = [field for field, _ in items]
        logger.info("Sending batch encrypt for %d fields: %s", len(body), ", ".join(fields))
        payload = await self._post(ENCRYPT_PATH, body, bearer, timeout)
        return _correlate(payload, len(body), "cipher")

    async def decrypt_batch(
        self,
        items: Sequence[tuple[str, str, bool]],
        bearer: str,
        timeout: float | None = None,
    ) -> list[BatchResult]:
        """Decrypt (field, token, masked) triples.

        A masked decrypt may return a short partial value; it is returned
        exactly as received.
        """
        if not items:
            return []
        body = [
            {
                "kid": self._kid(field),
                "request": {"alg": _ALG, "cipher": _b64encode(token), "mode": _MODE, "masked": masked},
            }
            for field, token, masked in items
        ]
        fields = [field for field, _, _ in items]
        logger.info("Sending batch decrypt for %d fields: %s", len(body), ", ".join(fields))
        payload = await self._post(DECRYPT_PATH, body, bearer, timeout)
        return _correlate(payload, len(body), "plain")

    async def _post(self, path: str, body: list[dict[str, Any]], bearer: str, timeout: float | None) -> list[Any]:
        try:
            response = await self._http.post(
                f"{self._endpoint}{path}",
                json=body,
                headers={
                    "Authorization": f"Bearer {bearer}",
                    "Accept": "application/json",
                },
                timeout=self._timeout_arg(timeout),
            )
        except httpx.TimeoutException as exc:
            logger.warning("DSM batch request timed out: %s", path)
            raise TransportError(f"DSM request timed out: {path}") from exc
        except httpx.HTTPError as exc:
            logger.warning("DSM batch transport error on %s: %s", path, exc)
            raise TransportError(f"DSM request failed: {exc}") from exc

        if response.is_error:
            detail = response.text
            logger.warning("DSM batch HTTP %s on %s: %s", response.status_code, path, detail[:200])
            if is_session_expired(detail):
                raise SessionExpiredError(
                    "DSM session expired", status_code=response.status_code, detail=detail
                )
            raise TransportError(
                f"DSM returned HTTP {response.status_code}", status_code=response.status_code, detail=detail
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError("Malformed DSM response: body is not JSON") from exc

        if not isinstance(payload, list):
            raise TransportError("Malformed DSM response: expected a JSON array")
        return payload
