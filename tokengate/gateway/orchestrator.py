"""Tokenization orchestrator — the record-level write and read paths.

Write path: sensitive fields → tokens before persistence.
Read path: tokens → plaintext, only for fields the role may see.

Both paths go through `_run_batch`, which retries exactly once when the
remote service reports an expired session. Expected degraded conditions
(denied field, placeholder key, per-item failure) never raise:

- tokenize item failure   → field keeps its original plaintext
- detokenize item failure → field keeps its stored token
- read path batch failure → whole record keeps its stored tokens
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from tokengate.gateway.client import BatchCryptoClient
from tokengate.gateway.credentials import CredentialStore
from tokengate.gateway.errors import ConfigurationError, SessionExpiredError, TransportError
from tokengate.gateway.policy import FieldPolicy
from tokengate.gateway.schemas import (
    SENSITIVE_FIELDS,
    BatchResult,
    ItemError,
    ItemValue,
    MaskingMode,
    Role,
    SensitiveField,
    key_of,
)
from tokengate.gateway.sessions import SessionManager

logger = logging.getLogger(__name__)

Record = dict[str, Any]
BatchSender = Callable[[str], Awaitable[list[BatchResult]]]


class TokenizationOrchestrator:
    """Upward API of the gateway, called by the HTTP layer."""

    def __init__(
        self,
        credentials: CredentialStore,
        policy: FieldPolicy,
        sessions: SessionManager,
        client: BatchCryptoClient,
    ) -> None:
        self._credentials = credentials
        self._policy = policy
        self._sessions = sessions
        self._client = client

    # ── Write path ───────────────────────────────────────────────────

    async def tokenize_record(self, record: Mapping[str, Any], role: Role | str, timeout: float | None = None) -> Record:
        """Return a copy of `record` with its sensitive fields tokenized.

        Fields whose key id is the unconfigured placeholder are left as
        submitted and never sent to the remote service. A field the service
        cannot tokenize (e.g. FPE character constraints) also keeps its
        plaintext value.
        """
        tokenized = dict(record)
        selected = {
            field: record[field]
            for field in SENSITIVE_FIELDS
            if record.get(field) and self._tokenizable(field)
        }
        if not selected:
            logger.info("No fields to tokenize for role %s", key_of(role))
            return tokenized

        tokenized.update(await self._encrypt_fields(selected, role, timeout))
        return tokenized

    async def tokenize_field(
        self, value: str, field: SensitiveField | str, role: Role | str, timeout: float | None = None
    ) -> str:
        """Tokenize one value exactly as the write path would store it.

        Used by search so a lookup key matches the stored token.
        """
        field = key_of(field)
        if not value or not self._tokenizable(field):
            return value
        return (await self._encrypt_fields({field: value}, role, timeout))[field]

    async def _encrypt_fields(self, values: dict[str, str], role: Role | str, timeout: float | None) -> dict[str, str]:
        items = list(values.items())

        async def send(bearer: str) -> list[BatchResult]:
            return await self._client.encrypt_batch(items, bearer, timeout=timeout)

        results = await self._run_batch(role, send, timeout)

        out = dict(values)
        for (field, _), result in zip(items, results):
            if isinstance(result, ItemValue):
                out[field] = result.value
            else:
                logger.warning("Keeping original value for %s: %s", field, result.detail)
        logger.info("Tokenization complete for role %s", key_of(role))
        return out

    def _tokenizable(self, field: str) -> bool:
        if self._credentials.is_configured(field):
            return True
        if self._credentials.is_placeholder(field):
            logger.info("Skipping %s: key id not configured (placeholder found)", field)
            return False
        raise ConfigurationError(f"Missing key id for {field}")

    # ── Read path ────────────────────────────────────────────────────

    async def detokenize_record(
        self,
        record: Mapping[str, Any],
        role: Role | str,
        attempt: int = 0,
        timeout: float | None = None,
    ) -> Record:
        """Return a copy of `record` with policy-permitted fields restored.

        Fields outside the role's policy, or empty, keep the stored token. A
        batch that still fails after the expiry retry leaves all tokens in
        place instead of failing the request.
        """
        detokenized = dict(record)
        allowed = self._policy.allowed_fields(role)
        selected = {
            field: record[field]
            for field in SENSITIVE_FIELDS
            if field in allowed and record.get(field) and self._tokenizable(field)
        }
        if not selected:
            logger.debug("No fields to detokenize for role %s", key_of(role))
            return detokenized

        detokenized.update(await self._decrypt_fields(selected, role, timeout, attempt))
        return detokenized

    async def detokenize_records(
        self,
        records: Iterable[Mapping[str, Any]],
        role: Role | str,
        timeout: float | None = None,
    ) -> list[Record]:
        """Detokenize each record independently, preserving input order."""
        return [await self.detokenize_record(record, role, timeout=timeout) for record in records]

    async def detokenize_field(
        self, value: str, field: SensitiveField | str, role: Role | str, timeout: float | None = None
    ) -> str:
        field = key_of(field)
        if not value or not self._policy.is_detokenizable(role, field) or not self._tokenizable(field):
            return value
        return (await self._decrypt_fields({field: value}, role, timeout))[field]

    async def _decrypt_fields(
        self,
        tokens: dict[str, str],
        role: Role | str,
        timeout: float | None,
        attempt: int = 0,
    ) -> dict[str, str]:
        items = [
            (field, token, self._policy.masking_for(role, field) is MaskingMode.PARTIAL)
            for field, token in tokens.items()
        ]

        async def send(bearer: str) -> list[BatchResult]:
            return await self._client.decrypt_batch(items, bearer, timeout=timeout)

        try:
            results = await self._run_batch(role, send, timeout, attempt)
        except TransportError as exc:
            logger.warning("Batch detokenization failed for role %s, returning tokens: %s", key_of(role), exc)
            return dict(tokens)

        out = dict(tokens)
        for (field, _, _), result in zip(items, results):
            if isinstance(result, ItemValue):
                out[field] = result.value
            else:
                logger.info("No plaintext for %s, keeping token: %s", field, result.detail)
        return out

    # ── Expiry retry ─────────────────────────────────────────────────

    async def _run_batch(
        self,
        role: Role | str,
        send: BatchSender,
        timeout: float | None,
        attempt: int = 0,
    ) -> list[BatchResult]:
        """Acquire a session and send one batch; on expiry, refresh and resend once."""
        role_key = key_of(role)
        bearer = await self._sessions.acquire(role_key, force_refresh=attempt > 0, timeout=timeout)
        try:
            results = await send(bearer)
        except SessionExpiredError:
            if attempt > 0:
                logger.warning("DSM session for role %s expired again after refresh", role_key)
                raise
            return await self._retry(role_key, send, timeout)

        if attempt == 0 and any(isinstance(r, ItemError) and r.session_expired for r in results):
            return await self._retry(role_key, send, timeout)
        return results

    async def _retry(self, role_key: str, send: BatchSender, timeout: float | None) -> list[BatchResult]:
        logger.info("Session expired for role %s, clearing cached session and retrying", role_key)
        self._sessions.invalidate(role_key)
        return await self._run_batch(role_key, send, timeout, attempt=1)
