"""Wires the gateway components into one object owned by the application."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from tokengate.config import GatewaySettings, settings
from tokengate.gateway.client import BatchCryptoClient
from tokengate.gateway.credentials import CredentialStore
from tokengate.gateway.errors import ConfigurationError
from tokengate.gateway.orchestrator import TokenizationOrchestrator
from tokengate.gateway.policy import FieldPolicy
from tokengate.gateway.sessions import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class Gateway:
    """Everything the HTTP layer needs; one instance per application."""

    credentials: CredentialStore
    policy: FieldPolicy
    sessions: SessionManager
    orchestrator: TokenizationOrchestrator
    http: httpx.AsyncClient

    async def aclose(self) -> None:
        await self.http.aclose()


def build_gateway(
    credentials: CredentialStore | None = None,
    gateway_settings: GatewaySettings | None = None,
    http: httpx.AsyncClient | None = None,
) -> Gateway:
    """Build the gateway from settings, or from explicit parts in tests."""
    cfg = gateway_settings or settings.gateway
    if credentials is None:
        path = Path(cfg.credentials_file)
        if not path.is_file():
            raise ConfigurationError(f"Credentials file not found: {path}")
        credentials = CredentialStore.from_file(path)

    endpoint = (cfg.dsm_endpoint or credentials.endpoint).rstrip("/")
    if not endpoint:
        raise ConfigurationError("DSM endpoint is not configured")

    if http is None:
        http = httpx.AsyncClient(timeout=httpx.Timeout(cfg.dsm_timeout, connect=cfg.dsm_connect_timeout))

    policy = FieldPolicy.from_config(credentials.config)
    sessions = SessionManager(http, credentials, endpoint)
    client = BatchCryptoClient(http, credentials, endpoint)
    orchestrator = TokenizationOrchestrator(credentials, policy, sessions, client)
    logger.info("Tokenization gateway ready (endpoint=%s)", endpoint)
    return Gateway(
        credentials=credentials,
        policy=policy,
        sessions=sessions,
        orchestrator=orchestrator,
        http=http,
    )
