"""Tokenization gateway — per-role DSM sessions, batch crypto, field policy."""

from tokengate.gateway.errors import (
    AuthenticationError,
    ConfigurationError,
    GatewayError,
    MissingApiKeyError,
    SessionExpiredError,
    TransportError,
)
from tokengate.gateway.factory import Gateway, build_gateway
from tokengate.gateway.orchestrator import TokenizationOrchestrator
from tokengate.gateway.schemas import SENSITIVE_FIELDS, MaskingMode, Role, SensitiveField

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "Gateway",
    "GatewayError",
    "MaskingMode",
    "MissingApiKeyError",
    "Role",
    "SENSITIVE_FIELDS",
    "SensitiveField",
    "SessionExpiredError",
    "TokenizationOrchestrator",
    "TransportError",
    "build_gateway",
]
