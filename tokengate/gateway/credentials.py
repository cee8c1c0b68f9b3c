"""Static per-role API keys and per-field key ids, loaded once at startup.

Usage:
    store = CredentialStore.from_file("config/credentials.json")
    store.api_key_for("editor")
    store.key_id_for("ssn")
"""

from __future__ import annotations

import logging
from pathlib import Path

from tokengate.gateway.schemas import PLACEHOLDER_KEY_PREFIX, CredentialsFile, Role, SensitiveField, key_of

logger = logging.getLogger(__name__)


class CredentialStore:
    """Read-only view over the credentials file.

    Lookups never raise: unknown roles and fields return None.
    """

    def __init__(self, config: CredentialsFile) -> None:
        self._config = config

    @classmethod
    def from_file(cls, path: str | Path) -> CredentialStore:
        """Parse and validate the JSON credentials file."""
        raw = Path(path).read_text(encoding="utf-8")
        config = CredentialsFile.model_validate_json(raw)
        logger.info(
            "Loaded credentials for %d roles and %d fields from %s",
            len(config.dsm.roles),
            len(config.dsm.fields),
            path,
        )
        return cls(config)

    @property
    def config(self) -> CredentialsFile:
        return self._config

    @property
    def endpoint(self) -> str:
        return self._config.dsm.endpoint.rstrip("/")

    def api_key_for(self, role: Role | str) -> str | None:
        entry = self._config.dsm.roles.get(key_of(role))
        if entry is None or not entry.api_key:
            return None
        return entry.api_key

    def key_id_for(self, field: SensitiveField | str) -> str | None:
        mapping = self._config.dsm.fields.get(key_of(field))
        if mapping is None or not mapping.key_id:
            return None
        return mapping.key_id

    def is_configured(self, field: SensitiveField | str) -> bool:
        """True if the field has a real key id (not absent, not the placeholder)."""
        key_id = self.key_id_for(field)
        return key_id is not None and not key_id.startswith(PLACEHOLDER_KEY_PREFIX)

    def is_placeholder(self, field: SensitiveField | str) -> bool:
        key_id = self.key_id_for(field)
        return key_id is not None and key_id.startswith(PLACEHOLDER_KEY_PREFIX)
