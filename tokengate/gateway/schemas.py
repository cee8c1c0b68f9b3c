"""Gateway types: roles, sensitive fields, credentials file schema, batch results."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field


class Role(str, Enum):
    """Acting principal's role — selects the API key and the field policy."""

    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"


class SensitiveField(str, Enum):
    """Record fields that are tokenized before persistence."""

    NAME = "name"
    PHONE = "phone"
    EMAIL = "email"
    SSN = "ssn"
    PASSPORT_NUMBER = "passport_number"


def key_of(value: Enum | str) -> str:
    """Plain string form of a Role, SensitiveField or raw name."""
    return value.value if isinstance(value, Enum) else str(value)


class MaskingMode(str, Enum):
    """How a permitted field is returned by the remote decrypt call."""

    NONE = "none"
    PARTIAL = "partial"  # e.g. last four characters only


SENSITIVE_FIELDS: tuple[str, ...] = tuple(f.value for f in SensitiveField)
NON_SENSITIVE_FIELDS: tuple[str, ...] = ("account_number", "service_request", "created_by")

# Key ids with this prefix were never filled in; such fields pass through untouched.
PLACEHOLDER_KEY_PREFIX = "YOUR_"


# ── Credentials file ─────────────────────────────────────────────────


class RoleCredentials(BaseModel):
    api_key: str | None = None


class FieldKeyMapping(BaseModel):
    """Remote key id for one field plus the roles allowed to read it back."""

    key_id: str | None = None
    detokenize: list[str] = Field(default_factory=list)
    masked: list[str] = Field(default_factory=list)


class DSMConfig(BaseModel):
    endpoint: str = ""
    roles: dict[str, RoleCredentials] = Field(default_factory=dict)
    fields: dict[str, FieldKeyMapping] = Field(default_factory=dict)


class AppUser(BaseModel):
    username: str
    password: str
    role: Role


class AppConfig(BaseModel):
    users: list[AppUser] = Field(default_factory=list)


class CredentialsFile(BaseModel):
    """Top-level layout of the JSON credentials file."""

    dsm: DSMConfig = Field(default_factory=DSMConfig)
    app: AppConfig = Field(default_factory=AppConfig)


# ── Batch results ────────────────────────────────────────────────────


@dataclass(frozen=True)
class ItemValue:
    """Successful batch item: a token on encrypt, plaintext on decrypt."""

    value: str


@dataclass(frozen=True)
class ItemError:
    """One batch item could not be processed; the rest of the batch stands."""

    detail: str
    session_expired: bool = False


BatchResult = ItemValue | ItemError
