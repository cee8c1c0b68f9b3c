"""Role → field detokenization policy.

The table is built once from the credentials file and covers every
Role × SensitiveField pair; a pair with no explicit grant is denied.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType

from tokengate.gateway.schemas import CredentialsFile, MaskingMode, Role, SensitiveField, key_of


@dataclass(frozen=True)
class PolicyEntry:
    may_detokenize: bool = False
    masking: MaskingMode = MaskingMode.NONE


_DENIED = PolicyEntry()


class FieldPolicy:
    """Immutable lookup table. All queries are pure and never raise."""

    def __init__(self, entries: dict[tuple[str, str], PolicyEntry]) -> None:
        self._entries = MappingProxyType(dict(entries))

    @classmethod
    def from_config(cls, config: CredentialsFile) -> FieldPolicy:
        entries: dict[tuple[str, str], PolicyEntry] = {}
        for role in Role:
            for field in SensitiveField:
                mapping = config.dsm.fields.get(field.value)
                if mapping is None or role.value not in mapping.detokenize:
                    entries[(role.value, field.value)] = _DENIED
                    continue
                masking = MaskingMode.PARTIAL if role.value in mapping.masked else MaskingMode.NONE
                entries[(role.value, field.value)] = PolicyEntry(may_detokenize=True, masking=masking)
        return cls(entries)

    def entry(self, role: Role | str, field: SensitiveField | str) -> PolicyEntry:
        return self._entries.get((key_of(role), key_of(field)), _DENIED)

    def is_detokenizable(self, role: Role | str, field: SensitiveField | str) -> bool:
        return self.entry(role, field).may_detokenize

    def allowed_fields(self, role: Role | str) -> frozenset[str]:
        """Fields this role may ever see decrypted."""
        role_key = key_of(role)
        return frozenset(
            field for (r, field), entry in self._entries.items() if r == role_key and entry.may_detokenize
        )

    def masking_for(self, role: Role | str, field: SensitiveField | str) -> MaskingMode:
        return self.entry(role, field).masking
