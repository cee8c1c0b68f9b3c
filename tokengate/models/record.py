"""Record model — one row per submitted record, sensitive columns hold tokens.

The store treats every column as an opaque string. Whether a sensitive
column holds a token or a degraded plaintext value is decided upstream by
the tokenization gateway.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tokengate.models.base import Base, TimestampMixin


class Record(TimestampMixin, Base):
    __tablename__ = "records"

    # Sensitive (tokenized)
    name: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    phone: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    ssn: Mapped[str] = mapped_column(Text, nullable=False)
    passport_number: Mapped[str | None] = mapped_column(Text)

    # Non-sensitive (plaintext)
    account_number: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    service_request: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "ssn": self.ssn,
            "passport_number": self.passport_number,
            "account_number": self.account_number,
            "service_request": self.service_request,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Record id={self.id} created_by={self.created_by}>"
