"""SQLAlchemy ORM models.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from tokengate.models.audit import AuditLog
from tokengate.models.base import Base
from tokengate.models.record import Record

__all__ = ["AuditLog", "Base", "Record"]
