"""SystemEvent schema — emitted for every record access, consumed by the audit log."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types emitted by the system."""

    # Records
    RECORD_CREATED = "record.created"
    RECORD_VIEWED = "record.viewed"
    RECORD_DELETED = "record.deleted"
    RECORDS_LISTED = "records.listed"
    RECORDS_SEARCHED = "records.searched"
    RECORDS_RAW_VIEWED = "records.raw_viewed"

    # System
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_SHUTDOWN = "system.shutdown"


class SystemEvent(BaseModel):
    """Immutable event. Never carries plaintext sensitive values."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    actor_id: str | None = None
    actor_role: str | None = None
    record_id: uuid.UUID | None = None

    data: dict[str, Any] = Field(default_factory=dict)

    source_module: str | None = Field(default=None, description="Module that emitted this event")

    model_config = {"frozen": True}
