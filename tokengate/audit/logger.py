"""Audit subscriber — persists every SystemEvent to the audit_log table.

Never raises: a failed write is logged and the request carries on.
"""

from __future__ import annotations

import logging

from tokengate.db.engine import async_session_factory
from tokengate.models.audit import AuditLog
from tokengate.schemas.events import SystemEvent

logger = logging.getLogger(__name__)


async def audit_on_event(event: SystemEvent) -> None:
    try:
        async with async_session_factory() as db:
            db.add(AuditLog(
                event_type=event.event_type.value,
                record_id=event.record_id,
                actor_id=event.actor_id,
                actor_role=event.actor_role,
                data=event.data,
            ))
            await db.commit()
    except Exception:
        logger.exception("Failed to persist audit event: %s", event.event_type.value)
