"""Record store queries. Rows are written and read exactly as given;
tokenization happens before insert and detokenization after select."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tokengate.gateway.schemas import NON_SENSITIVE_FIELDS, SENSITIVE_FIELDS
from tokengate.models.record import Record

logger = logging.getLogger(__name__)

# Columns a search may target, keyed by the API's field name.
SEARCHABLE_FIELDS: dict[str, Any] = {
    "name": Record.name,
    "account_number": Record.account_number,
}

_COLUMNS = SENSITIVE_FIELDS + NON_SENSITIVE_FIELDS


async def insert_record(db: AsyncSession, values: Mapping[str, Any]) -> uuid.UUID:
    record = Record(**{col: values.get(col) for col in _COLUMNS})
    db.add(record)
    await db.flush()
    logger.info("Inserted record %s", record.id)
    return record.id


async def list_records(db: AsyncSession) -> list[Record]:
    result = await db.execute(select(Record).order_by(Record.created_at.desc()))
    return list(result.scalars().all())


async def search_records(db: AsyncSession, term: str, field: str = "name") -> list[Record]:
    """Substring search on a searchable column; unknown fields match nothing."""
    column = SEARCHABLE_FIELDS.get(field)
    if column is None:
        return []
    stmt = select(Record).where(column.contains(term, autoescape=True)).order_by(Record.created_at.desc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_record(db: AsyncSession, record_id: uuid.UUID) -> Record | None:
    return await db.get(Record, record_id)


async def delete_record(db: AsyncSession, record_id: uuid.UUID) -> bool:
    record = await db.get(Record, record_id)
    if record is None:
        return False
    await db.delete(record)
    await db.flush()
    logger.info("Deleted record %s", record_id)
    return True
