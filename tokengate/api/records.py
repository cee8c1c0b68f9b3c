"""Record API — create, list, search, fetch and delete records.

Writes tokenize before insert; reads detokenize after select, per the
caller's role. Raw view returns stored tokens untouched (admin only).
"""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tokengate.api.auth import Principal, require_auth, require_role
from tokengate.api.dependencies import get_gateway
from tokengate.audit.events import emit
from tokengate.db.engine import get_session
from tokengate.gateway import Gateway, GatewayError, Role
from tokengate.records.queries import (
    SEARCHABLE_FIELDS,
    delete_record,
    get_record,
    insert_record,
    list_records,
    search_records,
)
from tokengate.schemas.events import EventType, SystemEvent
from tokengate.schemas.records import RecordCreate, RecordCreated, RecordList, SearchResult
from tokengate.security.rate_limiter import enforce_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["records"], dependencies=[Depends(enforce_rate_limit)])


async def _emit(event_type: EventType, principal: Principal, record_id: uuid.UUID | None = None, **data: Any) -> None:
    await emit(SystemEvent(
        event_type=event_type,
        actor_id=principal.username,
        actor_role=principal.role.value,
        record_id=record_id,
        data=data,
        source_module="api.records",
    ))


@router.post("/records", status_code=status.HTTP_201_CREATED, response_model=RecordCreated)
async def create_record(
    payload: RecordCreate,
    principal: Principal = Depends(require_role(Role.ADMIN, Role.EDITOR)),
    gateway: Gateway = Depends(get_gateway),
    db: AsyncSession = Depends(get_session),
) -> RecordCreated:
    record = {**payload.model_dump(), "created_by": principal.username}
    tokenized = await gateway.orchestrator.tokenize_record(record, principal.role)
    record_id = await insert_record(db, tokenized)
    await _emit(EventType.RECORD_CREATED, principal, record_id)
    return RecordCreated(record_id=str(record_id))


@router.get("/records", response_model=RecordList)
async def get_records(
    principal: Principal = Depends(require_auth),
    gateway: Gateway = Depends(get_gateway),
    db: AsyncSession = Depends(get_session),
) -> RecordList:
    rows = [row.to_dict() for row in await list_records(db)]
    records = await gateway.orchestrator.detokenize_records(rows, principal.role)
    await _emit(EventType.RECORDS_LISTED, principal, count=len(records))
    return RecordList(records=records, count=len(records))


@router.get("/records/search", response_model=SearchResult)
async def search(
    query: str = Query(min_length=1),
    field: str | None = Query(default=None),
    principal: Principal = Depends(require_auth),
    gateway: Gateway = Depends(get_gateway),
    db: AsyncSession = Depends(get_session),
) -> SearchResult:
    """Search by name (tokenized lookup) or account number (plaintext lookup)."""
    search_field = field if field in SEARCHABLE_FIELDS else "name"

    term = query
    if search_field == "name":
        try:
            term = await gateway.orchestrator.tokenize_field(query, "name", principal.role)
        except GatewayError:
            logger.exception("Failed to tokenize search query, searching with raw query")

    rows = [row.to_dict() for row in await search_records(db, term, search_field)]
    records = await gateway.orchestrator.detokenize_records(rows, principal.role)
    await _emit(EventType.RECORDS_SEARCHED, principal, field=search_field, count=len(records))
    return SearchResult(records=records, count=len(records), search_field=search_field, query=query)


@router.get("/records/raw/view", response_model=RecordList)
async def raw_records(
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: AsyncSession = Depends(get_session),
) -> RecordList:
    """Stored rows exactly as persisted, for verifying that tokenization happened."""
    records = [row.to_dict() for row in await list_records(db)]
    await _emit(EventType.RECORDS_RAW_VIEWED, principal, count=len(records))
    return RecordList(records=records, count=len(records))


@router.get("/records/{record_id}")
async def get_one(
    record_id: uuid.UUID,
    principal: Principal = Depends(require_auth),
    gateway: Gateway = Depends(get_gateway),
    db: AsyncSession = Depends(get_session),
) -> dict:
    row = await get_record(db, record_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")
    record = await gateway.orchestrator.detokenize_record(row.to_dict(), principal.role)
    await _emit(EventType.RECORD_VIEWED, principal, record_id)
    return {"success": True, "record": record}


@router.delete("/records/{record_id}")
async def delete_one(
    record_id: uuid.UUID,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: AsyncSession = Depends(get_session),
) -> dict:
    if not await delete_record(db, record_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")
    await _emit(EventType.RECORD_DELETED, principal, record_id)
    return {"success": True, "message": "Record deleted successfully"}


@router.get("/auth/me")
async def me(principal: Principal = Depends(require_auth)) -> dict:
    return {"success": True, "user": principal.model_dump(mode="json")}
