"""Request/response schemas for the record API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class RecordCreate(BaseModel):
    """New record as submitted by the caller — every field is required."""

    name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: str = Field(min_length=1)
    ssn: str = Field(min_length=1)
    passport_number: str = Field(min_length=1)
    account_number: str = Field(min_length=1)
    service_request: str = Field(min_length=1)

    @field_validator("*", mode="before")
    @classmethod
    def strip_whitespace(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class RecordCreated(BaseModel):
    success: bool = True
    message: str = "Record created successfully"
    record_id: str


class RecordList(BaseModel):
    success: bool = True
    records: list[dict[str, Any]]
    count: int


class SearchResult(RecordList):
    search_field: str
    query: str
