"""Initial schema — records and audit_log.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from __future__ import annotations

from typing import Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, tuple[str, ...], None] = None
depends_on: Union[str, tuple[str, ...], None] = None


def _id_and_timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    # Sensitive columns hold tokens, so they are unbounded text
    op.create_table(
        "records",
        sa.Column("name", sa.Text(), nullable=False, index=True),
        sa.Column("phone", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("ssn", sa.Text(), nullable=False),
        sa.Column("passport_number", sa.Text()),
        sa.Column("account_number", sa.String(64), nullable=False, index=True),
        sa.Column("service_request", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(100), nullable=False),
        *_id_and_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "audit_log",
        sa.Column("event_type", sa.String(100), nullable=False, index=True),
        sa.Column("record_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("actor_id", sa.String(100), comment="Username or 'system'"),
        sa.Column("actor_role", sa.String(50), comment="admin, editor, viewer, system"),
        sa.Column("data", postgresql.JSONB(astext_type=sa.Text())),
        *_id_and_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("records")
