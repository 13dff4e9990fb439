"""SQLModel mappings for the Supabase tables the contracts report reads."""
# ruff: noqa: UP017

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy import BigInteger, Column, DateTime, String, Text
from sqlmodel import Field, SQLModel

from crm_contracts.models.lead import Employee, LeadKind, StageDefinition, StageHistoryEntry

# SQLite only autoincrements INTEGER primary keys.
HISTORY_ID_TYPE = BigInteger().with_variant(sa.Integer(), "sqlite")


class NewLeadRecord(SQLModel, table=True):
    """Row of the contemporary ``leads`` table."""

    __tablename__ = "leads"
    __table_args__ = (sa.Index("ix_leads_master_id", "master_id"),)

    id: str = Field(sa_column=Column(String(length=64), primary_key=True, nullable=False))
    lead_number: str | None = Field(default=None, sa_column=Column(String(length=64), nullable=True))
    manual_id: str | None = Field(default=None, sa_column=Column(String(length=64), nullable=True))
    name: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    email: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    phone: str | None = Field(default=None, sa_column=Column(String(length=64), nullable=True))
    mobile: str | None = Field(default=None, sa_column=Column(String(length=64), nullable=True))
    topic: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    stage: int | None = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    master_id: str | None = Field(default=None, sa_column=Column(String(length=64), nullable=True))
    closer_id: int | None = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    created_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    def to_row(self) -> dict[str, Any]:
        return self.model_dump()


class LegacyLeadRecord(SQLModel, table=True):
    """Row of the legacy ``leads_lead`` table."""

    __tablename__ = "leads_lead"
    __table_args__ = (sa.Index("ix_leads_lead_master_id", "master_id"),)

    id: int = Field(sa_column=Column(BigInteger, primary_key=True, autoincrement=False))
    lead_number: str | None = Field(default=None, sa_column=Column(String(length=64), nullable=True))
    name: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    email: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    phone: str | None = Field(default=None, sa_column=Column(String(length=64), nullable=True))
    mobile: str | None = Field(default=None, sa_column=Column(String(length=64), nullable=True))
    topic: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    stage: int | None = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    master_id: int | None = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    closer_id: int | None = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    cdate: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    def to_row(self) -> dict[str, Any]:
        return self.model_dump()


class LeadStageRecord(SQLModel, table=True):
    """Stage transition history shared by both lead tables."""

    __tablename__ = "leads_leadstage"
    __table_args__ = (
        sa.Index("ix_leads_leadstage_newlead_stage", "newlead_id", "stage"),
        sa.Index("ix_leads_leadstage_lead_stage", "lead_id", "stage"),
    )

    id: int | None = Field(
        default=None, sa_column=Column(HISTORY_ID_TYPE, primary_key=True, autoincrement=True)
    )
    lead_id: int | None = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    newlead_id: str | None = Field(default=None, sa_column=Column(String(length=64), nullable=True))
    stage: int = Field(sa_column=Column(BigInteger, nullable=False))
    date: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    cdate: datetime | None = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    creator_id: int | None = Field(default=None, sa_column=Column(BigInteger, nullable=True))

    def to_entry(self) -> StageHistoryEntry:
        if self.newlead_id is not None:
            kind, lead_id = LeadKind.NEW, self.newlead_id
        else:
            kind, lead_id = LeadKind.LEGACY, self.lead_id
        return StageHistoryEntry(
            kind=kind,
            lead_id=lead_id,
            stage=self.stage,
            date=self.date,
            creator_id=self.creator_id,
        )


class EmployeeRecord(SQLModel, table=True):
    __tablename__ = "tenants_employee"

    id: int = Field(sa_column=Column(BigInteger, primary_key=True, autoincrement=False))
    display_name: str | None = Field(default=None, sa_column=Column(Text, nullable=True))

    def to_employee(self) -> Employee:
        return Employee(id=self.id, display_name=self.display_name)


class StageRecord(SQLModel, table=True):
    __tablename__ = "lead_stages"

    id: int = Field(sa_column=Column(BigInteger, primary_key=True, autoincrement=False))
    name: str = Field(sa_column=Column(Text, nullable=False))

    def to_definition(self) -> StageDefinition:
        return StageDefinition(id=self.id, name=self.name)


LEAD_TABLES: dict[LeadKind, type[SQLModel]] = {
    LeadKind.NEW: NewLeadRecord,
    LeadKind.LEGACY: LegacyLeadRecord,
}
