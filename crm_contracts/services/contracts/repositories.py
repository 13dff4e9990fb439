"""Persistence backends for lead, stage-history and lookup data."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import datetime
from threading import Lock
from typing import Any, Protocol

from pydantic import TypeAdapter
from sqlalchemy import or_, update
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from crm_contracts.config import settings
from crm_contracts.core.database import backend_tag, build_engine, check_database_health
from crm_contracts.models.lead import (
    Employee,
    LeadKind,
    LeadRef,
    LegacyLead,
    NewLead,
    StageDefinition,
    StageHistoryEntry,
    as_utc,
)
from crm_contracts.models.tables import (
    LEAD_TABLES,
    EmployeeRecord,
    LeadStageRecord,
    StageRecord,
)
from crm_contracts.observability.metrics import metrics
from crm_contracts.services.contracts.errors import ContractsPersistenceError
from crm_contracts.services.contracts.identity import resolve_lead, resolve_rows
from crm_contracts.services.contracts.search import LeadSearch, ilike

logger = logging.getLogger(__name__)

_DATETIME = TypeAdapter(datetime)


class LeadRepository(Protocol):
    """Read/write contract for the two lead tables and their companions."""

    def search_leads(
        self, kind: LeadKind, criteria: LeadSearch, *, min_stage: int, limit: int
    ) -> list[NewLead | LegacyLead]:
        """Leads of ``kind`` with ``stage > min_stage`` matching ``criteria``."""
        ...

    def latest_stage_entries(
        self, kind: LeadKind, lead_ids: Sequence[str | int], *, stage: int
    ) -> dict[str, StageHistoryEntry]:
        """Most recent dated history row at ``stage`` per lead, keyed by ``str(lead_id)``."""
        ...

    def masters_with_sub_leads(self, kind: LeadKind, lead_ids: Sequence[str | int]) -> set[str]:
        """Ids (as strings) among ``lead_ids`` referenced by a same-source ``master_id``."""
        ...

    def get_lead(self, ref: LeadRef) -> NewLead | LegacyLead | None:
        ...

    def list_sub_leads(self, ref: LeadRef) -> list[NewLead | LegacyLead]:
        ...

    def list_employees(self) -> list[Employee]:
        ...

    def list_stages(self) -> list[StageDefinition]:
        ...

    def update_stage_date(self, ref: LeadRef, new_date: datetime, *, stage: int) -> int:
        """Set ``date`` on every history row of ``ref`` at ``stage``; return rows touched."""
        ...

    def ping(self) -> bool:
        ...


def _normalize_id(kind: LeadKind, value: str | int) -> str | int:
    return int(value) if kind is LeadKind.LEGACY else str(value)


def _stage_value(value: object) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class InMemoryLeadRepository(LeadRepository):
    """Thread-safe repository used for local development, tools and tests."""

    def __init__(
        self,
        *,
        new_leads: Sequence[Mapping[str, Any]] = (),
        legacy_leads: Sequence[Mapping[str, Any]] = (),
        stage_history: Sequence[Mapping[str, Any]] = (),
        employees: Sequence[Mapping[str, Any]] = (),
        stages: Sequence[Mapping[str, Any]] = (),
    ) -> None:
        self._leads: dict[LeadKind, list[dict[str, Any]]] = {
            LeadKind.NEW: [dict(row) for row in new_leads],
            LeadKind.LEGACY: [dict(row) for row in legacy_leads],
        }
        self._history = [
            self._history_row(row, position) for position, row in enumerate(stage_history, start=1)
        ]
        self._employees = [Employee(**row) for row in employees]
        self._stages = [StageDefinition(**row) for row in stages]
        self._lock = Lock()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> InMemoryLeadRepository:
        """Build from a fixture document with one list per table."""
        return cls(
            new_leads=payload.get("leads", []),
            legacy_leads=payload.get("leads_lead", []),
            stage_history=payload.get("leads_leadstage", []),
            employees=payload.get("tenants_employee", []),
            stages=payload.get("lead_stages", []),
        )

    @staticmethod
    def _history_row(row: Mapping[str, Any], position: int) -> dict[str, Any]:
        entry = dict(row)
        # Rows without an id are numbered in insertion order, like the table's serial key.
        if entry.get("id") is None:
            entry["id"] = position
        if isinstance(entry.get("date"), str):
            entry["date"] = _DATETIME.validate_python(entry["date"])
        entry["date"] = as_utc(entry.get("date"))
        return entry

    def search_leads(
        self, kind: LeadKind, criteria: LeadSearch, *, min_stage: int, limit: int
    ) -> list[NewLead | LegacyLead]:
        with self._lock:
            rows = [
                dict(row)
                for row in self._leads[kind]
                if (_stage_value(row.get("stage")) or 0) > min_stage
                and (criteria.is_unbounded or self._matches(kind, row, criteria))
            ]
        return resolve_rows(kind, rows[: max(0, limit)])

    @staticmethod
    def _matches(kind: LeadKind, row: Mapping[str, Any], criteria: LeadSearch) -> bool:
        if any(ilike(row.get("name"), f"%{term}%") for term in criteria.name_terms):
            return True
        if any(ilike(row.get("email"), f"%{term}%") for term in criteria.email_terms):
            return True
        if criteria.phone_digits and any(
            ilike(row.get(column), f"%{criteria.phone_digits}%") for column in ("phone", "mobile")
        ):
            return True
        if kind is LeadKind.NEW:
            return any(
                ilike(row.get("lead_number"), pattern)
                for pattern in criteria.new_lead_number_patterns()
            )
        return criteria.legacy_id is not None and str(row.get("id")) == str(criteria.legacy_id)

    def latest_stage_entries(
        self, kind: LeadKind, lead_ids: Sequence[str | int], *, stage: int
    ) -> dict[str, StageHistoryEntry]:
        wanted = {str(lead_id) for lead_id in lead_ids}
        column = kind.history_column
        latest: dict[str, dict[str, Any]] = {}
        with self._lock:
            for row in self._history:
                key = row.get(column)
                if key is None or str(key) not in wanted:
                    continue
                if _stage_value(row.get("stage")) != stage or row.get("date") is None:
                    continue
                current = latest.get(str(key))
                if current is None or (row["date"], row["id"]) > (current["date"], current["id"]):
                    latest[str(key)] = dict(row)
        return {
            key: StageHistoryEntry(
                kind=kind,
                lead_id=_normalize_id(kind, key),
                stage=stage,
                date=row["date"],
                creator_id=row.get("creator_id"),
            )
            for key, row in latest.items()
        }

    def masters_with_sub_leads(self, kind: LeadKind, lead_ids: Sequence[str | int]) -> set[str]:
        wanted = {str(lead_id) for lead_id in lead_ids}
        with self._lock:
            referenced = {
                str(row["master_id"]).strip()
                for row in self._leads[kind]
                if row.get("master_id") not in (None, "")
            }
        return wanted & referenced

    def get_lead(self, ref: LeadRef) -> NewLead | LegacyLead | None:
        with self._lock:
            for row in self._leads[ref.kind]:
                if str(row.get("id")) == str(ref.id):
                    return resolve_lead(ref.kind, row)
        return None

    def list_sub_leads(self, ref: LeadRef) -> list[NewLead | LegacyLead]:
        with self._lock:
            rows = [
                dict(row)
                for row in self._leads[ref.kind]
                if row.get("master_id") not in (None, "")
                and str(row["master_id"]).strip() == str(ref.id)
            ]
        return resolve_rows(ref.kind, rows)

    def list_employees(self) -> list[Employee]:
        with self._lock:
            return list(self._employees)

    def list_stages(self) -> list[StageDefinition]:
        with self._lock:
            return list(self._stages)

    def update_stage_date(self, ref: LeadRef, new_date: datetime, *, stage: int) -> int:
        column = ref.kind.history_column
        touched = 0
        with self._lock:
            for row in self._history:
                if row.get(column) is None or str(row[column]) != str(ref.id):
                    continue
                if _stage_value(row.get("stage")) != stage:
                    continue
                row["date"] = new_date
                touched += 1
        metrics.increment("signed_date.persisted", tags={"repository": "memory"})
        return touched

    def history_for(self, ref: LeadRef) -> list[dict[str, Any]]:
        """Copy of the raw history rows for ``ref``."""
        column = ref.kind.history_column
        with self._lock:
            return [
                dict(row)
                for row in self._history
                if row.get(column) is not None and str(row[column]) == str(ref.id)
            ]

    def ping(self) -> bool:
        return True


class SupabaseLeadRepository(LeadRepository):
    """SQLModel-backed repository reading the Supabase lead tables."""

    def __init__(
        self,
        database_url: str,
        *,
        pool_min_size: int | None = None,
        pool_max_size: int | None = None,
        auto_create_schema: bool = False,
    ) -> None:
        if not database_url:
            raise ValueError("DATABASE_URL is required for SupabaseLeadRepository.")
        self._engine: Engine = build_engine(
            database_url, pool_min_size=pool_min_size, pool_max_size=pool_max_size
        )
        if auto_create_schema:
            SQLModel.metadata.create_all(self._engine)
        self._metrics_tags = {"repository": backend_tag(make_url(database_url))}

    @property
    def engine(self) -> Engine:
        return self._engine

    def dispose(self) -> None:
        """Close the underlying SQLAlchemy engine."""
        self._engine.dispose()

    def search_leads(
        self, kind: LeadKind, criteria: LeadSearch, *, min_stage: int, limit: int
    ) -> list[NewLead | LegacyLead]:
        table = LEAD_TABLES[kind]
        statement = select(table).where(table.stage > min_stage)
        if not criteria.is_unbounded:
            conditions = _search_conditions(kind, criteria)
            if not conditions:
                return []
            statement = statement.where(or_(*conditions))
        statement = statement.order_by(table.id).limit(max(0, limit))
        with self._guard("search_leads", kind=kind.value) as session:
            records = session.exec(statement).all()
            return resolve_rows(kind, [record.to_row() for record in records])

    def latest_stage_entries(
        self, kind: LeadKind, lead_ids: Sequence[str | int], *, stage: int
    ) -> dict[str, StageHistoryEntry]:
        if not lead_ids:
            return {}
        column = getattr(LeadStageRecord, kind.history_column)
        statement = (
            select(LeadStageRecord)
            .where(
                column.in_([_normalize_id(kind, lead_id) for lead_id in lead_ids]),
                LeadStageRecord.stage == stage,
                LeadStageRecord.date.is_not(None),
            )
            .order_by(column, LeadStageRecord.date.desc(), LeadStageRecord.id.desc())
        )
        latest: dict[str, StageHistoryEntry] = {}
        with self._guard("latest_stage_entries", kind=kind.value) as session:
            for record in session.exec(statement).all():
                key = str(getattr(record, kind.history_column))
                if key not in latest:
                    latest[key] = record.to_entry()
        return latest

    def masters_with_sub_leads(self, kind: LeadKind, lead_ids: Sequence[str | int]) -> set[str]:
        if not lead_ids:
            return set()
        table = LEAD_TABLES[kind]
        statement = (
            select(table.master_id)
            .where(table.master_id.in_([_normalize_id(kind, lead_id) for lead_id in lead_ids]))
            .distinct()
        )
        with self._guard("masters_with_sub_leads", kind=kind.value) as session:
            return {str(master_id) for master_id in session.exec(statement).all()}

    def get_lead(self, ref: LeadRef) -> NewLead | LegacyLead | None:
        table = LEAD_TABLES[ref.kind]
        with self._guard("get_lead", kind=ref.kind.value) as session:
            record = session.get(table, _normalize_id(ref.kind, ref.id))
            return resolve_lead(ref.kind, record.to_row()) if record else None

    def list_sub_leads(self, ref: LeadRef) -> list[NewLead | LegacyLead]:
        table = LEAD_TABLES[ref.kind]
        statement = (
            select(table)
            .where(table.master_id == _normalize_id(ref.kind, ref.id))
            .order_by(table.id)
        )
        with self._guard("list_sub_leads", kind=ref.kind.value) as session:
            records = session.exec(statement).all()
            return resolve_rows(ref.kind, [record.to_row() for record in records])

    def list_employees(self) -> list[Employee]:
        with self._guard("list_employees") as session:
            return [record.to_employee() for record in session.exec(select(EmployeeRecord)).all()]

    def list_stages(self) -> list[StageDefinition]:
        with self._guard("list_stages") as session:
            return [record.to_definition() for record in session.exec(select(StageRecord)).all()]

    def update_stage_date(self, ref: LeadRef, new_date: datetime, *, stage: int) -> int:
        column = getattr(LeadStageRecord, ref.kind.history_column)
        statement = (
            update(LeadStageRecord)
            .where(column == _normalize_id(ref.kind, ref.id), LeadStageRecord.stage == stage)
            .values(date=new_date)
        )
        with self._guard(
            "update_stage_date", kind=ref.kind.value, code="502_SIGNED_DATE_WRITE"
        ) as session:
            result = session.execute(statement)
            session.commit()
            touched = result.rowcount or 0
        metrics.increment("signed_date.persisted", tags=self._metrics_tags)
        logger.info(
            "contracts.persistence.signed_date_updated",
            extra={
                "row_key": ref.row_key,
                "rows": touched,
                "backend": self._metrics_tags["repository"],
            },
        )
        return touched

    def ping(self) -> bool:
        return check_database_health(self._engine)

    @contextmanager
    def _guard(
        self, operation: str, *, kind: str | None = None, code: str = "500_PERSISTENCE"
    ) -> Iterator[Session]:
        try:
            with Session(self._engine) as session:
                yield session
        except SQLAlchemyError as exc:
            logger.exception(
                "contracts.persistence.error",
                extra={
                    "operation": operation,
                    "kind": kind,
                    "backend": self._metrics_tags["repository"],
                },
            )
            metrics.increment("persistence.error", tags={**self._metrics_tags, "operation": operation})
            raise ContractsPersistenceError(
                f"Lead data operation {operation!r} failed.", code=code
            ) from exc


def _search_conditions(kind: LeadKind, criteria: LeadSearch) -> list[Any]:
    table = LEAD_TABLES[kind]
    conditions: list[Any] = []
    conditions.extend(table.name.ilike(f"%{term}%") for term in criteria.name_terms)
    conditions.extend(table.email.ilike(f"%{term}%") for term in criteria.email_terms)
    if criteria.phone_digits:
        conditions.append(table.phone.ilike(f"%{criteria.phone_digits}%"))
        conditions.append(table.mobile.ilike(f"%{criteria.phone_digits}%"))
    if kind is LeadKind.NEW:
        conditions.extend(
            table.lead_number.ilike(pattern) for pattern in criteria.new_lead_number_patterns()
        )
    elif criteria.legacy_id is not None:
        conditions.append(table.id == criteria.legacy_id)
    return conditions


def build_lead_repository(database_url: str | None = None) -> LeadRepository:
    """Instantiate a LeadRepository using DATABASE_URL when available."""
    resolved_url = database_url or settings.database_url
    if not resolved_url:
        logger.info("contracts.repository.initialized", extra={"backend": "memory"})
        return InMemoryLeadRepository()
    try:
        repository = SupabaseLeadRepository(
            resolved_url,
            pool_min_size=settings.db_pool_min_size,
            pool_max_size=settings.db_pool_max_size,
        )
        logger.info("contracts.repository.initialized", extra={"backend": "database"})
        return repository
    except Exception:
        logger.exception("contracts.repository.init_failed", extra={"backend": "database"})
        raise
