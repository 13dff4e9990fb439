"""Contracts report: signed-lead search and signed-date edits."""

from __future__ import annotations

import logging
import time
from datetime import date, datetime
from enum import Enum
from typing import Final

from pydantic import BaseModel, Field

from crm_contracts.config import settings
from crm_contracts.models.lead import (
    ContractRow,
    LeadFamily,
    LeadKind,
    LeadRef,
    LegacyLead,
    NewLead,
    as_utc,
)
from crm_contracts.observability.metrics import metrics
from crm_contracts.services.contracts.aggregator import ContractAggregator
from crm_contracts.services.contracts.display import build_family, format_display_number
from crm_contracts.services.contracts.errors import (
    ContractsError,
    ContractsPersistenceError,
    LeadNotFoundError,
)
from crm_contracts.services.contracts.filters import DateRange, parse_date, start_of_day
from crm_contracts.services.contracts.lookups import LookupDirectory
from crm_contracts.services.contracts.repositories import LeadRepository, build_lead_repository
from crm_contracts.services.contracts.search import LeadSearch, parse_search_query

logger = logging.getLogger(__name__)

UPDATED_MESSAGE: Final[str] = "Signed date updated successfully!"
REMOVED_MESSAGE: Final[str] = (
    "Signed date updated successfully! However, this lead no longer matches the date "
    "filter and has been removed from the results."
)
FAILED_MESSAGE: Final[str] = "Failed to update signed date. Please try again."


class SignedDateOutcome(str, Enum):
    UPDATED = "updated"
    REMOVED = "removed"
    FAILED = "failed"


class SignedDateChange(BaseModel):
    """Result of writing a new signed date for one report row."""

    row_key: str
    outcome: SignedDateOutcome
    message: str
    in_filter: bool
    signed_date: datetime | None = None
    rows_updated: int = 0


class ContractReport(BaseModel):
    query: str = ""
    date_from: date | None = None
    date_to: date | None = None
    rows: list[ContractRow] = Field(default_factory=list)
    excluded_unsigned: int = 0
    excluded_by_date: int = 0
    failed_sources: list[LeadKind] = Field(default_factory=list)


def _coerce_signed_date(value: str | date | datetime) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    day = parse_date(value)
    if day is None:
        raise ValueError("A signed date is required.")
    return start_of_day(day)


class ContractsReportService:
    """Stateless entry point shared by the API, the export tool and sessions."""

    def __init__(
        self,
        repository: LeadRepository | None = None,
        *,
        directory: LookupDirectory | None = None,
        signed_stage: int | None = None,
        success_stage: int | None = None,
        new_lead_limit: int | None = None,
        legacy_lead_limit: int | None = None,
    ) -> None:
        default_new, default_legacy = settings.search_limits
        self._repository = repository or build_lead_repository()
        self._directory = directory
        self._signed_stage = settings.signed_stage if signed_stage is None else signed_stage
        self._success_stage = settings.success_stage if success_stage is None else success_stage
        self._limits = {
            LeadKind.NEW: default_new if new_lead_limit is None else new_lead_limit,
            LeadKind.LEGACY: default_legacy if legacy_lead_limit is None else legacy_lead_limit,
        }

    @property
    def repository(self) -> LeadRepository:
        return self._repository

    @property
    def directory(self) -> LookupDirectory:
        """Employee/stage names, loaded from the repository on first use."""
        if self._directory is None:
            self._directory = LookupDirectory.load(self._repository)
        return self._directory

    def search(
        self,
        query: str = "",
        date_range: DateRange | None = None,
        *,
        directory: LookupDirectory | None = None,
    ) -> ContractReport:
        date_range = date_range or DateRange()
        criteria = parse_search_query(query)
        started = time.perf_counter()
        candidates: list[NewLead | LegacyLead] = []
        failed: list[LeadKind] = []
        for kind in LeadKind:
            if not _should_query(kind, criteria):
                continue
            try:
                candidates.extend(
                    self._repository.search_leads(
                        kind,
                        criteria,
                        min_stage=self._signed_stage,
                        limit=self._limits[kind],
                    )
                )
            except ContractsPersistenceError as exc:
                logger.error(
                    "contracts.report.source_failed",
                    extra={"kind": kind.value, "code": exc.code, "query": criteria.text},
                )
                failed.append(kind)

        aggregator = ContractAggregator(
            self._repository,
            directory or self.directory,
            signed_stage=self._signed_stage,
            success_stage=self._success_stage,
        )
        result = aggregator.aggregate(candidates, date_range)
        failed.extend(kind for kind in result.failed_sources if kind not in failed)
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.timing("report.search_ms", elapsed_ms)
        logger.info(
            "contracts.report.completed",
            extra={
                "query": criteria.text,
                **date_range.as_dict(),
                "rows": len(result.rows),
                "new_rows": sum(1 for row in result.rows if row.kind is LeadKind.NEW),
                "legacy_rows": sum(1 for row in result.rows if row.kind is LeadKind.LEGACY),
                "failed_sources": [kind.value for kind in failed],
            },
        )
        return ContractReport(
            query=criteria.text,
            date_from=date_range.date_from,
            date_to=date_range.date_to,
            rows=result.rows,
            excluded_unsigned=result.unsigned,
            excluded_by_date=result.out_of_range,
            failed_sources=failed,
        )

    def update_signed_date(
        self,
        ref: LeadRef,
        new_date: str | date | datetime,
        date_range: DateRange | None = None,
    ) -> SignedDateChange:
        """Persist ``new_date`` on the lead's stage-60 history and re-check the filter.

        The write happens whether or not the new date still matches
        ``date_range``; ``outcome`` tells the caller whether to keep the row.
        """
        date_range = date_range or DateRange()
        signed = _coerce_signed_date(new_date)
        touched = self._repository.update_stage_date(ref, signed, stage=self._signed_stage)
        if touched == 0:
            logger.warning(
                "contracts.signed_date.no_rows",
                extra={"row_key": ref.row_key, "stage": self._signed_stage},
            )
        in_filter = date_range.includes(signed)
        outcome = SignedDateOutcome.UPDATED if in_filter else SignedDateOutcome.REMOVED
        metrics.increment("signed_date.updated", tags={"outcome": outcome.value})
        logger.info(
            "contracts.signed_date.updated",
            extra={
                "row_key": ref.row_key,
                "signed_date": signed.isoformat(),
                "in_filter": in_filter,
                **date_range.as_dict(),
            },
        )
        return SignedDateChange(
            row_key=ref.row_key,
            outcome=outcome,
            message=UPDATED_MESSAGE if in_filter else REMOVED_MESSAGE,
            in_filter=in_filter,
            signed_date=signed,
            rows_updated=touched,
        )

    def get_lead(self, ref: LeadRef) -> NewLead | LegacyLead:
        lead = self._repository.get_lead(ref)
        if lead is None:
            raise LeadNotFoundError(
                f"Lead {ref.row_key} was not found.", code="404_LEAD_NOT_FOUND"
            )
        return lead

    def display_number(self, ref: LeadRef) -> str:
        lead = self.get_lead(ref)
        has_sub_leads = False
        if lead.is_root:
            has_sub_leads = str(lead.id) in self._repository.masters_with_sub_leads(
                ref.kind, [lead.id]
            )
        return format_display_number(lead, has_sub_leads, success_stage=self._success_stage)

    def lead_family(self, ref: LeadRef) -> LeadFamily:
        """The lead's master (or the lead itself) with its same-source sub-leads."""
        lead = self.get_lead(ref)
        master = lead
        if not lead.is_root:
            master = self.get_lead(LeadRef(kind=ref.kind, id=lead.master_id))
        sub_leads = self._repository.list_sub_leads(LeadRef(kind=ref.kind, id=master.id))
        return build_family(master, sub_leads, success_stage=self._success_stage)


def _should_query(kind: LeadKind, criteria: LeadSearch) -> bool:
    if criteria.is_unbounded:
        return True
    if kind is LeadKind.NEW:
        return criteria.has_conditions
    return criteria.has_legacy_conditions


class ContractsReportSession:
    """The result set one user is looking at, with its active filter.

    Mirrors the report screen: ``search`` replaces the rows, and
    ``save_signed_date`` mutates them after a successful write.
    """

    def __init__(self, service: ContractsReportService) -> None:
        self._service = service
        self._directory: LookupDirectory | None = None
        self.query = ""
        self.date_range = DateRange()
        self.results: list[ContractRow] = []
        self.failed_sources: list[LeadKind] = []

    def search(
        self,
        query: str = "",
        *,
        date_from: str | date | None = None,
        date_to: str | date | None = None,
    ) -> list[ContractRow]:
        try:
            date_range = DateRange.parse(date_from, date_to)
        except ValueError:
            logger.warning(
                "contracts.session.invalid_date_range",
                extra={"query": query, "date_from": str(date_from), "date_to": str(date_to)},
            )
            return self.results
        self.query = query
        self.date_range = date_range
        try:
            if self._directory is None:
                self._directory = LookupDirectory.load(self._service.repository)
            report = self._service.search(query, self.date_range, directory=self._directory)
        except ContractsError:
            logger.exception("contracts.session.search_failed", extra={"query": query})
            self.results = []
            self.failed_sources = list(LeadKind)
            return self.results
        self.results = list(report.rows)
        self.failed_sources = list(report.failed_sources)
        return self.results

    def find(self, row_key: str) -> ContractRow | None:
        return next((row for row in self.results if row.row_key == row_key), None)

    def save_signed_date(
        self, row_key: str | None, new_date: str | date | datetime | None
    ) -> SignedDateChange | None:
        if not row_key or not new_date:
            logger.warning(
                "contracts.signed_date.missing_input",
                extra={"row_key": row_key, "has_date": bool(new_date)},
            )
            return None
        row = self.find(row_key)
        if row is None:
            logger.warning("contracts.signed_date.unknown_row", extra={"row_key": row_key})
            return None
        try:
            signed = _coerce_signed_date(new_date)
        except ValueError:
            logger.warning("contracts.signed_date.invalid_date", extra={"row_key": row_key})
            return None
        try:
            change = self._service.update_signed_date(row.ref, signed, self.date_range)
        except ContractsPersistenceError as exc:
            logger.error(
                "contracts.signed_date.failed", extra={"row_key": row_key, "code": exc.code}
            )
            return SignedDateChange(
                row_key=row_key,
                outcome=SignedDateOutcome.FAILED,
                message=FAILED_MESSAGE,
                in_filter=self.date_range.includes(row.signed_date),
                signed_date=row.signed_date,
            )

        if change.outcome is SignedDateOutcome.REMOVED:
            self.results = [item for item in self.results if item.row_key != row_key]
        else:
            self.results = [
                item.model_copy(update={"signed_date": change.signed_date})
                if item.row_key == row_key
                else item
                for item in self.results
            ]
        return change


_SERVICE_INSTANCE: ContractsReportService | None = None


def get_contracts_service() -> ContractsReportService:
    """Singleton accessor used by API routes."""
    global _SERVICE_INSTANCE  # noqa: PLW0603
    if _SERVICE_INSTANCE is None:
        _SERVICE_INSTANCE = ContractsReportService()
    return _SERVICE_INSTANCE
