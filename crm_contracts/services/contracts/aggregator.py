"""Join signed-date history, employee names and sub-lead flags onto leads."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from crm_contracts.config import settings
from crm_contracts.models.lead import ContractRow, LeadKind, LegacyLead, NewLead, StageHistoryEntry
from crm_contracts.observability.metrics import metrics
from crm_contracts.services.contracts.display import format_display_number
from crm_contracts.services.contracts.errors import ContractsPersistenceError
from crm_contracts.services.contracts.filters import DateRange
from crm_contracts.services.contracts.lookups import LookupDirectory
from crm_contracts.services.contracts.repositories import LeadRepository

logger = logging.getLogger(__name__)


@dataclass
class AggregationResult:
    rows: list[ContractRow] = field(default_factory=list)
    unsigned: int = 0
    out_of_range: int = 0
    failed_sources: list[LeadKind] = field(default_factory=list)


@dataclass(frozen=True)
class _Companions:
    signed: dict[str, StageHistoryEntry]
    masters: set[str]


class ContractAggregator:
    """Builds contract rows from candidate leads of both sources.

    Companion data is fetched once per source with ``IN (...)`` queries and
    joined in memory. Sub-lead existence is checked within the lead's own
    source only.
    """

    def __init__(
        self,
        repository: LeadRepository,
        directory: LookupDirectory,
        *,
        signed_stage: int | None = None,
        success_stage: int | None = None,
    ) -> None:
        self._repository = repository
        self._directory = directory
        self._signed_stage = settings.signed_stage if signed_stage is None else signed_stage
        self._success_stage = settings.success_stage if success_stage is None else success_stage

    def aggregate(
        self,
        leads: Sequence[NewLead | LegacyLead],
        date_range: DateRange | None = None,
    ) -> AggregationResult:
        date_range = date_range or DateRange()
        result = AggregationResult()
        companions: dict[LeadKind, _Companions] = {}
        for kind in LeadKind:
            batch = [lead for lead in leads if lead.kind == kind]
            if not batch:
                continue
            try:
                companions[kind] = self._fetch_companions(kind, batch)
            except ContractsPersistenceError as exc:
                logger.error(
                    "contracts.aggregate.source_failed",
                    extra={"kind": kind.value, "code": exc.code, "leads": len(batch)},
                )
                result.failed_sources.append(kind)

        for lead in leads:
            kind = LeadKind(lead.kind)
            data = companions.get(kind)
            if data is None:
                continue
            entry = data.signed.get(str(lead.id))
            if entry is None or entry.date is None:
                result.unsigned += 1
                continue
            if not date_range.includes(entry.date):
                result.out_of_range += 1
                continue
            result.rows.append(self._build_row(lead, entry, str(lead.id) in data.masters))

        metrics.increment("report.rows", len(result.rows))
        if result.unsigned:
            metrics.increment("report.unsigned_excluded", result.unsigned)
        if result.out_of_range:
            metrics.increment("report.filter_excluded", result.out_of_range)
        return result

    def _fetch_companions(self, kind: LeadKind, batch: list[NewLead | LegacyLead]) -> _Companions:
        ids = [lead.id for lead in batch]
        signed = self._repository.latest_stage_entries(kind, ids, stage=self._signed_stage)
        roots = [lead.id for lead in batch if lead.is_root and str(lead.id) in signed]
        masters = self._repository.masters_with_sub_leads(kind, roots) if roots else set()
        return _Companions(signed=signed, masters=masters)

    def _build_row(
        self, lead: NewLead | LegacyLead, entry: StageHistoryEntry, has_sub_leads: bool
    ) -> ContractRow:
        employee_id = entry.creator_id if entry.creator_id else lead.closer_id
        return ContractRow(
            row_key=lead.row_key,
            kind=LeadKind(lead.kind),
            lead_id=lead.id,
            lead_number=format_display_number(
                lead, has_sub_leads, success_stage=self._success_stage
            ),
            stored_lead_number=lead.lead_number,
            name=lead.name,
            email=lead.email,
            phone=lead.phone,
            mobile=lead.mobile,
            topic=lead.topic,
            stage=lead.stage,
            stage_name=self._directory.stage_name(lead.stage),
            signed_date=entry.date,
            creator_id=entry.creator_id,
            closer_id=lead.closer_id,
            employee_name=self._directory.employee_name(employee_id),
        )
