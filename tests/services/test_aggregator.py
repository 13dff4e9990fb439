from __future__ import annotations

from datetime import date

from crm_contracts.models.lead import LeadKind
from crm_contracts.services.contracts import aggregator as aggregator_module
from crm_contracts.services.contracts.aggregator import ContractAggregator
from crm_contracts.services.contracts.errors import ContractsPersistenceError
from crm_contracts.services.contracts.filters import DateRange
from crm_contracts.services.contracts.lookups import LookupDirectory
from crm_contracts.services.contracts.repositories import InMemoryLeadRepository
from crm_contracts.services.contracts.search import LeadSearch
from tests.helpers.metrics_stub import StubMetrics

JANUARY = DateRange(date(2024, 1, 1), date(2024, 1, 31))


class _CountingRepository(InMemoryLeadRepository):
    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.calls: list[tuple[str, str, int]] = []

    def latest_stage_entries(self, kind, lead_ids, *, stage):
        self.calls.append(("latest_stage_entries", kind.value, len(lead_ids)))
        return super().latest_stage_entries(kind, lead_ids, stage=stage)

    def masters_with_sub_leads(self, kind, lead_ids):
        self.calls.append(("masters_with_sub_leads", kind.value, len(lead_ids)))
        return super().masters_with_sub_leads(kind, lead_ids)


class _LegacyHistoryDown(InMemoryLeadRepository):
    def latest_stage_entries(self, kind, lead_ids, *, stage):
        if kind is LeadKind.LEGACY:
            raise ContractsPersistenceError("history unavailable", code="500_PERSISTENCE")
        return super().latest_stage_entries(kind, lead_ids, stage=stage)


def _candidates(repository):
    everything = LeadSearch()
    return [
        lead
        for kind in LeadKind
        for lead in repository.search_leads(kind, everything, min_stage=60, limit=100)
    ]


def test_aggregate_joins_companion_data(repository, monkeypatch):
    stub = StubMetrics()
    monkeypatch.setattr(aggregator_module, "metrics", stub)
    aggregator = ContractAggregator(repository, LookupDirectory.load(repository))

    result = aggregator.aggregate(_candidates(repository), JANUARY)

    by_number = {row.lead_number: row for row in result.rows}
    assert set(by_number) == {"C5", "L7/1", "L7/2", "20"}
    assert by_number["C5"].employee_name == "Dana Levi"
    assert by_number["C5"].stage_name == "Success"
    assert by_number["C5"].stored_lead_number == "L5"
    # No creator on the latest signed row: falls back to the closer.
    assert by_number["L7/1"].employee_name == "Yossi Cohen"
    assert by_number["L7/1"].signed_date.date() == date(2024, 1, 10)
    assert by_number["L7/2"].employee_name == "Unknown"
    assert by_number["L7/2"].stage_name == "Stage 65"
    assert by_number["20"].employee_name == "N/A"
    assert by_number["20"].row_key == "legacy_20"
    assert result.unsigned == 1
    assert result.out_of_range == 1
    assert result.failed_sources == []
    assert stub.counter_total("report.rows") == 4
    assert stub.counter_total("report.unsigned_excluded") == 1
    assert stub.counter_total("report.filter_excluded") == 1


def test_companions_are_fetched_once_per_source(sample_payload):
    repository = _CountingRepository.from_payload(sample_payload)
    aggregator = ContractAggregator(repository, LookupDirectory())

    aggregator.aggregate(_candidates(repository))

    assert repository.calls == [
        ("latest_stage_entries", "new", 4),
        ("masters_with_sub_leads", "new", 2),
        ("latest_stage_entries", "legacy", 2),
        ("masters_with_sub_leads", "legacy", 2),
    ]


def test_failed_source_is_reported_and_other_source_kept(sample_payload):
    repository = _LegacyHistoryDown.from_payload(sample_payload)
    aggregator = ContractAggregator(repository, LookupDirectory.load(repository))

    result = aggregator.aggregate(_candidates(repository))

    assert result.failed_sources == [LeadKind.LEGACY]
    assert {row.kind for row in result.rows} == {LeadKind.NEW}
    assert len(result.rows) == 3


def test_empty_batch_returns_empty_result(repository):
    result = ContractAggregator(repository, LookupDirectory()).aggregate([])

    assert result.rows == []
    assert result.unsigned == 0
