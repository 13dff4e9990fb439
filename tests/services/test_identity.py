from __future__ import annotations

import pytest

from crm_contracts.models.lead import LeadKind, LeadRef, LegacyLead, NewLead
from crm_contracts.services.contracts.errors import InvalidLeadReferenceError
from crm_contracts.services.contracts.identity import (
    lead_ref,
    parse_row_key,
    resolve_lead,
    resolve_rows,
)


def test_kind_comes_from_source_table_not_id_shape():
    lead = resolve_lead(LeadKind.NEW, {"id": 42, "lead_number": "L42", "stage": 70})

    assert isinstance(lead, NewLead)
    assert lead.id == "42"
    assert lead.row_key == "42"


def test_legacy_rows_use_prefixed_row_key():
    lead = resolve_lead(LeadKind.LEGACY, {"id": "7", "stage": "65", "master_id": ""})

    assert isinstance(lead, LegacyLead)
    assert lead.id == 7
    assert lead.master_id is None
    assert lead.row_key == "legacy_7"
    assert lead.lead_number == "7"


def test_blank_master_id_counts_as_root():
    lead = resolve_lead(LeadKind.NEW, {"id": "a", "master_id": "  "})

    assert lead is not None
    assert lead.is_root


def test_absent_and_malformed_rows_are_skipped():
    rows = [
        None,
        {},
        {"id": None},
        {"id": "not-a-number", "stage": 70},
        {"id": 3, "stage": 70},
    ]

    leads = resolve_rows(LeadKind.LEGACY, rows)

    assert [lead.id for lead in leads] == [3]


def test_lead_ref_round_trips_through_row_key():
    lead = resolve_lead(LeadKind.LEGACY, {"id": 12})

    ref = lead_ref(lead)

    assert ref == LeadRef(kind=LeadKind.LEGACY, id=12)
    assert parse_row_key(ref.row_key) == ref


def test_parse_row_key_for_new_lead():
    assert parse_row_key(" 0b6f5c1e-0001 ") == LeadRef(kind=LeadKind.NEW, id="0b6f5c1e-0001")


@pytest.mark.parametrize("row_key", ["", "   ", "legacy_", "legacy_abc", "legacy_١٢"])
def test_parse_row_key_rejects_bad_references(row_key):
    with pytest.raises(InvalidLeadReferenceError) as exc_info:
        parse_row_key(row_key)

    assert exc_info.value.code == "422_INVALID_LEAD_REFERENCE"
