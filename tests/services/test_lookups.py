from __future__ import annotations

import logging

from crm_contracts.models.lead import Employee, StageDefinition
from crm_contracts.services.contracts.errors import ContractsPersistenceError
from crm_contracts.services.contracts.lookups import LookupDirectory


class _FlakyRepository:
    def list_employees(self):
        raise ContractsPersistenceError("down", code="500_PERSISTENCE")

    def list_stages(self):
        return [StageDefinition(id=60, name="Client signed agreement")]


def test_employee_names():
    directory = LookupDirectory.from_records(
        [Employee(id=1, display_name="Dana Levi"), Employee(id=3, display_name=None)], []
    )

    assert directory.employee_name(1) == "Dana Levi"
    assert directory.employee_name("1") == "Dana Levi"
    assert directory.employee_name(None) == "N/A"
    assert directory.employee_name("") == "N/A"
    assert directory.employee_name(0) == "N/A"
    assert directory.employee_name(3) == "Unknown"
    assert directory.employee_name(404) == "Unknown"


def test_stage_names_fall_back_to_synthesized_label():
    directory = LookupDirectory.from_records([], [StageDefinition(id=60, name="Signed")])

    assert directory.stage_name("60") == "Signed"
    assert directory.stage_name(60) == "Signed"
    assert directory.stage_name(75) == "Stage 75"


def test_load_from_repository(repository):
    directory = LookupDirectory.load(repository)

    assert directory.employee_name(2) == "Yossi Cohen"
    assert directory.stage_name(100) == "Success"


def test_failed_table_leaves_its_map_empty(caplog):
    caplog.set_level(logging.ERROR)

    directory = LookupDirectory.load(_FlakyRepository())

    assert directory.employees == {}
    assert directory.stage_name(60) == "Client signed agreement"
    assert any(record.getMessage() == "contracts.lookups.load_failed" for record in caplog.records)
