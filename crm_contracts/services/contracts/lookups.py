"""Employee and stage name lookups built once per report session."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from crm_contracts.models.lead import Employee, StageDefinition
from crm_contracts.services.contracts.errors import ContractsPersistenceError

if TYPE_CHECKING:
    from crm_contracts.services.contracts.repositories import LeadRepository

logger = logging.getLogger(__name__)

MISSING_EMPLOYEE = "N/A"
UNKNOWN_EMPLOYEE = "Unknown"


@dataclass(frozen=True)
class LookupDirectory:
    employees: Mapping[str, str] = field(default_factory=dict)
    stages: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_records(
        cls, employees: Iterable[Employee], stages: Iterable[StageDefinition]
    ) -> LookupDirectory:
        return cls(
            employees={str(e.id): e.display_name for e in employees if e.display_name},
            stages={str(s.id): s.name for s in stages},
        )

    @classmethod
    def load(cls, repository: LeadRepository) -> LookupDirectory:
        """Bulk-load both maps; a failed table leaves its map empty."""
        employees: list[Employee] = []
        stages: list[StageDefinition] = []
        try:
            employees = repository.list_employees()
        except ContractsPersistenceError:
            logger.exception("contracts.lookups.load_failed", extra={"table": "tenants_employee"})
        try:
            stages = repository.list_stages()
        except ContractsPersistenceError:
            logger.exception("contracts.lookups.load_failed", extra={"table": "lead_stages"})
        directory = cls.from_records(employees, stages)
        logger.info(
            "contracts.lookups.loaded",
            extra={"employees": len(directory.employees), "stages": len(directory.stages)},
        )
        return directory

    def employee_name(self, employee_id: str | int | None) -> str:
        if employee_id is None or employee_id == "" or employee_id == 0:
            return MISSING_EMPLOYEE
        return self.employees.get(str(employee_id), UNKNOWN_EMPLOYEE)

    def stage_name(self, stage_id: str | int | None) -> str:
        key = "" if stage_id is None else str(stage_id)
        return self.stages.get(key, f"Stage {key}")
