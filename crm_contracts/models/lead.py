"""Domain models for new/legacy leads and contract report rows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Final, Literal, Union

from pydantic import BaseModel, Field, field_validator

LEGACY_KEY_PREFIX: Final[str] = "legacy_"
PLACEHOLDER_NUMBER: Final[str] = "---"


class LeadKind(str, Enum):
    """Physical table a lead was read from."""

    NEW = "new"
    LEGACY = "legacy"

    @property
    def history_column(self) -> str:
        """Foreign-key column on ``leads_leadstage`` that points at this source."""
        return "newlead_id" if self is LeadKind.NEW else "lead_id"


def _blank_to_none(value: object) -> object:
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value


def as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class _LeadBase(BaseModel):
    lead_number: str = ""
    manual_id: str | None = None
    name: str = ""
    email: str = ""
    phone: str = ""
    mobile: str = ""
    topic: str = ""
    stage: str = ""
    closer_id: int | None = None

    @field_validator("lead_number", "name", "email", "phone", "mobile", "topic", "stage", mode="before")
    @classmethod
    def _coerce_text(cls, value: object) -> str:
        return "" if value is None else str(value)

    @field_validator("manual_id", mode="before")
    @classmethod
    def _coerce_manual_id(cls, value: object) -> str | None:
        value = _blank_to_none(value)
        return None if value is None else str(value)

    @field_validator("closer_id", mode="before")
    @classmethod
    def _coerce_closer(cls, value: object) -> object:
        return _blank_to_none(value)

    @property
    def is_root(self) -> bool:
        """True when the lead has no parent (``master_id`` null or blank)."""
        return getattr(self, "master_id", None) is None


class NewLead(_LeadBase):
    """Lead read from the contemporary ``leads`` table."""

    kind: Literal["new"] = "new"
    id: str
    master_id: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        return value if value is None else str(value)

    @field_validator("master_id", mode="before")
    @classmethod
    def _coerce_master(cls, value: object) -> str | None:
        value = _blank_to_none(value)
        return None if value is None else str(value).strip()

    @property
    def row_key(self) -> str:
        return self.id


class LegacyLead(_LeadBase):
    """Lead read from the older ``leads_lead`` table."""

    kind: Literal["legacy"] = "legacy"
    id: int
    master_id: int | None = None

    @field_validator("master_id", mode="before")
    @classmethod
    def _coerce_master(cls, value: object) -> object:
        return _blank_to_none(value)

    @property
    def row_key(self) -> str:
        return f"{LEGACY_KEY_PREFIX}{self.id}"


Lead = Annotated[Union[NewLead, LegacyLead], Field(discriminator="kind")]


@dataclass(frozen=True)
class LeadRef:
    """Source-tagged pointer to a stored lead."""

    kind: LeadKind
    id: str | int

    @property
    def row_key(self) -> str:
        if self.kind is LeadKind.LEGACY:
            return f"{LEGACY_KEY_PREFIX}{self.id}"
        return str(self.id)


class StageHistoryEntry(BaseModel):
    """One ``leads_leadstage`` transition row for a lead."""

    kind: LeadKind
    lead_id: str | int
    stage: int
    date: datetime | None = None
    creator_id: int | None = None

    @field_validator("date", mode="after")
    @classmethod
    def _normalize_date(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @field_validator("creator_id", mode="before")
    @classmethod
    def _coerce_creator(cls, value: object) -> object:
        return _blank_to_none(value)


class Employee(BaseModel):
    id: int
    display_name: str | None = None


class StageDefinition(BaseModel):
    id: str
    name: str

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> str:
        return str(value)


class ContractRow(BaseModel):
    """A signed lead as shown in the contracts report."""

    row_key: str
    kind: LeadKind
    lead_id: str | int
    lead_number: str = Field(description="Display lead number.")
    stored_lead_number: str = ""
    name: str = ""
    email: str = ""
    phone: str = ""
    mobile: str = ""
    topic: str = ""
    stage: str = ""
    stage_name: str = ""
    signed_date: datetime
    creator_id: int | None = None
    closer_id: int | None = None
    employee_name: str = "N/A"

    @property
    def ref(self) -> LeadRef:
        return LeadRef(kind=self.kind, id=self.lead_id)


class LeadLabel(BaseModel):
    row_key: str
    kind: LeadKind
    lead_id: str | int
    display_number: str
    name: str = ""
    stage: str = ""


class LeadFamily(BaseModel):
    """A master lead with its same-source sub-leads, in suffix order."""

    master: LeadLabel
    sub_leads: list[LeadLabel] = Field(default_factory=list)
