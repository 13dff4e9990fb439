"""Tag raw lead rows with their source table and normalize them."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import TypeAdapter, ValidationError

from crm_contracts.models.lead import (
    LEGACY_KEY_PREFIX,
    Lead,
    LeadKind,
    LeadRef,
    LegacyLead,
    NewLead,
)
from crm_contracts.services.contracts.errors import InvalidLeadReferenceError

logger = logging.getLogger(__name__)

_NUMERIC_ID = re.compile(r"[0-9]+")

_LEAD_ADAPTER: TypeAdapter[Lead] = TypeAdapter(Lead)


def resolve_lead(kind: LeadKind, row: Mapping[str, Any] | None) -> NewLead | LegacyLead | None:
    """Normalize ``row`` as a lead of ``kind``; absent or malformed rows yield ``None``.

    The kind always comes from the table the caller queried, never from the
    shape of the identifier.
    """
    if not row or row.get("id") in (None, ""):
        logger.debug("contracts.identity.skipped", extra={"kind": kind.value, "reason": "missing_id"})
        return None
    payload = dict(row)
    payload["kind"] = kind.value
    if kind is LeadKind.LEGACY and not str(payload.get("lead_number") or "").strip():
        payload["lead_number"] = str(payload["id"])
    try:
        return _LEAD_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        logger.debug(
            "contracts.identity.skipped",
            extra={"kind": kind.value, "reason": "malformed", "errors": exc.error_count()},
        )
        return None


def resolve_rows(kind: LeadKind, rows: Iterable[Mapping[str, Any] | None]) -> list[NewLead | LegacyLead]:
    leads = []
    for row in rows:
        lead = resolve_lead(kind, row)
        if lead is not None:
            leads.append(lead)
    return leads


def lead_ref(lead: NewLead | LegacyLead) -> LeadRef:
    return LeadRef(kind=LeadKind(lead.kind), id=lead.id)


def parse_row_key(row_key: str) -> LeadRef:
    """Turn a report row key (``"<uuid>"`` or ``"legacy_<id>"``) into a lead reference."""
    key = (row_key or "").strip()
    if not key:
        raise InvalidLeadReferenceError(
            "Lead reference must not be empty.", code="422_INVALID_LEAD_REFERENCE"
        )
    if key.startswith(LEGACY_KEY_PREFIX):
        raw_id = key[len(LEGACY_KEY_PREFIX):]
        if not _NUMERIC_ID.fullmatch(raw_id):
            raise InvalidLeadReferenceError(
                f"Legacy lead reference {row_key!r} must end in a numeric id.",
                code="422_INVALID_LEAD_REFERENCE",
            )
        return LeadRef(kind=LeadKind.LEGACY, id=int(raw_id))
    return LeadRef(kind=LeadKind.NEW, id=key)
