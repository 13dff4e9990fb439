"""Human-facing lead numbers derived from stored identifiers.

Display numbers are computed on read and never persisted:

* a success-stage lead shows a ``C`` prefix instead of ``L``;
* a root lead with same-source sub-leads shows ``/1``;
* sub-leads show ``<master>/<n>`` with ``n`` counting from 2 by ascending id.
"""

from __future__ import annotations

import re
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from crm_contracts.config import settings
from crm_contracts.models.lead import (
    PLACEHOLDER_NUMBER,
    LeadFamily,
    LeadKind,
    LeadLabel,
    LegacyLead,
    NewLead,
)

_LEADING_DIGITS = re.compile(r"^\s*(\d+)")


def is_success_stage(stage: object, success_stage: int | None = None) -> bool:
    """Compare ``stage`` with the success code across str/int representations."""
    target = settings.success_stage if success_stage is None else success_stage
    if stage is None or stage == "":
        return False
    try:
        return float(str(stage).strip()) == float(target)
    except ValueError:
        return False


def stored_number(lead: NewLead | LegacyLead) -> str:
    """Return ``lead_number``, else ``manual_id``, else ``id`` as a string."""
    for candidate in (lead.lead_number, lead.manual_id, lead.id):
        if candidate is not None and str(candidate) != "":
            return str(candidate)
    return PLACEHOLDER_NUMBER


def format_display_number(
    lead: NewLead | LegacyLead,
    has_sub_leads: bool,
    *,
    success_stage: int | None = None,
) -> str:
    raw = stored_number(lead)
    if raw == PLACEHOLDER_NUMBER:
        return raw
    has_suffix = "/" in raw
    base = raw.split("/", 1)[0] if has_suffix else raw

    if is_success_stage(lead.stage, success_stage) and base and not base.startswith("C"):
        if base.startswith("L"):
            base = f"C{base[1:]}"

    if lead.is_root and has_sub_leads and not has_suffix:
        return f"{base}/1"
    if has_suffix:
        return raw
    return base


def _ordering_key(lead_id: str | int) -> tuple[int, str]:
    # Non-numeric ids sort as 0, matching how the CRM has always numbered them.
    match = _LEADING_DIGITS.match(str(lead_id))
    return (int(match.group(1)) if match else 0, str(lead_id))


@dataclass(frozen=True)
class SubLeadSuffixes:
    """Suffix numbers for sub-leads, grouped by their master within one source."""

    suffixes: Mapping[str, int] = field(default_factory=dict)

    @classmethod
    def from_leads(cls, leads: Iterable[NewLead | LegacyLead]) -> SubLeadSuffixes:
        grouped: dict[str, list[NewLead | LegacyLead]] = defaultdict(list)
        for lead in leads:
            if lead.is_root:
                continue
            grouped[str(lead.master_id)].append(lead)
        suffixes: dict[str, int] = {}
        for siblings in grouped.values():
            ordered = sorted(siblings, key=lambda sub: _ordering_key(sub.id))
            for index, sub in enumerate(ordered):
                suffixes[str(sub.id)] = index + 2
        return cls(suffixes=suffixes)

    def suffix_for(self, lead: NewLead | LegacyLead) -> int | None:
        return self.suffixes.get(str(lead.id))


def format_sub_lead_number(
    lead: NewLead | LegacyLead, master_number: str | None, suffix: int | None
) -> str:
    """Label a sub-lead as ``<master>/<suffix>`` unless it already stores one."""
    stored = lead.lead_number or ""
    if "/" in stored:
        return stored
    master = master_number or str(lead.master_id)
    if suffix is None:
        return f"{master}/2" if lead.kind == LeadKind.NEW else f"{master}/?"
    return f"{master}/{suffix}"


def master_number(lead: NewLead | LegacyLead) -> str:
    """Number a sub-lead label is built from: legacy masters use their id."""
    if lead.kind == LeadKind.LEGACY:
        return str(lead.id)
    return stored_number(lead)


def _label(lead: NewLead | LegacyLead, display_number: str) -> LeadLabel:
    return LeadLabel(
        row_key=lead.row_key,
        kind=LeadKind(lead.kind),
        lead_id=lead.id,
        display_number=display_number,
        name=lead.name,
        stage=lead.stage,
    )


def build_family(
    master: NewLead | LegacyLead,
    sub_leads: Iterable[NewLead | LegacyLead],
    *,
    success_stage: int | None = None,
) -> LeadFamily:
    """Label a master and its same-source sub-leads.

    Sub-leads from the other source are ignored; cross-source links are not
    resolved.
    """
    children = [
        sub
        for sub in sub_leads
        if sub.kind == master.kind and not sub.is_root and str(sub.master_id) == str(master.id)
    ]
    index = SubLeadSuffixes.from_leads(children)
    master_label = _label(
        master,
        format_display_number(master, bool(children), success_stage=success_stage),
    )
    ordered = sorted(children, key=lambda sub: index.suffix_for(sub) or 0)
    prefix = master_number(master)
    return LeadFamily(
        master=master_label,
        sub_leads=[
            _label(sub, format_sub_lead_number(sub, prefix, index.suffix_for(sub)))
            for sub in ordered
        ],
    )
