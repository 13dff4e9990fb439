"""Classify a free-text report query into lead search conditions."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

HEBREW_TO_LATIN: Final[dict[str, str]] = {
    "א": "a", "ב": "b", "ג": "g", "ד": "d", "ה": "h", "ו": "v", "ז": "z", "ח": "h",
    "ט": "t", "י": "i", "כ": "k", "ך": "k", "ל": "l", "מ": "m", "ם": "m", "נ": "n",
    "ן": "n", "ס": "s", "ע": "a", "פ": "p", "ף": "p", "צ": "ts", "ץ": "ts", "ק": "k",
    "ר": "r", "ש": "sh", "ת": "t",
}  # fmt: skip

LATIN_TO_HEBREW: Final[dict[str, str]] = {
    "a": "א", "b": "ב", "g": "ג", "d": "ד", "h": "ה", "v": "ו", "z": "ז",
    "i": "י", "k": "כ", "l": "ל", "m": "מ", "n": "נ", "s": "ס", "p": "פ",
    "r": "ר", "t": "ת",
}  # fmt: skip

MIN_QUERY_LENGTH: Final[int] = 2
MAX_LEAD_NUMBER_DIGITS: Final[int] = 6

_HEBREW = re.compile(r"[֐-׿]")
_LATIN_WORDS = re.compile(r"^[a-zA-Z\s]+$")
_LEAD_PREFIX = re.compile(r"^[LC]", re.IGNORECASE)
_NUMERIC = re.compile(r"[0-9]+")


def search_variants(text: str) -> list[str]:
    """Return ``text`` plus its Hebrew/Latin transliteration when one applies."""
    variants = [text]
    if _HEBREW.search(text):
        latin = "".join(HEBREW_TO_LATIN.get(char, char) for char in text)
        if latin != text:
            variants.append(latin)
    if _LATIN_WORDS.match(text):
        hebrew = "".join(LATIN_TO_HEBREW.get(char, char) for char in text.lower())
        if hebrew != text:
            variants.append(hebrew)
    return variants


@dataclass(frozen=True)
class LeadSearch:
    """Conditions a report query expands to; matched with OR semantics."""

    text: str = ""
    name_terms: tuple[str, ...] = ()
    email_terms: tuple[str, ...] = ()
    phone_digits: str | None = None
    lead_number: str | None = None
    legacy_id: int | None = None

    @property
    def is_unbounded(self) -> bool:
        """An empty query lists every signed lead (date filtering only)."""
        return not self.text

    @property
    def has_conditions(self) -> bool:
        return bool(self.name_terms or self.email_terms or self.phone_digits or self.lead_number)

    @property
    def has_legacy_conditions(self) -> bool:
        return bool(
            self.name_terms or self.email_terms or self.phone_digits or self.legacy_id is not None
        )

    def new_lead_number_patterns(self) -> tuple[str, ...]:
        """ILIKE patterns applied to ``leads.lead_number``."""
        if not self.lead_number:
            return ()
        term = self.lead_number
        return (f"%{term}%", f"L%{term}%", f"C%{term}%")


def parse_search_query(query: str | None) -> LeadSearch:
    text = (query or "").strip()
    if len(text) < MIN_QUERY_LENGTH:
        return LeadSearch(text=text)

    digits = re.sub(r"[^0-9]", "", text)
    is_email = "@" in text
    is_pure_numeric = bool(_NUMERIC.fullmatch(text))
    has_prefix = bool(_LEAD_PREFIX.match(text))
    without_prefix = _LEAD_PREFIX.sub("", text, count=1)
    is_numeric_query = bool(_NUMERIC.fullmatch(without_prefix))
    starts_with_zero = digits.startswith("0") and len(digits) >= 4

    is_lead_number = has_prefix or (
        is_numeric_query
        and is_pure_numeric
        and len(digits) <= MAX_LEAD_NUMBER_DIGITS
        and not starts_with_zero
    )
    is_phone = (
        starts_with_zero
        or len(digits) >= 7
        or (3 <= len(digits) <= 6 and not is_numeric_query and not has_prefix)
    )

    variants = tuple(search_variants(text))
    email_terms = variants if (is_email or len(text) >= 3) else ()
    phone_digits = None
    lead_number = None
    legacy_id = None
    if is_phone and len(digits) >= 3:
        phone_digits = digits
    elif is_lead_number:
        lead_number = text
        if is_numeric_query and len(digits) <= MAX_LEAD_NUMBER_DIGITS and not starts_with_zero:
            candidate = int(without_prefix)
            if candidate > 0:
                legacy_id = candidate

    return LeadSearch(
        text=text,
        name_terms=variants,
        email_terms=email_terms,
        phone_digits=phone_digits,
        lead_number=lead_number,
        legacy_id=legacy_id,
    )


def ilike(value: object, pattern: str) -> bool:
    """Evaluate a SQL ``ILIKE`` pattern (``%`` and ``_`` wildcards) in Python."""
    if value is None:
        return False
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.fullmatch("".join(parts), str(value), re.IGNORECASE | re.DOTALL) is not None
