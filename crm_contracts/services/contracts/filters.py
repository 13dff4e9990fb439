"""Inclusive signed-date filtering for the contracts report."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone


def to_utc_date(value: date | datetime) -> date:
    """Calendar day of ``value`` in UTC; naive datetimes are taken as UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def start_of_day(value: date) -> datetime:
    """Midnight UTC of ``value``, the form a date-only edit is stored in."""
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def parse_date(value: str | date | None) -> date | None:
    if value is None:
        return None
    if isinstance(value, date):
        return to_utc_date(value)
    text = value.strip()
    if not text:
        return None
    return date.fromisoformat(text[:10])


@dataclass(frozen=True)
class DateRange:
    """Optional inclusive ``[date_from, date_to]`` bounds on the signed date."""

    date_from: date | None = None
    date_to: date | None = None

    @classmethod
    def parse(cls, date_from: str | date | None, date_to: str | date | None) -> DateRange:
        return cls(date_from=parse_date(date_from), date_to=parse_date(date_to))

    @property
    def is_bounded(self) -> bool:
        return self.date_from is not None or self.date_to is not None

    def includes(self, signed: date | datetime | None) -> bool:
        if signed is None:
            return False
        day = to_utc_date(signed)
        if self.date_from is not None and day < self.date_from:
            return False
        if self.date_to is not None and day > self.date_to:
            return False
        return True

    def as_dict(self) -> dict[str, str | None]:
        return {
            "date_from": self.date_from.isoformat() if self.date_from else None,
            "date_to": self.date_to.isoformat() if self.date_to else None,
        }
