"""Date helpers for provider-specific formats.

Users type dates as DD/MM/YYYY; the officer extract may hold ISO strings.
Bankruptcy lookups want ISO, related-entity lookups want DD-MM-YYYY.
"""
from __future__ import annotations

from datetime import date, datetime

_INPUT_FORMATS = ("%d/%m/%Y", "%Y-%m-%d", "%d-%m-%Y", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M:%S.%fZ")


def parse_date(value: str | date | None) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    for fmt in _INPUT_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


def to_display(value: str | date | None) -> str:
    """DD/MM/YYYY, or the raw text when it cannot be parsed."""

    parsed = parse_date(value)
    if parsed is None:
        return str(value or "").strip()
    return parsed.strftime("%d/%m/%Y")


def to_iso(value: str | date | None) -> str | None:
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else None


def to_dashed(value: str | date | None) -> str | None:
    parsed = parse_date(value)
    return parsed.strftime("%d-%m-%Y") if parsed else None


def year_bounds(year_from: int | None, year_to: int | None) -> tuple[str | None, str | None]:
    """dob_from/dob_to for a birth-year range, in DD-MM-YYYY."""

    start = f"01-01-{int(year_from):04d}" if year_from else None
    end = f"31-12-{int(year_to):04d}" if year_to else None
    return start, end
