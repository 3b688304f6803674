from __future__ import annotations

from search_orders.domain import Subject


class ValidationError(Exception):
    """Raised when user input blocks a specific transition."""


COURT_TYPES = ("ALL", "CRIMINAL", "CIVIL")
DETAIL_TIERS = ("SUMMARY", "CURRENT", "PAST", "ALL")


def validate_individual(subject: Subject) -> None:
    if not subject.last_name.strip():
        raise ValidationError("last name is required")
    if subject.birth_year_from and subject.birth_year_to and subject.birth_year_from > subject.birth_year_to:
        raise ValidationError("birth year range is inverted")


def validate_organisation(abn: str | None, name: str | None) -> str:
    digits = "".join(ch for ch in str(abn or "") if ch.isdigit())
    if len(digits) not in (9, 11):
        raise ValidationError("ABN must have 11 digits (or an ACN 9)")
    if not (name or "").strip():
        raise ValidationError("organisation name is required")
    return digits


def validate_states(states: list[str] | tuple[str, ...], allowed: tuple[str, ...]) -> tuple[str, ...]:
    unknown = [state for state in states if state not in allowed]
    if unknown:
        raise ValidationError(f"unknown jurisdiction(s): {', '.join(unknown)}")
    return tuple(state for state in allowed if state in states)
