"""Title references and billable units per land-title detail tier."""
from __future__ import annotations

from dataclasses import dataclass

from search_orders.domain import StateTitleCount


@dataclass(frozen=True, slots=True)
class Flat:
    items: tuple[str, ...]
    kind: str = "flat"


@dataclass(frozen=True, slots=True)
class Split:
    current: tuple[str, ...]
    historical: tuple[str, ...]
    kind: str = "split"


TitleRefs = Flat | Split


def title_references(detail: str, counts: StateTitleCount | None) -> TitleRefs:
    if counts is None or detail == "SUMMARY":
        return Flat(())
    if detail == "CURRENT":
        return Flat(counts.current_references)
    if detail == "PAST":
        return Flat(counts.historical_references)
    return Split(counts.current_references, counts.historical_references)


def detail_units(detail: str, counts: StateTitleCount | None) -> int:
    """Billable title units for one jurisdiction; 1 while the count is unknown."""

    if detail == "SUMMARY":
        return 0
    if counts is None:
        return 1
    if detail == "CURRENT":
        return 1 if counts.current is None else counts.current
    if detail == "PAST":
        return 1 if counts.historical is None else counts.historical
    if counts.current is None and counts.historical is None:
        return 1
    return (counts.current or 0) + (counts.historical or 0)
