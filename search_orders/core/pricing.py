"""Price computation for a search order.

``compute_total`` is pure: the same selection, resolved state and catalog
always give the same breakdown.  Entries still awaiting confirmation are
priced as a preview, per-match entries at one unit each.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from search_orders.core.catalog import CATALOG, Catalog
from search_orders.core.selection import Selection
from search_orders.core.titles import detail_units
from search_orders.domain import CatalogEntry, DirectorSlot, PriceBreakdown, PriceLine, ResolvedState

CENT = Decimal("0.01")

LAND_TITLE_PRICING = ("jurisdiction", "title")


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _line(description: str, unit_price: Decimal, quantity: int) -> PriceLine:
    unit = quantize(unit_price)
    return PriceLine(description=description, unit_price=unit, quantity=quantity, subtotal=quantize(unit * quantity))


def _stage_kind(entry: CatalogEntry) -> str | None:
    return entry.stage.lower() if entry.stage else None


def _billable_slots(slots: tuple[DirectorSlot, ...]) -> list[DirectorSlot]:
    return [slot for slot in slots if slot.status in ("pending", "resolved")]


def slot_units(slot: DirectorSlot) -> int:
    """Billable units of one director for a per-match search."""

    if slot.status == "pending":
        return 1
    if slot.status != "resolved":
        return 0
    api_matches = [match for match in slot.matches or () if not match.is_fallback]
    return max(len(api_matches), 1)


def per_match_units(entry: CatalogEntry, resolved: ResolvedState) -> int:
    """Units billed for a bankruptcy or related-entity entry."""

    kind = _stage_kind(entry)
    if kind is None:
        return 1
    if entry.per_director:
        slots = resolved.director_slots.get(kind)
        if slots is None:
            return len(resolved.directors)
        return sum(slot_units(slot) for slot in slots)
    if kind in resolved.skipped_kinds:
        return 0
    matches = resolved.subject_matches.get(kind, ())
    api_matches = [match for match in matches if not match.is_fallback]
    return max(len(api_matches), 1)


def _director_owners(entry: CatalogEntry, resolved: ResolvedState) -> int:
    kind = _stage_kind(entry)
    slots = resolved.director_slots.get(kind) if kind else None
    if slots is None:
        return len(resolved.directors)
    return len(_billable_slots(slots))


def _jurisdiction_lines(entry: CatalogEntry, selection: Selection, resolved: ResolvedState, catalog: Catalog) -> list[PriceLine]:
    lines: list[PriceLine] = []
    owners = _director_owners(entry, resolved) if entry.per_director else 1
    for state in selection.land_title_states:
        tariff = catalog.state_tariff(state)
        if entry.pricing == "title":
            lines.append(_line(f"{entry.display_name} ({state})", tariff.title, 1))
            continue
        if owners == 0:
            continue
        lines.append(_line(f"{entry.display_name} ({state}) locator", tariff.locator, owners))
        if selection.land_title_detail == "SUMMARY":
            continue
        # Director owners have no per-owner counts; bill the placeholder unit.
        counts = None if entry.per_director else resolved.title_counts.get(state)
        units = detail_units(selection.land_title_detail, counts) * owners
        if units:
            label = f"{entry.display_name} ({state}) {selection.land_title_detail.lower()} titles"
            lines.append(_line(label, tariff.title, units))
    return lines


def lines_for_entry(entry: CatalogEntry, selection: Selection, resolved: ResolvedState, catalog: Catalog = CATALOG) -> list[PriceLine]:
    if entry.pricing == "asic":
        return []
    if entry.pricing in LAND_TITLE_PRICING:
        lines = _jurisdiction_lines(entry, selection, resolved, catalog)
        if selection.add_on:
            lines.append(_line(f"{entry.display_name} add-on", catalog.add_on_surcharge, 1))
        return lines
    if entry.pricing == "per_match":
        units = per_match_units(entry, resolved)
    elif entry.per_director:
        units = _director_owners(entry, resolved)
    else:
        units = 1
    if units == 0:
        return []
    return [_line(entry.display_name, entry.base_price, units)]


def compute_total(selection: Selection, resolved: ResolvedState, catalog: Catalog = CATALOG) -> PriceBreakdown:
    """Price every selected entry of the selection's category, in catalog order."""

    lines: list[PriceLine] = []
    for entry in catalog.entries:
        if entry.category != selection.category or not selection.is_selected(entry.code):
            continue
        lines.extend(lines_for_entry(entry, selection, resolved, catalog))
    total = quantize(sum((line.subtotal for line in lines), Decimal("0")))
    return PriceBreakdown(lines=tuple(lines), total=total)
