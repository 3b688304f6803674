"""Which catalog entries are active per category, plus sub-option state."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from search_orders.core.catalog import CATALOG, SELECT_ALL, Catalog
from search_orders.core.validation import COURT_TYPES, DETAIL_TIERS, ValidationError, validate_states
from search_orders.domain import CATEGORIES, CatalogEntry


@dataclass(frozen=True)
class Selection:
    """Snapshot consumed by pricing, the sequencer and job building."""

    category: str
    chosen: dict[str, frozenset[str]] = field(default_factory=dict)
    pending: frozenset[str] = frozenset()
    select_all: frozenset[str] = frozenset()
    court_type: str = "ALL"
    land_title_detail: str = "CURRENT"
    land_title_states: tuple[str, ...] = ()
    add_on: bool = False
    title_reference: str | None = None
    property_address: str | None = None

    def active(self, group: str | None = None) -> frozenset[str]:
        if group is not None:
            return self.chosen.get(group, frozenset())
        codes: set[str] = set()
        for values in self.chosen.values():
            codes.update(values)
        return frozenset(codes)

    def is_active(self, code: str) -> bool:
        return code in self.active()

    def is_selected(self, code: str) -> bool:
        """Active or staged for confirmation."""

        return code in self.pending or code in self.active()

    def codes(self, group: str, catalog: Catalog = CATALOG) -> list[str]:
        """Active and staged codes of a group in catalog order, pseudo-entry first."""

        present = self.active(group) | {code for code in self.pending if catalog.entry(code).group == group}
        ordered = [entry.code for entry in catalog.group(self.category, group) if entry.code in present]
        if group in self.select_all:
            ordered.insert(0, SELECT_ALL)
        return ordered


@dataclass(frozen=True)
class SelectionChange:
    added: tuple[str, ...] = ()
    staged: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()

    def merge(self, other: "SelectionChange") -> "SelectionChange":
        return SelectionChange(
            added=self.added + other.added,
            staged=self.staged + other.staged,
            removed=self.removed + other.removed,
        )


SUB_OPTIONS = (
    "asic_types",
    "court_type",
    "land_title_detail",
    "land_title_states",
    "add_on",
    "title_reference",
    "property_address",
)


class SelectionModel:
    """Mutable holder of the current :class:`Selection`.

    Entries that need a disambiguation dialog are never activated by
    :meth:`toggle`; they are staged in ``pending`` until the sequencer
    resolves them with :meth:`activate` or drops them with :meth:`deselect`.
    """

    def __init__(self, category: str = "ORGANISATION", catalog: Catalog = CATALOG) -> None:
        self._catalog = catalog
        self._selection = self._blank(category)

    @property
    def snapshot(self) -> Selection:
        return self._selection

    @property
    def category(self) -> str:
        return self._selection.category

    def _blank(self, category: str) -> Selection:
        if category not in CATEGORIES:
            raise ValidationError(f"unknown category '{category}'")
        defaults = self._catalog.defaults
        return Selection(
            category=category,
            court_type=defaults.get("court_type", "ALL"),
            land_title_detail=defaults.get("land_title_detail", "CURRENT"),
        )

    # ------------------------------------------------------------------
    # visibility
    # ------------------------------------------------------------------
    def _present(self, selection: Selection, group: str) -> set[str]:
        staged = {code for code in selection.pending if self._catalog.entry(code).group == group}
        return set(selection.active(group)) | staged

    def _hidden(self, selection: Selection, entry: CatalogEntry) -> bool:
        return any(selection.is_selected(code) for code in entry.hidden_by)

    def visible(self, group: str, selection: Selection | None = None) -> list[CatalogEntry]:
        """Entries the user can currently pick in ``group``."""

        selection = selection or self._selection
        present = self._present(selection, group)
        if group == "asic_types" and not selection.is_selected("ASIC"):
            return []
        visible: list[CatalogEntry] = []
        for entry in self._catalog.group(selection.category, group):
            if self._hidden(selection, entry):
                continue
            if entry.code not in present and any(code in present for code in entry.excludes):
                continue
            visible.append(entry)
        return visible

    # ------------------------------------------------------------------
    # mutations
    # ------------------------------------------------------------------
    def _entry(self, code: str) -> CatalogEntry:
        try:
            entry = self._catalog.entry(code)
        except KeyError as exc:
            raise ValidationError(str(exc.args[0])) from exc
        if entry.category != self.category:
            raise ValidationError(f"{entry.display_name} is not available for {self.category}")
        return entry

    def _with_code(self, selection: Selection, entry: CatalogEntry, *, staged: bool) -> Selection:
        if staged:
            return replace(selection, pending=selection.pending | {entry.code})
        chosen = dict(selection.chosen)
        chosen[entry.group] = chosen.get(entry.group, frozenset()) | {entry.code}
        return replace(selection, chosen=chosen)

    def _without_code(self, selection: Selection, code: str) -> Selection:
        chosen = {group: values - {code} for group, values in selection.chosen.items()}
        return replace(selection, chosen=chosen, pending=selection.pending - {code})

    def _normalise(self, selection: Selection) -> tuple[Selection, tuple[str, ...]]:
        """Drop entries that are no longer visible and recompute select-all."""

        dropped: list[str] = []
        for group in self._catalog.groups_for(selection.category):
            for entry in self._catalog.group(selection.category, group):
                if not selection.is_selected(entry.code):
                    continue
                orphan_asic = group == "asic_types" and not selection.is_selected("ASIC")
                if orphan_asic or self._hidden(selection, entry):
                    selection = self._without_code(selection, entry.code)
                    dropped.append(entry.code)

        flagged: set[str] = set()
        for group in self._catalog.groups_for(selection.category):
            visible = self.visible(group, selection)
            present = self._present(selection, group)
            if visible and all(entry.code in present for entry in visible):
                flagged.add(group)
        return replace(selection, select_all=frozenset(flagged)), tuple(dropped)

    def _commit(self, selection: Selection, change: SelectionChange) -> SelectionChange:
        selection, dropped = self._normalise(selection)
        self._selection = selection
        if dropped:
            change = change.merge(SelectionChange(removed=dropped))
        return change

    def _add(self, selection: Selection, entry: CatalogEntry) -> tuple[Selection, SelectionChange]:
        change = SelectionChange()
        for code in entry.excludes:
            if selection.is_selected(code):
                selection = self._without_code(selection, code)
                change = change.merge(SelectionChange(removed=(code,)))
        if entry.interactive:
            selection = self._with_code(selection, entry, staged=True)
            return selection, change.merge(SelectionChange(staged=(entry.code,)))
        selection = self._with_code(selection, entry, staged=False)
        return selection, change.merge(SelectionChange(added=(entry.code,)))

    def toggle(self, code: str, group: str | None = None) -> SelectionChange:
        if code == SELECT_ALL:
            if not group:
                raise ValidationError("group is required to toggle SELECT ALL")
            return self.toggle_select_all(group)

        entry = self._entry(code)
        selection = self._selection
        if selection.is_selected(code):
            return self._commit(self._without_code(selection, code), SelectionChange(removed=(code,)))

        if entry.group == "asic_types" and not selection.is_selected("ASIC"):
            raise ValidationError("select ASIC before choosing an ASIC type")
        if self._hidden(selection, entry):
            raise ValidationError(f"{entry.display_name} is already covered by a selected search")

        selection, change = self._add(selection, entry)
        return self._commit(selection, change)

    def toggle_select_all(self, group: str) -> SelectionChange:
        if group not in self._catalog.groups_for(self.category):
            raise ValidationError(f"unknown group '{group}' for {self.category}")
        selection = self._selection

        if group in selection.select_all:
            removed = tuple(self._selection.codes(group, self._catalog)[1:])
            for code in removed:
                selection = self._without_code(selection, code)
            return self._commit(selection, SelectionChange(removed=removed))

        change = SelectionChange()
        for entry in self.visible(group, selection):
            present = self._present(selection, group)
            if entry.code in present or any(code in present for code in entry.excludes):
                continue
            selection, step = self._add(selection, entry)
            change = change.merge(step)
        return self._commit(selection, change)

    def set_sub_option(self, name: str, value: Any) -> SelectionChange:
        selection = self._selection
        if name not in SUB_OPTIONS:
            raise ValidationError(f"unknown option '{name}'")

        if name == "asic_types":
            if not selection.is_selected("ASIC"):
                raise ValidationError("select ASIC before choosing an ASIC type")
            codes = [str(code) for code in (value or [])]
            change = SelectionChange(removed=tuple(selection.active("asic_types")))
            for code in selection.active("asic_types"):
                selection = self._without_code(selection, code)
            for code in codes:
                entry = self._entry(code)
                if entry.group != "asic_types":
                    raise ValidationError(f"{code} is not an ASIC type")
                if any(selection.is_selected(other) for other in entry.excludes):
                    raise ValidationError(f"{entry.display_name} cannot be combined with the current ASIC types")
                selection, step = self._add(selection, entry)
                change = change.merge(step)
            return self._commit(selection, change)

        if name == "court_type":
            court_type = str(value or "").upper()
            if court_type not in COURT_TYPES:
                raise ValidationError(f"court type must be one of {', '.join(COURT_TYPES)}")
            selection = replace(selection, court_type=court_type)
        elif name == "land_title_detail":
            detail = str(value or "").upper()
            if detail not in DETAIL_TIERS:
                raise ValidationError(f"detail must be one of {', '.join(DETAIL_TIERS)}")
            selection = replace(selection, land_title_detail=detail)
        elif name == "land_title_states":
            states = [str(state).upper() for state in (value or [])]
            selection = replace(selection, land_title_states=validate_states(states, self._catalog.states))
        elif name == "add_on":
            selection = replace(selection, add_on=bool(value))
        elif name == "title_reference":
            selection = replace(selection, title_reference=(str(value).strip() or None) if value else None)
        elif name == "property_address":
            selection = replace(selection, property_address=(str(value).strip() or None) if value else None)
        return self._commit(selection, SelectionChange())

    # ------------------------------------------------------------------
    # sequencer hooks
    # ------------------------------------------------------------------
    def activate(self, code: str) -> None:
        """Move a staged entry into its group once its dialogs are done."""

        entry = self._catalog.entry(code)
        selection = replace(self._selection, pending=self._selection.pending - {code})
        self._commit(self._with_code(selection, entry, staged=False), SelectionChange())

    def deselect(self, code: str) -> None:
        self._commit(self._without_code(self._selection, code), SelectionChange(removed=(code,)))

    def restage(self, code: str) -> None:
        """Send an active entry back to confirmation."""

        entry = self._catalog.entry(code)
        selection = self._without_code(self._selection, code)
        self._commit(self._with_code(selection, entry, staged=True), SelectionChange())

    def reset(self, category: str | None = None) -> None:
        self._selection = self._blank(category or self.category)

    def clear_group(self, group: str) -> tuple[str, ...]:
        removed = tuple(code for code in self._selection.codes(group, self._catalog) if code != SELECT_ALL)
        selection = self._selection
        for code in removed:
            selection = self._without_code(selection, code)
        self._commit(selection, SelectionChange(removed=removed))
        return removed
