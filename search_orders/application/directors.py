"""Per-director runs of a search kind.

Slots are immutable; every change goes through a reducer that returns a new
tuple.  Directors are processed strictly in index order: the next director
is only offered once every earlier slot has left ``pending``.
"""
from __future__ import annotations

from dataclasses import replace

from search_orders.domain import Director, DirectorSlot, MatchCandidate
from search_orders.logging import bind_context


def initial_slots(directors: tuple[Director, ...]) -> tuple[DirectorSlot, ...]:
    return tuple(DirectorSlot(director=director) for director in directors)


def _update(slots: tuple[DirectorSlot, ...], index: int, slot: DirectorSlot) -> tuple[DirectorSlot, ...]:
    return tuple(slot if position == index else current for position, current in enumerate(slots))


def resolve_slot(
    slots: tuple[DirectorSlot, ...], index: int, matches: tuple[MatchCandidate, ...] | None
) -> tuple[DirectorSlot, ...]:
    return _update(slots, index, replace(slots[index], status="resolved", matches=matches))


def skip_slot(slots: tuple[DirectorSlot, ...], index: int) -> tuple[DirectorSlot, ...]:
    return _update(slots, index, replace(slots[index], status="skipped", matches=None))


def auto_skip_slot(slots: tuple[DirectorSlot, ...], index: int) -> tuple[DirectorSlot, ...]:
    return _update(slots, index, replace(slots[index], status="auto_skipped", matches=None))


def cursor(slots: tuple[DirectorSlot, ...]) -> int:
    """Position of the first unprocessed director, ``len(slots)`` when done."""

    for position, slot in enumerate(slots):
        if slot.status == "pending":
            return position
    return len(slots)


class DirectorIterator:
    """Owns the slot tuples of every director run in an order."""

    def __init__(self, directors: tuple[Director, ...] = (), *, order_id: str | None = None) -> None:
        self._directors = directors
        self._runs: dict[str, tuple[DirectorSlot, ...]] = {}
        self._order_id = order_id

    @property
    def directors(self) -> tuple[Director, ...]:
        return self._directors

    def runs(self) -> dict[str, tuple[DirectorSlot, ...]]:
        return dict(self._runs)

    def slots(self, kind: str) -> tuple[DirectorSlot, ...] | None:
        return self._runs.get(kind)

    def started(self, kind: str) -> bool:
        return kind in self._runs

    def completed(self, kind: str) -> bool:
        slots = self._runs.get(kind)
        return slots is not None and cursor(slots) == len(slots)

    def start(self, kind: str) -> Director | None:
        """Begin ``kind`` at director 0 unless a run is already under way."""

        if kind not in self._runs:
            self._runs[kind] = initial_slots(self._directors)
        return self.current(kind)

    def current(self, kind: str) -> Director | None:
        """Director awaiting a dialog, auto-skipping those without a last name."""

        slots = self._runs.get(kind)
        if slots is None:
            return None
        position = cursor(slots)
        while position < len(slots):
            director = slots[position].director
            if director.last_name.strip():
                return director
            bind_context(order_id=self._order_id, kind=kind, director=director.index).info(
                "director_auto_skipped", name=director.full_name
            )
            slots = auto_skip_slot(slots, position)
            self._runs[kind] = slots
            position = cursor(slots)
        return None

    def resolve(self, kind: str, index: int, matches: tuple[MatchCandidate, ...]) -> Director | None:
        self._runs[kind] = resolve_slot(self._slots_for(kind), self._position(kind, index), matches)
        return self.current(kind)

    def skip(self, kind: str, index: int) -> Director | None:
        self._runs[kind] = skip_slot(self._slots_for(kind), self._position(kind, index))
        return self.current(kind)

    def advance(self, kind: str, index: int, matches: tuple[MatchCandidate, ...] | None) -> Director | None:
        """Record a confirmed (``matches``) or cancelled (``None``) director and move on."""

        if matches is None:
            return self.skip(kind, index)
        return self.resolve(kind, index, matches)

    def record_null(self, kind: str) -> None:
        """Mark every director resolved with no match (no registry dialog)."""

        slots = initial_slots(self._directors)
        for position in range(len(slots)):
            slots = resolve_slot(slots, position, None)
        self._runs[kind] = slots

    def restart(self, kind: str) -> None:
        self._runs.pop(kind, None)

    def _slots_for(self, kind: str) -> tuple[DirectorSlot, ...]:
        slots = self._runs.get(kind)
        if slots is None:
            raise KeyError(f"no director run for '{kind}'")
        return slots

    def _position(self, kind: str, index: int) -> int:
        for position, slot in enumerate(self._slots_for(kind)):
            if slot.director.index == index:
                return position
        raise KeyError(f"director {index} is not part of the '{kind}' run")
