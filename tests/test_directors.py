from __future__ import annotations

from search_orders.application.directors import (
    DirectorIterator,
    cursor,
    initial_slots,
    resolve_slot,
    skip_slot,
)
from search_orders.domain import Director, MatchCandidate

DIRECTORS = (
    Director(0, "ANNA", "LEE"),
    Director(1, "CHER", ""),
    Director(2, "BRUCE", "WAYNE"),
)


def test_reducers_return_new_tuples():
    slots = initial_slots(DIRECTORS)
    match = MatchCandidate(provider="related", label="ANNA LEE", identity_key="p1")

    resolved = resolve_slot(slots, 0, (match,))

    assert slots[0].status == "pending"
    assert resolved[0].status == "resolved"
    assert resolved[0].matches == (match,)
    assert resolved[1:] == slots[1:]
    assert cursor(slots) == 0
    assert cursor(resolved) == 1
    assert cursor(skip_slot(skip_slot(resolved, 1), 2)) == 3


def test_iterator_visits_directors_in_order_and_auto_skips():
    iterator = DirectorIterator(DIRECTORS)

    first = iterator.start("related")
    assert first.index == 0

    following = iterator.skip("related", 0)
    # director 1 has no last name and is passed over without a dialog
    assert following.index == 2
    assert iterator.slots("related")[1].status == "auto_skipped"

    assert iterator.resolve("related", 2, ()) is None
    assert iterator.completed("related")
    assert [slot.status for slot in iterator.slots("related")] == ["skipped", "auto_skipped", "resolved"]


def test_start_keeps_run_in_progress():
    iterator = DirectorIterator(DIRECTORS)
    iterator.start("bankruptcy")
    iterator.resolve("bankruptcy", 0, ())
    assert iterator.start("bankruptcy").index == 2

    iterator.restart("bankruptcy")
    assert iterator.start("bankruptcy").index == 0


def test_advance_records_outcome_and_moves_on():
    iterator = DirectorIterator(DIRECTORS)
    iterator.start("bankruptcy")
    match = MatchCandidate(provider="bankruptcy", label="ANNA LEE", identity_key="E-1")

    assert iterator.advance("bankruptcy", 0, (match,)).index == 2
    assert iterator.advance("bankruptcy", 2, None) is None
    assert [slot.status for slot in iterator.slots("bankruptcy")] == ["resolved", "auto_skipped", "skipped"]


def test_record_null_resolves_every_director_without_matches():
    iterator = DirectorIterator(DIRECTORS)
    iterator.record_null("ppsr")

    slots = iterator.slots("ppsr")
    assert [slot.status for slot in slots] == ["resolved"] * 3
    assert all(slot.matches is None for slot in slots)
    assert iterator.completed("ppsr")
    assert iterator.current("ppsr") is None


def test_empty_director_list_completes_immediately():
    iterator = DirectorIterator(())
    assert iterator.start("related") is None
    assert iterator.completed("related")
