from __future__ import annotations

import asyncio

from search_orders.application.disambiguation import DisambiguationEngine, OwnerIdentity, unique_labels
from search_orders.domain import FALLBACK_KEY


def _identity(**overrides) -> OwnerIdentity:
    values = {"first_name": "John", "last_name": "Smith", "dob": "05/03/1970"}
    values.update(overrides)
    return OwnerIdentity(**values)


def test_unique_labels_suffix_repeats():
    assert unique_labels(["A", "B", "A", "A"]) == ["A", "B", "A (2)", "A (3)"]
    assert unique_labels(["A", "A (2)", "A"]) == ["A", "A (2)", "A (3)"]


def test_related_candidates_are_labelled_and_deduplicated(registry):
    record = {"person_id": "p1", "name": "JOHN SMITH", "dob": "1970-03-05", "state": "NSW", "suburb": "PARRAMATTA"}
    registry.related["Smith"] = [record, dict(record, person_id="p2")]

    result = asyncio.run(DisambiguationEngine(registry).fetch(_identity(), "related"))

    labels = [candidate.label for candidate in result.candidates]
    assert labels == [
        "JOHN SMITH • DOB: 05/03/1970 • NSW • PARRAMATTA",
        "JOHN SMITH • DOB: 05/03/1970 • NSW • PARRAMATTA (2)",
    ]
    assert [candidate.identity_key for candidate in result.candidates] == ["p1", "p2"]
    assert result.error is None
    _, params = registry.calls[0]
    assert params["dob_from"] == "05-03-1970"
    assert params["dob_to"] == "05-03-1970"


def test_related_lookup_uses_birth_year_range(registry):
    identity = _identity(dob=None, birth_year_from=1960, birth_year_to=1965)
    asyncio.run(DisambiguationEngine(registry).fetch(identity, "related"))

    _, params = registry.calls[0]
    assert params["dob_from"] == "01-01-1960"
    assert params["dob_to"] == "31-12-1965"


def test_bankruptcy_lookup_sends_iso_date(registry):
    registry.bankruptcy["Smith"] = [
        {
            "extractId": "E-1",
            "debtor": {"surname": "SMITH", "givenNames": "JOHN", "dateOfBirth": "1970-03-05", "addressSuburb": "RYDE"},
        }
    ]
    result = asyncio.run(DisambiguationEngine(registry).fetch(_identity(), "bankruptcy"))

    _, params = registry.calls[0]
    assert params["date_of_birth"] == "1970-03-05"
    assert result.candidates[0].label == "JOHN SMITH • DOB: 05/03/1970 • RYDE"
    assert result.candidates[0].identity_key == "E-1"


def test_empty_result_falls_back_to_typed_identity(registry):
    result = asyncio.run(DisambiguationEngine(registry).fetch(_identity(middle_name="Paul"), "bankruptcy"))

    assert len(result.candidates) == 1
    fallback = result.candidates[0]
    assert fallback.identity_key == FALLBACK_KEY
    assert fallback.label == "JOHN PAUL SMITH"
    assert result.fell_back
    assert result.error is None


def test_provider_error_falls_back_and_keeps_message(registry):
    registry.failing.add("court")
    result = asyncio.run(DisambiguationEngine(registry).fetch(_identity(), "court_criminal"))

    assert result.fell_back
    assert result.error == "court unavailable"


def test_missing_last_name_never_calls_provider(registry):
    result = asyncio.run(DisambiguationEngine(registry).fetch(_identity(last_name=""), "bankruptcy"))
    assert result.fell_back
    assert registry.calls == []


def test_court_stage_keeps_matching_court_type(registry):
    registry.court["Smith"] = [
        {"fullname": "JOHN SMITH", "state": "NSW", "courtType": "CRIMINAL", "caseNumber": "C1"},
        {"fullname": "JOHN SMITH", "state": "VIC", "courtType": "CIVIL", "caseNumber": "C2"},
    ]
    result = asyncio.run(DisambiguationEngine(registry).fetch(_identity(), "court_civil"))

    assert [candidate.identity_key for candidate in result.candidates] == ["C2"]
    _, params = registry.calls[0]
    assert params["court_type"] == "CIVIL"


def test_land_title_names_merge_independent_of_completion_order(registry):
    registry.person_names = {
        "NSW": ["John Smith", "JOHN  SMITH", "Jon Smith"],
        "VIC": ["john smith", "Johnny Smith"],
    }
    engine = DisambiguationEngine(registry)

    registry.delays = {"NSW": 0.02, "VIC": 0}
    first = asyncio.run(engine.fetch(_identity(), "land_title", states=("NSW", "VIC")))
    registry.delays = {"NSW": 0, "VIC": 0.02}
    second = asyncio.run(engine.fetch(_identity(), "land_title", states=("NSW", "VIC")))

    labels = [candidate.label for candidate in first.candidates]
    assert labels == ["JOHN SMITH", "JOHNNY SMITH", "JON SMITH"]
    assert [candidate.label for candidate in second.candidates] == labels


def test_land_title_without_states_falls_back(registry):
    result = asyncio.run(DisambiguationEngine(registry).fetch(_identity(), "land_title"))
    assert result.fell_back
    assert "jurisdiction" in (result.error or "")


def test_title_counts_split_references_and_skip_failures(registry):
    registry.counts["NSW"] = {
        "current": 1,
        "historical": 1,
        "titleReferences": [
            {"titleReference": "1/SP100", "jurisdiction": "NSW"},
            {"titleReference": "2/DP200", "jurisdiction": "NSW", "historical": True},
        ],
    }
    engine = DisambiguationEngine(registry)
    counts = asyncio.run(engine.title_counts(("NSW", "VIC"), identity=_identity(), detail="ALL"))

    assert set(counts) == {"NSW"}
    nsw = counts["NSW"]
    assert nsw.current_references == ("1/SP100",)
    assert nsw.historical_references == ("2/DP200",)
    assert registry.count("counts") == 2
