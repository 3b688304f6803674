"""Registry lookups that turn an owner identity into labelled candidates."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any

from search_orders.core.dates import to_dashed, to_display, to_iso, year_bounds
from search_orders.core.name_normalize import normalize
from search_orders.domain import FALLBACK_KEY, Director, MatchCandidate, StateTitleCount, Subject
from search_orders.infrastructure import ProviderError, RegistryClient
from search_orders.logging import bind_context, provider_lookup

LABEL_SEPARATOR = " • "

COURT_KINDS = {"court_criminal": "CRIMINAL", "court_civil": "CIVIL"}


@dataclass(frozen=True, slots=True)
class OwnerIdentity:
    """Name and birth details of whoever a lookup is run for."""

    first_name: str = ""
    middle_name: str = ""
    last_name: str = ""
    dob: str | None = None
    birth_year_from: int | None = None
    birth_year_to: int | None = None
    abn: str | None = None
    organisation: str | None = None

    @property
    def full_name(self) -> str:
        if self.organisation:
            return self.organisation.strip()
        parts = (self.first_name, self.middle_name, self.last_name)
        return " ".join(part.strip() for part in parts if part and part.strip())

    @property
    def given_names(self) -> str | None:
        names = " ".join(part.strip() for part in (self.first_name, self.middle_name) if part and part.strip())
        return names or None

    @classmethod
    def from_subject(cls, subject: Subject) -> "OwnerIdentity":
        if subject.kind == "organisation":
            return cls(abn=subject.abn, organisation=subject.name)
        return cls(
            first_name=subject.first_name,
            middle_name=subject.middle_name,
            last_name=subject.last_name,
            dob=subject.dob,
            birth_year_from=subject.birth_year_from,
            birth_year_to=subject.birth_year_to,
        )

    @classmethod
    def from_director(cls, director: Director) -> "OwnerIdentity":
        return cls(first_name=director.first_name, last_name=director.last_name, dob=director.dob or None)


@dataclass(frozen=True, slots=True)
class FetchResult:
    candidates: list[MatchCandidate]
    error: str | None = None

    @property
    def fell_back(self) -> bool:
        return len(self.candidates) == 1 and self.candidates[0].is_fallback


def _join(*parts: str | None) -> str:
    return LABEL_SEPARATOR.join(part.strip() for part in parts if part and str(part).strip())


def unique_labels(labels: list[str]) -> list[str]:
    """Suffix repeated labels with `` (2)``, `` (3)`` in order of appearance."""

    seen: dict[str, int] = {}
    taken = set(labels)
    result: list[str] = []
    for label in labels:
        count = seen.get(label, 0) + 1
        seen[label] = count
        if count == 1:
            result.append(label)
            continue
        candidate = f"{label} ({count})"
        while candidate in taken:
            count += 1
            candidate = f"{label} ({count})"
        seen[label] = count
        taken.add(candidate)
        result.append(candidate)
    return result


def fallback_candidate(provider: str, identity: OwnerIdentity) -> MatchCandidate:
    label = identity.full_name.upper() or "UNKNOWN"
    return MatchCandidate(provider=provider, label=label, identity_key=FALLBACK_KEY, raw_record={})


def _bankruptcy_label(record: Any) -> str:
    debtor = record.debtor
    name = " ".join(part for part in (debtor.given_names, debtor.surname) if part)
    dob = to_display(debtor.date_of_birth) if debtor.date_of_birth else None
    return _join(name, f"DOB: {dob}" if dob else None, debtor.address_suburb, debtor.occupation)


def _related_label(record: Any) -> str:
    dob = to_display(record.dob) if record.dob else None
    return _join(record.name, f"DOB: {dob}" if dob else None, record.state, record.suburb)


def _court_label(record: Any) -> str:
    name = record.fullname or " ".join(part for part in (record.given_name, record.surname) if part)
    return _join(name, record.state, record.court_type, record.case_number)


class DisambiguationEngine:
    """Fetches candidates for one owner and search kind.

    Every public fetch terminates with at least one candidate: an empty or
    failed provider answer resolves to the typed-identity fallback, with the
    provider error kept on the result.
    """

    def __init__(self, client: RegistryClient) -> None:
        self._client = client

    async def fetch(
        self,
        identity: OwnerIdentity,
        search_kind: str,
        *,
        states: tuple[str, ...] = (),
        order_id: str | None = None,
    ) -> FetchResult:
        started = time.perf_counter()
        error: str | None = None
        raw_count = 0
        candidates: list[MatchCandidate] = []
        try:
            candidates, raw_count = await self._lookup(identity, search_kind, states)
        except ProviderError as exc:
            error = str(exc)

        duration_ms = (time.perf_counter() - started) * 1000
        provider_lookup(
            search_kind,
            identity.full_name,
            raw_count,
            len(candidates),
            duration_ms,
            order_id=order_id,
            error=error,
        )
        if not candidates:
            if error:
                bind_context(order_id=order_id, kind=search_kind).warning("provider_fallback", error=error)
            return FetchResult([fallback_candidate(search_kind, identity)], error)
        return FetchResult(candidates, error)

    async def _lookup(
        self, identity: OwnerIdentity, search_kind: str, states: tuple[str, ...]
    ) -> tuple[list[MatchCandidate], int]:
        if not identity.last_name.strip():
            raise ProviderError("last name is required for a registry lookup")
        if search_kind == "bankruptcy":
            return await self._bankruptcy(identity)
        if search_kind == "related":
            return await self._related(identity)
        if search_kind in COURT_KINDS:
            return await self._court(identity, COURT_KINDS[search_kind], search_kind)
        if search_kind == "land_title":
            return await self._land_title(identity, states)
        raise ProviderError(f"no registry lookup for '{search_kind}'")

    # ------------------------------------------------------------------
    # providers
    # ------------------------------------------------------------------
    @staticmethod
    def _candidates(provider: str, rows: list[tuple[str, str, dict[str, Any]]]) -> list[MatchCandidate]:
        labels = unique_labels([label for label, _, _ in rows])
        return [
            MatchCandidate(provider=provider, label=label, identity_key=key, raw_record=raw)
            for label, (_, key, raw) in zip(labels, rows)
        ]

    async def _bankruptcy(self, identity: OwnerIdentity) -> tuple[list[MatchCandidate], int]:
        records = await self._client.search_bankruptcy_matches(
            first_name=identity.given_names,
            last_name=identity.last_name,
            date_of_birth=to_iso(identity.dob),
        )
        rows = []
        for position, record in enumerate(records):
            key = record.extract_id or f"bankruptcy-{position}"
            rows.append((_bankruptcy_label(record) or identity.full_name.upper(), key, record.model_dump(by_alias=True)))
        return self._candidates("bankruptcy", rows), len(records)

    async def _related(self, identity: OwnerIdentity) -> tuple[list[MatchCandidate], int]:
        if identity.dob:
            dob_from = dob_to = to_dashed(identity.dob)
        else:
            dob_from, dob_to = year_bounds(identity.birth_year_from, identity.birth_year_to)
        records = await self._client.search_related_entity_matches(
            first_name=identity.given_names,
            last_name=identity.last_name,
            dob_from=dob_from,
            dob_to=dob_to,
        )
        rows = []
        for position, record in enumerate(records):
            key = record.person_id or record.search_id or f"related-{position}"
            rows.append((_related_label(record) or identity.full_name.upper(), key, record.model_dump()))
        return self._candidates("related", rows), len(records)

    async def _court(self, identity: OwnerIdentity, court_type: str, provider: str) -> tuple[list[MatchCandidate], int]:
        records = await self._client.search_court_matches(
            first_name=identity.given_names,
            last_name=identity.last_name,
            court_type=court_type,
        )
        # Records describe their own jurisdiction; keep the ones for this stage.
        kept = [
            record
            for record in records
            if not record.court_type or record.court_type.upper() in (court_type, "ALL")
        ]
        rows = []
        for position, record in enumerate(kept):
            key = record.case_number or f"{provider}-{position}"
            rows.append((_court_label(record) or identity.full_name.upper(), key, record.model_dump(by_alias=True)))
        return self._candidates(provider, rows), len(records)

    async def _land_title(self, identity: OwnerIdentity, states: tuple[str, ...]) -> tuple[list[MatchCandidate], int]:
        if not states:
            raise ProviderError("choose at least one jurisdiction")

        async def per_state(state: str) -> list[str]:
            return await self._client.search_land_title_person_names(
                first_name=identity.given_names, last_name=identity.last_name, state=state
            )

        outcomes = await asyncio.gather(*(per_state(state) for state in states), return_exceptions=True)
        names: dict[str, str] = {}
        failures: list[str] = []
        raw_count = 0
        for state, outcome in zip(states, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, ProviderError):
                    raise outcome
                failures.append(f"{state}: {outcome}")
                continue
            raw_count += len(outcome)
            for name in outcome:
                names.setdefault(normalize(name), name.strip())
        if not names and failures:
            raise ProviderError("; ".join(failures))

        candidates = [
            MatchCandidate(provider="land_title", label=key, identity_key=key, raw_record={"name": names[key]})
            for key in sorted(names)
        ]
        return candidates, raw_count

    # ------------------------------------------------------------------
    # land title counts
    # ------------------------------------------------------------------
    async def title_counts(
        self,
        states: tuple[str, ...],
        *,
        identity: OwnerIdentity,
        detail: str,
        order_id: str | None = None,
    ) -> dict[str, StateTitleCount]:
        """Per-state counts, fetched concurrently; failed states are omitted."""

        async def per_state(state: str) -> StateTitleCount | None:
            params: dict[str, Any] = {"states": [state], "detail": detail}
            if identity.organisation:
                params.update({"type": "organization", "abn": identity.abn, "companyName": identity.organisation})
            else:
                params.update(
                    {
                        "type": "individual",
                        "firstName": identity.given_names,
                        "lastName": identity.last_name,
                        "dob": to_display(identity.dob) if identity.dob else None,
                        "startYear": identity.birth_year_from,
                        "endYear": identity.birth_year_to,
                    }
                )
            try:
                result = await self._client.get_land_title_counts({k: v for k, v in params.items() if v is not None})
            except ProviderError as exc:
                bind_context(order_id=order_id, state=state).warning("title_counts_failed", error=str(exc))
                return None
            if not result.success:
                return None
            current = [ref.title_reference for ref in result.title_references if not ref.historical]
            historical = [ref.title_reference for ref in result.title_references if ref.historical]
            return StateTitleCount(
                state=state,
                current=result.current,
                historical=result.historical,
                current_references=tuple(current),
                historical_references=tuple(historical),
            )

        outcomes = await asyncio.gather(*(per_state(state) for state in states))
        return {count.state: count for count in outcomes if count is not None}
