from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from search_orders.application import reset_order_state
from search_orders.core.schema import (
    BankruptcyRecord,
    CourtRecord,
    DataAvailability,
    LandTitleCounts,
    OrgSuggestion,
    RelatedRecord,
)
from search_orders.infrastructure import OfflineRegistryClient, ProviderError, configure_registry_client


class FakeRegistryClient:
    """In-memory registry keyed by last name; records every call."""

    def __init__(self) -> None:
        self.bankruptcy: dict[str, list[dict]] = {}
        self.related: dict[str, list[dict]] = {}
        self.court: dict[str, list[dict]] = {}
        self.person_names: dict[str, list[str]] = {}
        self.counts: dict[str, dict] = {}
        self.organisations: list[dict] = []
        self.officers: list[dict] = []
        self.failing: set[str] = set()
        self.failing_reports: set[str] = set()
        self.delays: dict[str, float] = {}
        self.gate: asyncio.Event | None = None
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def _enter(self, name: str, **params: Any) -> None:
        self.calls.append((name, params))
        if self.gate is not None:
            await self.gate.wait()
        if name in self.failing:
            raise ProviderError(f"{name} unavailable")

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    async def search_bankruptcy_matches(self, *, last_name, first_name=None, date_of_birth=None):
        await self._enter("bankruptcy", last_name=last_name, first_name=first_name, date_of_birth=date_of_birth)
        return [BankruptcyRecord.model_validate(row) for row in self.bankruptcy.get(last_name, [])]

    async def search_related_entity_matches(self, *, last_name, first_name=None, dob_from=None, dob_to=None):
        await self._enter("related", last_name=last_name, first_name=first_name, dob_from=dob_from, dob_to=dob_to)
        return [RelatedRecord.model_validate(row) for row in self.related.get(last_name, [])]

    async def search_court_matches(self, *, last_name, court_type, first_name=None):
        await self._enter("court", last_name=last_name, first_name=first_name, court_type=court_type)
        return [CourtRecord.model_validate(row) for row in self.court.get(last_name, [])]

    async def search_land_title_person_names(self, *, last_name, state, first_name=None):
        await self._enter("land_title", last_name=last_name, first_name=first_name, state=state)
        await asyncio.sleep(self.delays.get(state, 0))
        return list(self.person_names.get(state, []))

    async def get_land_title_counts(self, params):
        await self._enter("counts", **params)
        state = params["states"][0]
        if state not in self.counts:
            return LandTitleCounts(success=False)
        return LandTitleCounts.model_validate({"success": True, **self.counts[state]})

    async def search_organisation_by_name(self, term):
        await self._enter("organisations", term=term)
        return [OrgSuggestion.model_validate(row) for row in self.organisations]

    async def create_report_job(self, payload):
        await self._enter("create_report", **payload)
        if payload["type"] in self.failing_reports:
            raise ProviderError(f"{payload['type']} generation failed")
        return f"{payload['type']}-{self.count('create_report')}.pdf"

    async def check_data_availability(self, identifier, report_type):
        await self._enter("availability", identifier=identifier, report_type=report_type)
        extract = {"directors": self.officers, "shareholders": []}
        return DataAvailability(available=True, data={"rdata": {"asic_extracts": [extract]}})


@pytest.fixture(autouse=True)
def reset_state():
    reset_order_state()
    yield
    reset_order_state()
    configure_registry_client(OfflineRegistryClient())


@pytest.fixture()
def registry() -> FakeRegistryClient:
    client = FakeRegistryClient()
    configure_registry_client(client)
    return client
