"""Clients for the external registries queried while building an order.

The order core only depends on :class:`RegistryClient`.  The HTTP client talks
to the report gateway (bankruptcy, related entities, court, land title,
report creation) and to the Australian Business Register for organisation
name lookups.  When no gateway is configured an offline client is installed
that returns no matches, which keeps every dialog on its typed-name fallback.
"""
from __future__ import annotations

import json
import re
from typing import Any, Protocol
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError as PydanticValidationError

from search_orders.core.schema import (
    BankruptcyRecord,
    CourtRecord,
    DataAvailability,
    LandTitleCounts,
    OrgSuggestion,
    RelatedRecord,
)


class ProviderError(RuntimeError):
    """Raised when a registry lookup fails or answers with an error payload."""


class RegistryClient(Protocol):
    """Contract for registry integrations."""

    async def search_bankruptcy_matches(
        self, *, last_name: str, first_name: str | None = None, date_of_birth: str | None = None
    ) -> list[BankruptcyRecord]: ...

    async def search_related_entity_matches(
        self,
        *,
        last_name: str,
        first_name: str | None = None,
        dob_from: str | None = None,
        dob_to: str | None = None,
    ) -> list[RelatedRecord]: ...

    async def search_court_matches(
        self, *, last_name: str, court_type: str, first_name: str | None = None
    ) -> list[CourtRecord]: ...

    async def search_land_title_person_names(
        self, *, last_name: str, state: str, first_name: str | None = None
    ) -> list[str]: ...

    async def get_land_title_counts(self, params: dict[str, Any]) -> LandTitleCounts: ...

    async def search_organisation_by_name(self, term: str) -> list[OrgSuggestion]: ...

    async def create_report_job(self, payload: dict[str, Any]) -> str: ...

    async def check_data_availability(self, identifier: str, report_type: str) -> DataAvailability: ...


class OfflineRegistryClient:
    """Fallback client used when no registry gateway is configured."""

    async def search_bankruptcy_matches(self, **_: Any) -> list[BankruptcyRecord]:
        return []

    async def search_related_entity_matches(self, **_: Any) -> list[RelatedRecord]:
        return []

    async def search_court_matches(self, **_: Any) -> list[CourtRecord]:
        return []

    async def search_land_title_person_names(self, **_: Any) -> list[str]:
        return []

    async def get_land_title_counts(self, params: dict[str, Any]) -> LandTitleCounts:
        return LandTitleCounts(success=False)

    async def search_organisation_by_name(self, term: str) -> list[OrgSuggestion]:
        return []

    async def create_report_job(self, payload: dict[str, Any]) -> str:
        raise ProviderError("registry integration not configured")

    async def check_data_availability(self, identifier: str, report_type: str) -> DataAvailability:
        return DataAvailability(available=False)


_JSONP = re.compile(r"^\s*\w+\((.*)\)\s*;?\s*$", re.DOTALL)


class HttpRegistryClient:
    """Client for the report gateway HTTP API."""

    def __init__(
        self,
        api_base: str,
        *,
        token: str | None = None,
        abr_guid: str | None = None,
        abr_base: str = "https://abr.business.gov.au",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        parsed = urlparse(api_base)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("api_base must include scheme and host")

        self._api_base = api_base.rstrip("/")
        self._abr_base = abr_base.rstrip("/")
        self._abr_guid = abr_guid
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._headers = headers
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _params(**values: Any) -> dict[str, str]:
        return {key: str(value).strip() for key, value in values.items() if value not in (None, "")}

    async def _call(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self._api_base}{path}"
        try:
            response = await self._client.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderError(f"{path}: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError(f"{path}: invalid JSON response ({response.status_code})") from exc

        if response.status_code >= 400 or (isinstance(body, dict) and body.get("success") is False):
            message = body.get("message") or body.get("error") if isinstance(body, dict) else None
            raise ProviderError(str(message or f"{path} failed with status {response.status_code}"))
        if not isinstance(body, dict):
            return {"matches": body}
        return body

    @staticmethod
    def _records(model: type, rows: Any) -> list:
        records = []
        if not isinstance(rows, list):
            return records
        for row in rows:
            if not isinstance(row, dict):
                continue
            try:
                records.append(model.model_validate(row))
            except PydanticValidationError:
                continue
        return records

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def search_bankruptcy_matches(
        self, *, last_name: str, first_name: str | None = None, date_of_birth: str | None = None
    ) -> list[BankruptcyRecord]:
        params = self._params(firstName=first_name, lastName=last_name, dateOfBirth=date_of_birth)
        body = await self._call("GET", "/api/bankruptcy/matches", params=params)
        return self._records(BankruptcyRecord, body.get("matches"))

    async def search_related_entity_matches(
        self,
        *,
        last_name: str,
        first_name: str | None = None,
        dob_from: str | None = None,
        dob_to: str | None = None,
    ) -> list[RelatedRecord]:
        params = self._params(firstName=first_name, lastName=last_name, dobFrom=dob_from, dobTo=dob_to)
        body = await self._call("GET", "/api/director-related/matches", params=params)
        rows = body.get("matches")
        if rows is None:
            rows = body.get("results")
        return self._records(RelatedRecord, rows)

    async def search_court_matches(
        self, *, last_name: str, court_type: str, first_name: str | None = None
    ) -> list[CourtRecord]:
        params = self._params(firstName=first_name, lastName=last_name, courtType=court_type)
        body = await self._call("GET", "/api/court/name-search", params=params)
        return self._records(CourtRecord, body.get("matches"))

    async def search_land_title_person_names(
        self, *, last_name: str, state: str, first_name: str | None = None
    ) -> list[str]:
        payload = self._params(firstName=first_name, lastName=last_name, state=state)
        body = await self._call("POST", "/api/land-title/search-person-names", json=payload)
        return [str(name) for name in body.get("personNames") or [] if str(name).strip()]

    @staticmethod
    def _model(model: type, path: str, body: dict[str, Any]) -> Any:
        try:
            return model.model_validate(body)
        except PydanticValidationError as exc:
            raise ProviderError(f"{path}: malformed response ({exc.error_count()} invalid fields)") from exc

    async def get_land_title_counts(self, params: dict[str, Any]) -> LandTitleCounts:
        body = await self._call("POST", "/api/land-title/counts", json=params)
        return self._model(LandTitleCounts, "/api/land-title/counts", body)

    async def search_organisation_by_name(self, term: str) -> list[OrgSuggestion]:
        if not self._abr_guid:
            raise ProviderError("ABR_GUID is not configured")
        compact = term.replace(" ", "")
        if compact.isdigit():
            url = f"{self._abr_base}/json/AbnDetails.aspx"
            params = {"abn": compact, "guid": self._abr_guid}
        else:
            url = f"{self._abr_base}/json/MatchingNames.aspx"
            params = {"name": term, "maxResults": "10", "guid": self._abr_guid}
        try:
            response = await self._client.get(url, params=params)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ProviderError(f"ABN lookup failed: {exc}") from exc

        match = _JSONP.match(response.text)
        if not match:
            raise ProviderError("Invalid ABN lookup response format")
        try:
            data = json.loads(match.group(1))
        except ValueError as exc:
            raise ProviderError("Invalid ABN lookup response body") from exc
        if not isinstance(data, dict):
            raise ProviderError("Invalid ABN lookup response body")
        if compact.isdigit():
            if not data.get("Abn"):
                return []
            rows = [{"Abn": data["Abn"], "Name": data.get("EntityName") or "Unknown", "Score": 100}]
        else:
            rows = data.get("Names") or []
        return self._records(OrgSuggestion, rows)

    async def create_report_job(self, payload: dict[str, Any]) -> str:
        body = await self._call("POST", "/api/create-report", json=payload)
        report = body.get("report")
        if not isinstance(report, str) or not report:
            raise ProviderError("report gateway returned no report filename")
        return report

    async def check_data_availability(self, identifier: str, report_type: str) -> DataAvailability:
        body = await self._call("POST", "/api/get-report-data", json={"abn": identifier, "type": report_type})
        return self._model(DataAvailability, "/api/get-report-data", body)

    async def aclose(self) -> None:  # pragma: no cover - best effort cleanup
        if self._owns_client:
            await self._client.aclose()


_client: RegistryClient = OfflineRegistryClient()


def configure_registry_client(client: RegistryClient) -> None:
    """Install the registry client used by new orders."""

    global _client
    _client = client


def get_registry_client() -> RegistryClient:
    """Return the currently configured registry client."""

    return _client


__all__ = [
    "HttpRegistryClient",
    "OfflineRegistryClient",
    "ProviderError",
    "RegistryClient",
    "configure_registry_client",
    "get_registry_client",
]
