from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from search_orders.application import OrderService
from search_orders.application.disambiguation import DisambiguationEngine, OwnerIdentity
from search_orders.infrastructure import (
    HttpRegistryClient,
    InMemoryOrderRepository,
    ProviderError,
    configure_registry_client,
)


def _client(handler, **kwargs) -> HttpRegistryClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpRegistryClient("https://gateway.example.com/", token="secret", http_client=http_client, **kwargs)


def test_bankruptcy_lookup_sends_params_and_skips_bad_rows():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("Authorization")
        body = {
            "success": True,
            "matches": [
                {"extractId": "E-1", "debtor": {"surname": "SMITH", "givenNames": "JOHN"}},
                "not a record",
                {"extractId": "E-2", "debtor": "broken"},
            ],
        }
        return httpx.Response(200, json=body)

    client = _client(handler)
    records = asyncio.run(
        client.search_bankruptcy_matches(last_name="Smith", first_name="John", date_of_birth="1970-03-05")
    )

    assert [record.extract_id for record in records] == ["E-1"]
    assert records[0].debtor.given_names == "JOHN"
    assert captured["auth"] == "Bearer secret"
    url = httpx.URL(str(captured["url"]))
    assert url.path == "/api/bankruptcy/matches"
    assert url.params["lastName"] == "Smith"
    assert url.params["dateOfBirth"] == "1970-03-05"


def test_related_lookup_accepts_results_key():
    def handler(request: httpx.Request) -> httpx.Response:
        assert "dobFrom" not in request.url.params
        return httpx.Response(200, json={"results": [{"person_id": "p1", "name": "JOHN SMITH"}]})

    records = asyncio.run(_client(handler).search_related_entity_matches(last_name="Smith"))
    assert [record.person_id for record in records] == ["p1"]


def test_error_payload_raises_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "message": "quota exceeded"})

    with pytest.raises(ProviderError, match="quota exceeded"):
        asyncio.run(_client(handler).search_court_matches(last_name="Smith", court_type="CIVIL"))


def test_transport_failure_raises_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProviderError):
        asyncio.run(_client(handler).search_land_title_person_names(last_name="Smith", state="NSW"))


def test_land_title_names_are_posted_as_json():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content.decode("utf-8"))
        return httpx.Response(200, json={"success": True, "personNames": ["JOHN SMITH", " ", "J SMITH"]})

    names = asyncio.run(
        _client(handler).search_land_title_person_names(last_name="Smith", first_name="John", state="NSW")
    )

    assert names == ["JOHN SMITH", "J SMITH"]
    assert captured["body"] == {"firstName": "John", "lastName": "Smith", "state": "NSW"}


def test_create_report_returns_filename():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/create-report"
        return httpx.Response(200, json={"success": True, "report": "court-42.pdf"})

    assert asyncio.run(_client(handler).create_report_job({"type": "court"})) == "court-42.pdf"


def test_create_report_without_filename_fails():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True})

    with pytest.raises(ProviderError):
        asyncio.run(_client(handler).create_report_job({"type": "court"}))


def test_organisation_lookup_parses_jsonp():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/json/MatchingNames.aspx"
        assert request.url.params["guid"] == "abr-guid"
        data = {"Names": [{"Abn": "51824753556", "Name": "ACME PTY LTD", "Score": 98}, {"Name": "NO ABN"}]}
        return httpx.Response(200, text=f"callback({json.dumps(data)});")

    suggestions = asyncio.run(_client(handler, abr_guid="abr-guid").search_organisation_by_name("acme"))

    assert [(item.abn, item.name) for item in suggestions] == [("51824753556", "ACME PTY LTD")]


def test_numeric_organisation_lookup_uses_abn_details():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/json/AbnDetails.aspx"
        assert request.url.params["abn"] == "51824753556"
        return httpx.Response(200, text='callback({"Abn": "51824753556", "EntityName": "ACME PTY LTD"})')

    suggestions = asyncio.run(_client(handler, abr_guid="abr-guid").search_organisation_by_name("51 824 753 556"))
    assert suggestions[0].name == "ACME PTY LTD"
    assert suggestions[0].score == 100


def test_organisation_lookup_requires_guid():
    client = _client(lambda request: httpx.Response(200, text=""))
    with pytest.raises(ProviderError):
        asyncio.run(client.search_organisation_by_name("acme"))


def test_api_base_must_be_absolute():
    with pytest.raises(ValueError):
        HttpRegistryClient("gateway.example.com")


def test_malformed_title_counts_raise_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "current": "lots"})

    client = _client(handler)
    with pytest.raises(ProviderError, match="malformed response"):
        asyncio.run(client.get_land_title_counts({"states": ["NSW"], "detail": "CURRENT"}))

    engine = DisambiguationEngine(client)
    counts = asyncio.run(engine.title_counts(("NSW",), identity=OwnerIdentity(last_name="Smith"), detail="CURRENT"))
    assert counts == {}


def test_malformed_availability_raises_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"available": True, "data": "not-a-dict"})

    with pytest.raises(ProviderError, match="/api/get-report-data"):
        asyncio.run(_client(handler).check_data_availability("51824753556", "asic-current"))


def test_organisation_confirms_without_officers_when_extract_is_malformed():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/get-report-data":
            return httpx.Response(200, json={"available": True, "data": ["ANNA LEE"]})
        return httpx.Response(200, json={"success": True})

    configure_registry_client(_client(handler))
    service = OrderService(InMemoryOrderRepository())
    order_id = service.create_order("ORGANISATION")

    assert asyncio.run(service.confirm_organisation(order_id, "51824753556", "ACME PTY LTD")) == ()
    subject = service.context(order_id).subject
    assert subject.abn == "51824753556"
    assert subject.confirmed is True


@pytest.mark.parametrize("body", ["callback(not json)", 'callback(["ACME"])'])
def test_unparseable_organisation_lookup_raises_provider_error(body):
    client = _client(lambda request: httpx.Response(200, text=body), abr_guid="abr-guid")
    with pytest.raises(ProviderError, match="response body"):
        asyncio.run(client.search_organisation_by_name("acme"))


def test_non_list_matches_yield_no_records():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "matches": {"extractId": "E-1"}})

    assert asyncio.run(_client(handler).search_bankruptcy_matches(last_name="Smith")) == []
