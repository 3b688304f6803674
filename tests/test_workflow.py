import json

import pytest
from fastapi.testclient import TestClient

OFFICERS = [
    {"name": "ANNA LEE", "status": "Current"},
    {"name": "OLD TIMER", "status": "Ceased"},
    {"name": "BRUCE WAYNE", "status": "current", "dob": "1972-04-17"},
]


@pytest.fixture()
def client(registry, monkeypatch):
    monkeypatch.delenv("REGISTRY_API_BASE", raising=False)
    from search_orders.app import create_app

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


def _create(client, category: str) -> str:
    response = client.post("/api/orders", json={"category": category})
    assert response.status_code == 200
    return response.json()["order_id"]


def _toggle(client, order_id: str, code: str) -> dict:
    response = client.post(f"/api/orders/{order_id}/searches/toggle", json={"code": code})
    assert response.status_code == 200, response.text
    return response.json()


def test_organisation_order_end_to_end(client, registry):
    registry.officers = OFFICERS
    registry.bankruptcy["WAYNE"] = [
        {"extractId": "E-7", "debtor": {"surname": "WAYNE", "givenNames": "BRUCE", "addressSuburb": "GOTHAM"}}
    ]

    # 1. create the order and confirm the organisation
    order_id = _create(client, "organisation")
    response = client.put(
        f"/api/orders/{order_id}/subject/organisation", json={"abn": "51 824 753 556", "name": "ACME PTY LTD"}
    )
    assert response.status_code == 200
    order = response.json()
    assert order["subject"]["abn"] == "51824753556"
    assert order["subject"]["confirmed"] is True
    assert [director["status"] for director in order["directors"]] == ["current", "past", "current"]
    assert order["directors"][2]["dob"] == "17/04/1972"

    # 2. plain searches price immediately
    for code in ("ASIC", "ASIC_CURRENT", "COURT"):
        _toggle(client, order_id, code)
    price = client.get(f"/api/orders/{order_id}/price").json()
    assert price["total"] == "39.00"

    # 3. the director bankruptcy dialog walks the current directors
    body = _toggle(client, order_id, "DIRECTOR_BANKRUPTCY")
    assert body["change"]["staged"] == ["DIRECTOR_BANKRUPTCY"]
    session = body["order"]["active_session"]
    assert session["owner"] == "director:0"
    assert body["order"]["wizard"]["state"] == "awaiting_disambiguation"
    assert client.get(f"/api/orders/{order_id}/price").json()["total"] == "119.00"

    response = client.post(f"/api/orders/{order_id}/disambiguation/confirm", json={"labels": ["ANNA LEE"]})
    assert response.status_code == 200
    session = response.json()["session"]
    assert session["owner"] == "director:2"
    assert session["candidates"][0]["fallback"] is False

    label = session["candidates"][0]["label"]
    response = client.post(
        f"/api/orders/{order_id}/disambiguation/confirm",
        json={"labels": [label], "session_id": session["session_id"]},
    )
    body = response.json()
    assert body["session"] is None
    assert body["order"]["wizard"]["state"] == "pricing"
    assert body["order"]["stage"] == "DONE"
    assert body["order"]["price"]["total"] == "119.00"

    # 4. submit and follow the progress stream
    response = client.post(f"/api/orders/{order_id}/submit/stream", json={"user_id": 3, "matter_id": "M-9"})
    assert response.status_code == 200
    events = [json.loads(line) for line in response.text.splitlines() if line.strip()]
    assert len(events) == 8
    assert [event["status"] for event in events[::2]] == ["processing"] * 4
    assert [event["status"] for event in events[1::2]] == ["done"] * 4

    jobs = client.get(f"/api/orders/{order_id}").json()["jobs"]
    assert [job["type"] for job in jobs] == ["court", "asic-current", "director-bankruptcy", "director-bankruptcy"]
    assert jobs[3]["payload"]["match"]["identityKey"] == "E-7"
    assert jobs[0]["payload"]["userId"] == 3


def test_individual_dialogs_cancel_and_reopen(client, registry):
    registry.bankruptcy["Smith"] = [
        {"extractId": "E-1", "debtor": {"surname": "SMITH", "givenNames": "JOHN", "addressSuburb": "RYDE"}},
        {"extractId": "E-2", "debtor": {"surname": "SMITH", "givenNames": "JOHN", "addressSuburb": "BONDI"}},
    ]
    order_id = _create(client, "INDIVIDUAL")
    response = client.put(
        f"/api/orders/{order_id}/subject/individual",
        json={"first_name": "John", "last_name": "Smith", "dob": "1970-03-05"},
    )
    assert response.status_code == 200
    assert response.json()["subject"]["dob"] == "05/03/1970"

    _toggle(client, order_id, "INDIVIDUAL_RELATED")
    session = client.get(f"/api/orders/{order_id}/disambiguation").json()["session"]
    assert session["search_kind"] == "related"
    body = client.post(f"/api/orders/{order_id}/disambiguation/cancel", json={}).json()
    assert body["session"] is None
    assert "INDIVIDUAL_RELATED" not in body["order"]["selection"]["groups"]["searches"]

    body = _toggle(client, order_id, "INDIVIDUAL_BANKRUPTCY")
    labels = [candidate["label"] for candidate in body["order"]["active_session"]["candidates"]]
    assert len(labels) == 2
    client.post(f"/api/orders/{order_id}/disambiguation/confirm", json={"labels": labels})
    assert client.get(f"/api/orders/{order_id}/price").json()["total"] == "80.00"

    response = client.post(f"/api/orders/{order_id}/disambiguation/reopen", json={"kind": "bankruptcy"})
    assert response.status_code == 200
    assert response.json()["session"]["selected"] == labels
    client.post(f"/api/orders/{order_id}/disambiguation/confirm", json={"labels": labels[:1]})
    assert client.get(f"/api/orders/{order_id}/price").json()["total"] == "40.00"
    assert registry.count("bankruptcy") == 1

    # the confirmed subject is locked until reset
    response = client.put(f"/api/orders/{order_id}/subject/individual", json={"last_name": "Jones"})
    assert response.status_code == 400
    response = client.delete(f"/api/orders/{order_id}/subject")
    assert response.json()["subject"] is None


def test_organisation_suggestions(client, registry):
    registry.organisations = [{"Abn": "51824753556", "Name": "ACME PTY LTD", "Score": 97}]

    assert client.get("/api/orders/organisations/suggestions", params={"term": "a"}).json() == {"items": []}
    items = client.get("/api/orders/organisations/suggestions", params={"term": "acme"}).json()["items"]
    assert [(item["abn"], item["name"]) for item in items] == [("51824753556", "ACME PTY LTD")]

    registry.failing.add("organisations")
    assert client.get("/api/orders/organisations/suggestions", params={"term": "acme"}).json() == {"items": []}


def test_error_responses(client, registry):
    assert client.get("/api/orders/order-99999").status_code == 404

    order_id = _create(client, "INDIVIDUAL")
    response = client.post(f"/api/orders/{order_id}/searches/toggle", json={"code": "ATO"})
    assert response.status_code == 400

    response = client.put(f"/api/orders/{order_id}/subject/individual", json={"last_name": "Smith", "dob": "31/31/1970"})
    assert response.status_code == 400

    response = client.post(f"/api/orders/{order_id}/disambiguation/confirm", json={"labels": ["X"]})
    assert response.status_code == 409

    assert client.post(f"/api/orders/{order_id}/submit", json={}).status_code == 400
    assert client.post(f"/api/orders/{order_id}/submit/stream", json={}).status_code == 400

    # a dialog waiting for a subject blocks submission
    _toggle(client, order_id, "INDIVIDUAL_BANKRUPTCY")
    order = client.get(f"/api/orders/{order_id}").json()
    assert order["wizard"]["state"] == "selecting_searches"
    assert "subject" in order["wizard"]["blocked_reason"]
    response = client.post(f"/api/orders/{order_id}/submit", json={})
    assert response.status_code == 400


def test_category_change_resets_order(client, registry):
    order_id = _create(client, "ORGANISATION")
    _toggle(client, order_id, "ATO")

    response = client.put(f"/api/orders/{order_id}/category", json={"category": "land title"})
    order = response.json()
    assert order["category"] == "LAND TITLE"
    assert order["selection"]["groups"]["searches"] == []
    assert client.get("/api/orders").json()["items"] == [order_id]


def test_editing_unconfirmed_subject_restarts_its_dialogs(client, registry):
    registry.bankruptcy["Smith"] = [
        {"extractId": "E-1", "debtor": {"surname": "SMITH", "givenNames": "JOHN", "addressSuburb": "RYDE"}},
        {"extractId": "E-2", "debtor": {"surname": "SMITH", "givenNames": "JOHN", "addressSuburb": "BONDI"}},
    ]
    order_id = _create(client, "INDIVIDUAL")
    client.put(f"/api/orders/{order_id}/subject/individual", json={"first_name": "John", "last_name": "Smith"})
    body = _toggle(client, order_id, "INDIVIDUAL_BANKRUPTCY")
    labels = [candidate["label"] for candidate in body["order"]["active_session"]["candidates"]]
    assert len(labels) == 2
    _toggle(client, order_id, "INDIVIDUAL_RELATED")

    body = client.post(f"/api/orders/{order_id}/disambiguation/confirm", json={"labels": labels}).json()
    assert body["session"]["search_kind"] == "related"
    assert body["order"]["price"]["total"] == "110.00"

    response = client.put(
        f"/api/orders/{order_id}/subject/individual", json={"first_name": "Mary", "last_name": "Jones"}
    )
    assert response.status_code == 200
    order = response.json()
    session = order["active_session"]
    assert session["search_kind"] == "bankruptcy"
    assert [candidate["label"] for candidate in session["candidates"]] == ["MARY JONES"]
    assert sorted(order["selection"]["pending"]) == ["INDIVIDUAL_BANKRUPTCY", "INDIVIDUAL_RELATED"]
    assert order["price"]["total"] == "70.00"
