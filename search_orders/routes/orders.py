from __future__ import annotations

import json
from contextlib import contextmanager
from typing import Any, AsyncIterator, Iterator

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse

from search_orders.application import OrderNotFoundError, SequenceError, get_order_service
from search_orders.application.orders import breakdown_to_dict, job_to_dict, session_to_dict
from search_orders.core.validation import ValidationError

router = APIRouter(prefix="/orders", tags=["orders"])


@contextmanager
def _order_errors() -> Iterator[None]:
    try:
        yield
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="order not found") from None
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from None
    except SequenceError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from None


def _change(change: Any) -> dict[str, list[str]]:
    return {"added": list(change.added), "staged": list(change.staged), "removed": list(change.removed)}


@router.get("")
async def list_orders() -> dict:
    service = get_order_service()
    return {"items": service.list_orders()}


@router.post("")
async def create_order(payload: dict) -> dict:
    category = str(payload.get("category") or "ORGANISATION").upper()
    service = get_order_service()
    with _order_errors():
        order_id = service.create_order(category)
        return service.order_overview(order_id)


@router.get("/{order_id}")
async def get_order(order_id: str) -> dict:
    service = get_order_service()
    with _order_errors():
        return service.order_overview(order_id)


@router.put("/{order_id}/category")
async def change_category(order_id: str, payload: dict) -> dict:
    category = payload.get("category")
    if not category:
        raise HTTPException(status_code=400, detail="category is required")
    service = get_order_service()
    with _order_errors():
        service.change_category(order_id, str(category).upper())
        return service.order_overview(order_id)


@router.put("/{order_id}/subject/individual")
async def set_individual_subject(order_id: str, payload: dict) -> dict:
    service = get_order_service()
    with _order_errors():
        await service.set_individual_subject(order_id, payload)
        return service.order_overview(order_id)


@router.get("/organisations/suggestions")
async def suggest_organisations(term: str = Query(default="")) -> dict:
    service = get_order_service()
    return {"items": await service.suggest_organisations(term)}


@router.put("/{order_id}/subject/organisation")
async def confirm_organisation(order_id: str, payload: dict) -> dict:
    abn = payload.get("abn")
    name = payload.get("name")
    if not abn or not name:
        raise HTTPException(status_code=400, detail="abn and name are required")
    service = get_order_service()
    with _order_errors():
        await service.confirm_organisation(order_id, str(abn), str(name))
        return service.order_overview(order_id)


@router.delete("/{order_id}/subject/organisation")
async def change_organisation(order_id: str) -> dict:
    service = get_order_service()
    with _order_errors():
        await service.change_organisation(order_id)
        return service.order_overview(order_id)


@router.delete("/{order_id}/subject")
async def reset_subject(order_id: str) -> dict:
    service = get_order_service()
    with _order_errors():
        service.reset_subject(order_id)
        return service.order_overview(order_id)


@router.post("/{order_id}/searches/toggle")
async def toggle_search(order_id: str, payload: dict) -> dict:
    code = payload.get("code")
    if not code:
        raise HTTPException(status_code=400, detail="code is required")
    service = get_order_service()
    with _order_errors():
        change = await service.toggle_search(order_id, str(code), payload.get("group"))
        return {"change": _change(change), "order": service.order_overview(order_id)}


@router.post("/{order_id}/searches/select-all")
async def toggle_select_all(order_id: str, payload: dict) -> dict:
    group = payload.get("group")
    if not group:
        raise HTTPException(status_code=400, detail="group is required")
    service = get_order_service()
    with _order_errors():
        change = await service.toggle_select_all(order_id, str(group))
        return {"change": _change(change), "order": service.order_overview(order_id)}


@router.put("/{order_id}/options/{name}")
async def set_sub_option(order_id: str, name: str, payload: dict) -> dict:
    if "value" not in payload:
        raise HTTPException(status_code=400, detail="value is required")
    service = get_order_service()
    with _order_errors():
        change = await service.set_sub_option(order_id, name, payload["value"])
        return {"change": _change(change), "order": service.order_overview(order_id)}


@router.get("/{order_id}/disambiguation")
async def active_disambiguation(order_id: str) -> dict:
    service = get_order_service()
    with _order_errors():
        return {"session": session_to_dict(service.active_disambiguation(order_id))}


@router.post("/{order_id}/disambiguation/confirm")
async def confirm_disambiguation(order_id: str, payload: dict) -> dict:
    labels = payload.get("labels")
    if not isinstance(labels, list):
        raise HTTPException(status_code=400, detail="labels must be a list")
    service = get_order_service()
    with _order_errors():
        following = await service.confirm_disambiguation(
            order_id, [str(label) for label in labels], payload.get("session_id")
        )
        return {"session": session_to_dict(following), "order": service.order_overview(order_id)}


@router.post("/{order_id}/disambiguation/cancel")
async def cancel_disambiguation(order_id: str, payload: dict | None = None) -> dict:
    service = get_order_service()
    with _order_errors():
        following = await service.cancel_disambiguation(order_id, (payload or {}).get("session_id"))
        return {"session": session_to_dict(following), "order": service.order_overview(order_id)}


@router.post("/{order_id}/disambiguation/reopen")
async def reopen_disambiguation(order_id: str, payload: dict) -> dict:
    kind = payload.get("kind")
    if not kind:
        raise HTTPException(status_code=400, detail="kind is required")
    service = get_order_service()
    with _order_errors():
        session = service.reopen_disambiguation(order_id, str(kind), payload.get("director"))
        return {"session": session_to_dict(session)}


@router.get("/{order_id}/price")
async def price_breakdown(order_id: str) -> dict:
    service = get_order_service()
    with _order_errors():
        return breakdown_to_dict(service.price_breakdown(order_id))


@router.post("/{order_id}/submit")
async def submit_order(order_id: str, payload: dict | None = None) -> dict:
    payload = payload or {}
    service = get_order_service()
    with _order_errors():
        jobs = await service.submit_order(
            order_id, user_id=payload.get("user_id", 0), matter_id=payload.get("matter_id")
        )
        return {"items": [job_to_dict(job) for job in jobs]}


@router.post("/{order_id}/submit/stream")
async def submit_order_stream(order_id: str, payload: dict | None = None) -> StreamingResponse:
    payload = payload or {}
    service = get_order_service()
    events = service.stream_order(order_id, user_id=payload.get("user_id", 0), matter_id=payload.get("matter_id"))
    with _order_errors():
        try:
            first = await events.__anext__()
        except StopAsyncIteration:
            first = None

    async def body() -> AsyncIterator[str]:
        if first is not None:
            yield json.dumps(first) + "\n"
            async for event in events:
                yield json.dumps(event) + "\n"

    return StreamingResponse(body(), media_type="application/x-ndjson")
