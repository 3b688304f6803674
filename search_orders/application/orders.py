"""Application service layer for search orders."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, AsyncIterator

from pydantic import ValidationError as PydanticValidationError

from search_orders.application.disambiguation import DisambiguationEngine, OwnerIdentity
from search_orders.application.sequencer import ModalSequencer, SelectingSearches, SequenceError
from search_orders.core.catalog import CATALOG, SELECT_ALL, Catalog
from search_orders.core.dates import parse_date, to_display
from search_orders.core.name_normalize import split_full_name
from search_orders.core.pricing import compute_total
from search_orders.core.schema import DataAvailability, OfficerRecord
from search_orders.core.selection import SelectionChange, SelectionModel
from search_orders.core.validation import ValidationError, validate_individual, validate_organisation
from search_orders.domain import (
    SUBJECT,
    Director,
    DisambiguationSession,
    OwnerRef,
    PriceBreakdown,
    ReportJob,
    StateTitleCount,
    Subject,
)
from search_orders.infrastructure import (
    InMemoryOrderRepository,
    OrderRepository,
    ProviderError,
    RegistryClient,
    get_registry_client,
)
from search_orders.logging import bind_context
from search_orders.workers.dispatcher import ReportDispatcher

LAND_TITLE_OPTIONS = ("land_title_states", "land_title_detail")


class OrderNotFoundError(LookupError):
    """Raised for an unknown order id."""


@dataclass
class OrderContext:
    """Everything one order holds in memory until it is submitted or reset."""

    order_id: str
    selection: SelectionModel
    sequencer: ModalSequencer
    engine: DisambiguationEngine
    dispatcher: ReportDispatcher
    client: RegistryClient
    title_counts: dict[str, StateTitleCount] = field(default_factory=dict)
    jobs: list[ReportJob] = field(default_factory=list)
    submitting: bool = False

    @property
    def subject(self) -> Subject | None:
        return self.sequencer.subject


def seed_directors(availability: DataAvailability) -> tuple[Director, ...]:
    """Directors of the first ASIC extract, current ones flagged as such."""

    data = availability.data or {}
    rdata = data.get("rdata") if isinstance(data, dict) else None
    extracts = (rdata or {}).get("asic_extracts") or []
    if not extracts or not isinstance(extracts[0], dict):
        return ()

    directors: list[Director] = []
    for row in extracts[0].get("directors") or []:
        if not isinstance(row, dict):
            continue
        try:
            officer = OfficerRecord.model_validate(row)
        except PydanticValidationError:
            continue
        first_name, last_name = split_full_name(officer.name)
        directors.append(
            Director(
                index=len(directors),
                first_name=first_name,
                last_name=last_name,
                dob=to_display(officer.dob) if officer.dob else "",
                status="current" if (officer.status or "").strip().lower() == "current" else "past",
            )
        )
    return tuple(directors)


def _sanitise(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_sanitise(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted(_sanitise(item) for item in value)
    if isinstance(value, dict):
        return {key: _sanitise(val) for key, val in value.items()}
    return value


def session_to_dict(session: DisambiguationSession | None) -> dict[str, Any] | None:
    if session is None:
        return None
    return {
        "session_id": session.session_id,
        "owner": session.owner.key,
        "search_kind": session.search_kind,
        "status": session.status,
        "error_message": session.error_message,
        "candidates": [
            {"label": c.label, "provider": c.provider, "fallback": c.is_fallback} for c in session.candidates
        ],
        "selected": [candidate.label for candidate in session.selected],
    }


def breakdown_to_dict(breakdown: PriceBreakdown) -> dict[str, Any]:
    return _sanitise(asdict(breakdown))


def job_to_dict(job: ReportJob) -> dict[str, Any]:
    return _sanitise(asdict(job))


class OrderService:
    """Coordinates order use cases on top of the in-memory store."""

    def __init__(self, repository: OrderRepository, *, catalog: Catalog = CATALOG) -> None:
        self._repository = repository
        self._catalog = catalog

    # ------------------------------------------------------------------
    # order lifecycle
    # ------------------------------------------------------------------
    def _new_context(self, order_id: str, category: str, client: RegistryClient | None = None) -> OrderContext:
        client = client or get_registry_client()
        selection = SelectionModel(category, self._catalog)
        engine = DisambiguationEngine(client)
        sequencer = ModalSequencer(selection, engine, catalog=self._catalog, order_id=order_id)
        dispatcher = ReportDispatcher(client, catalog=self._catalog)
        return OrderContext(order_id, selection, sequencer, engine, dispatcher, client)

    def create_order(self, category: str = "ORGANISATION") -> str:
        order_id = self._repository.next_order_id()
        self._repository.save(order_id, self._new_context(order_id, category))
        bind_context(order_id=order_id).info("order_created", category=category)
        return order_id

    def context(self, order_id: str) -> OrderContext:
        context = self._repository.get(order_id)
        if context is None:
            raise OrderNotFoundError(order_id)
        return context

    def list_orders(self) -> list[str]:
        return self._repository.list_orders()

    def change_category(self, order_id: str, category: str) -> None:
        """Switching category discards the whole order state."""

        self.context(order_id)
        self._repository.save(order_id, self._new_context(order_id, category))

    def reset_subject(self, order_id: str) -> None:
        context = self.context(order_id)
        self._repository.save(order_id, self._new_context(order_id, context.selection.category))

    # ------------------------------------------------------------------
    # subject
    # ------------------------------------------------------------------
    async def set_individual_subject(self, order_id: str, payload: dict[str, Any]) -> None:
        context = self.context(order_id)
        if context.selection.category == "ORGANISATION":
            raise ValidationError("an organisation order needs an organisation subject")
        current = context.subject
        if current is not None and current.confirmed:
            raise ValidationError("the subject is confirmed; reset it to change the identity")

        dob_raw = payload.get("dob") or payload.get("date_of_birth")
        dob = None
        if dob_raw:
            if parse_date(str(dob_raw)) is None:
                raise ValidationError("date of birth must be DD/MM/YYYY")
            dob = to_display(str(dob_raw))
        subject = Subject(
            kind="individual",
            first_name=str(payload.get("first_name") or "").strip(),
            middle_name=str(payload.get("middle_name") or "").strip(),
            last_name=str(payload.get("last_name") or "").strip(),
            dob=dob,
            birth_year_from=_year(payload.get("birth_year_from")),
            birth_year_to=_year(payload.get("birth_year_to")),
        )
        validate_individual(subject)
        context.sequencer.set_subject(subject)
        context.title_counts.clear()
        await self._refresh_title_counts(context)
        await context.sequencer.next()

    async def suggest_organisations(self, term: str, client: RegistryClient | None = None) -> list[dict[str, Any]]:
        term = (term or "").strip()
        if len(term) < 2:
            return []
        client = client or get_registry_client()
        try:
            suggestions = await client.search_organisation_by_name(term)
        except ProviderError as exc:
            bind_context(term=term).warning("organisation_lookup_failed", error=str(exc))
            return []
        return [suggestion.model_dump() for suggestion in suggestions]

    async def confirm_organisation(self, order_id: str, abn: str, name: str) -> tuple[Director, ...]:
        context = self.context(order_id)
        if context.selection.category == "INDIVIDUAL":
            raise ValidationError("an individual order needs an individual subject")
        digits = validate_organisation(abn, name)
        current = context.subject
        if current is not None and current.confirmed:
            raise ValidationError("an organisation is already confirmed; change it first")

        subject = Subject(kind="organisation", abn=digits, name=name.strip(), confirmed=True)
        context.sequencer.set_subject(subject)
        directors: tuple[Director, ...] = ()
        if context.selection.category == "ORGANISATION":
            try:
                availability = await context.client.check_data_availability(digits, "asic-current")
            except ProviderError as exc:
                bind_context(order_id=order_id).warning("officer_extract_failed", error=str(exc))
            else:
                directors = seed_directors(availability)
        context.sequencer.set_directors(directors)
        bind_context(order_id=order_id).info(
            "organisation_confirmed",
            abn=digits,
            directors=len(directors),
            current=len(context.sequencer.current_directors),
        )
        context.title_counts.clear()
        await self._refresh_title_counts(context)
        await context.sequencer.next()
        return directors

    async def change_organisation(self, order_id: str) -> None:
        context = self.context(order_id)
        context.sequencer.set_subject(None)
        context.sequencer.clear_directors()
        if "additional" in self._catalog.groups_for(context.selection.category):
            context.selection.clear_group("additional")
        context.title_counts.clear()
        await context.sequencer.next()

    # ------------------------------------------------------------------
    # selection
    # ------------------------------------------------------------------
    async def _apply(self, context: OrderContext, change: SelectionChange, *, refresh_counts: bool = True) -> SelectionChange:
        if context.submitting:
            raise ValidationError("the order is being submitted")
        await context.sequencer.sync(change)
        if refresh_counts:
            await self._refresh_title_counts(context)
        return change

    async def toggle_search(self, order_id: str, code: str, group: str | None = None) -> SelectionChange:
        context = self.context(order_id)
        if code == SELECT_ALL:
            return await self.toggle_select_all(order_id, group or "")
        return await self._apply(context, context.selection.toggle(code, group))

    async def toggle_select_all(self, order_id: str, group: str) -> SelectionChange:
        context = self.context(order_id)
        return await self._apply(context, context.selection.toggle_select_all(group))

    async def set_sub_option(self, order_id: str, name: str, value: Any) -> SelectionChange:
        context = self.context(order_id)
        change = context.selection.set_sub_option(name, value)
        return await self._apply(context, change, refresh_counts=name in LAND_TITLE_OPTIONS)

    # ------------------------------------------------------------------
    # disambiguation
    # ------------------------------------------------------------------
    def active_disambiguation(self, order_id: str) -> DisambiguationSession | None:
        return self.context(order_id).sequencer.active

    def _session_id(self, context: OrderContext, session_id: str | None) -> str:
        if session_id:
            return session_id
        active = context.sequencer.active
        if active is None:
            raise SequenceError("no dialog is open")
        return active.session_id

    async def confirm_disambiguation(
        self, order_id: str, labels: list[str], session_id: str | None = None
    ) -> DisambiguationSession | None:
        context = self.context(order_id)
        session_id = self._session_id(context, session_id)
        following = await context.sequencer.confirm(session_id, labels)
        await self._refresh_title_counts(context)
        return following

    async def cancel_disambiguation(self, order_id: str, session_id: str | None = None) -> DisambiguationSession | None:
        context = self.context(order_id)
        return await context.sequencer.cancel(self._session_id(context, session_id))

    def reopen_disambiguation(self, order_id: str, kind: str, director: int | None = None) -> DisambiguationSession:
        context = self.context(order_id)
        owner = SUBJECT if director is None else OwnerRef("director", int(director))
        return context.sequencer.reopen(kind, owner)

    # ------------------------------------------------------------------
    # pricing
    # ------------------------------------------------------------------
    def price_breakdown(self, order_id: str) -> PriceBreakdown:
        context = self.context(order_id)
        resolved = context.sequencer.resolved_state(context.title_counts)
        return compute_total(context.selection.snapshot, resolved, self._catalog)

    async def _refresh_title_counts(self, context: OrderContext) -> None:
        """Fetch title counts for chosen states that have none yet."""

        snapshot = context.selection.snapshot
        subject = context.subject
        if subject is None or not subject.has_identity:
            return
        wanted = any(
            entry.pricing == "jurisdiction" and not entry.per_director and snapshot.is_selected(entry.code)
            for entry in self._catalog.entries
            if entry.category == snapshot.category
        )
        missing = tuple(state for state in snapshot.land_title_states if state not in context.title_counts)
        if not wanted or not missing:
            return
        counts = await context.engine.title_counts(
            missing,
            identity=OwnerIdentity.from_subject(subject),
            detail=snapshot.land_title_detail,
            order_id=context.order_id,
        )
        context.title_counts.update(counts)

    # ------------------------------------------------------------------
    # overview
    # ------------------------------------------------------------------
    def order_overview(self, order_id: str) -> dict[str, Any]:
        context = self.context(order_id)
        snapshot = context.selection.snapshot
        sequencer = context.sequencer
        state = sequencer.wizard_state(submitting=context.submitting)
        groups = self._catalog.groups_for(snapshot.category)
        wizard: dict[str, Any] = {"state": state.name}
        if isinstance(state, SelectingSearches):
            wizard.update({"pending": list(state.pending), "blocked_reason": state.blocked_reason})
        return _sanitise(
            {
                "order_id": order_id,
                "category": snapshot.category,
                "subject": asdict(context.subject) if context.subject else None,
                "directors": [asdict(director) for director in sequencer.directors],
                "selection": {
                    "groups": {group: snapshot.codes(group, self._catalog) for group in groups},
                    "pending": snapshot.pending,
                    "court_type": snapshot.court_type,
                    "land_title_detail": snapshot.land_title_detail,
                    "land_title_states": snapshot.land_title_states,
                    "add_on": snapshot.add_on,
                    "title_reference": snapshot.title_reference,
                    "property_address": snapshot.property_address,
                },
                "visible": {
                    group: [entry.code for entry in context.selection.visible(group)] for group in groups
                },
                "stage": sequencer.stage.value,
                "wizard": wizard,
                "active_session": session_to_dict(sequencer.active),
                "price": breakdown_to_dict(self.price_breakdown(order_id)),
                "jobs": [job_to_dict(job) for job in context.jobs],
            }
        )

    # ------------------------------------------------------------------
    # submission
    # ------------------------------------------------------------------
    def _prepare_jobs(self, context: OrderContext, *, user_id: int | str, matter_id: int | str | None) -> list[ReportJob]:
        sequencer = context.sequencer
        snapshot = context.selection.snapshot
        if sequencer.active is not None:
            raise ValidationError("finish the open confirmation dialog first")
        if snapshot.pending or sequencer.blocked_reason:
            raise ValidationError(sequencer.blocked_reason or "some searches still need confirmation")
        if not snapshot.active():
            raise ValidationError("select at least one search")
        resolved = sequencer.resolved_state(context.title_counts)
        jobs = context.dispatcher.build_jobs(snapshot, resolved, user_id=user_id, matter_id=matter_id)
        if not jobs:
            raise ValidationError("the selected searches produce no reports")
        context.jobs = jobs
        return jobs

    async def stream_order(
        self, order_id: str, *, user_id: int | str = 0, matter_id: int | str | None = None
    ) -> AsyncIterator[dict[str, Any]]:
        context = self.context(order_id)
        jobs = self._prepare_jobs(context, user_id=user_id, matter_id=matter_id)
        context.submitting = True
        try:
            async for event in context.dispatcher.run(jobs, order_id=order_id):
                yield event
        finally:
            context.submitting = False

    async def submit_order(
        self, order_id: str, *, user_id: int | str = 0, matter_id: int | str | None = None
    ) -> list[ReportJob]:
        async for _ in self.stream_order(order_id, user_id=user_id, matter_id=matter_id):
            pass
        return list(self.context(order_id).jobs)

    # ------------------------------------------------------------------
    # testing helpers
    # ------------------------------------------------------------------
    def reset(self) -> None:
        self._repository.reset()


def _year(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        year = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"invalid birth year '{value}'") from None
    if year < 1900 or year > 2100:
        raise ValidationError(f"invalid birth year '{value}'")
    return year


_repository = InMemoryOrderRepository()
_service = OrderService(_repository)


def get_order_service() -> OrderService:
    """Return the singleton order service for the process."""

    return _service


def reset_order_state() -> None:
    """Reset the in-memory store (used in tests)."""

    _service.reset()
