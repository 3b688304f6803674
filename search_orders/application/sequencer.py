"""Decides which disambiguation dialog runs next and applies its outcome.

Stages run in a fixed priority order: bankruptcy, related entities, court
(criminal before civil), land title.  ``next()`` scans that order and opens
the first stage whose search kind is selected but not yet settled for every
owner.  Director-scoped kinds are walked one director at a time through a
:class:`DirectorIterator` before control returns to the scan.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from search_orders.application.directors import DirectorIterator
from search_orders.application.disambiguation import DisambiguationEngine, OwnerIdentity
from search_orders.core.catalog import CATALOG, Catalog
from search_orders.core.selection import SelectionChange, SelectionModel
from search_orders.core.validation import ValidationError
from search_orders.domain import (
    SUBJECT,
    CatalogEntry,
    Director,
    DisambiguationSession,
    OwnerRef,
    ResolvedState,
    StateTitleCount,
    Subject,
)
from search_orders.logging import bind_context, stage_entered


class SequenceError(RuntimeError):
    """A dialog action arrived for a session that is not the open one."""


class Stage(str, Enum):
    IDLE = "IDLE"
    BANKRUPTCY = "BANKRUPTCY"
    RELATED = "RELATED"
    COURT_CRIMINAL = "COURT_CRIMINAL"
    COURT_CIVIL = "COURT_CIVIL"
    LAND_TITLE = "LAND_TITLE"
    DONE = "DONE"


STAGE_ORDER = (Stage.BANKRUPTCY, Stage.RELATED, Stage.COURT_CRIMINAL, Stage.COURT_CIVIL, Stage.LAND_TITLE)

STAGE_KINDS = {
    Stage.BANKRUPTCY: "bankruptcy",
    Stage.RELATED: "related",
    Stage.COURT_CRIMINAL: "court_criminal",
    Stage.COURT_CIVIL: "court_civil",
    Stage.LAND_TITLE: "land_title",
}
KIND_STAGES = {kind: stage for stage, kind in STAGE_KINDS.items()}


def _identity_of(subject: Subject | None) -> tuple | None:
    if subject is None:
        return None
    names = (subject.first_name, subject.middle_name, subject.last_name, subject.name or "")
    return (
        subject.kind,
        subject.abn,
        tuple(" ".join(name.upper().split()) for name in names),
        subject.dob,
        subject.birth_year_from,
        subject.birth_year_to,
    )


def kinds_for(entry: CatalogEntry, court_type: str = "ALL") -> tuple[str, ...]:
    """Search kinds an entry needs settled, given the court-type filter."""

    if entry.stage is None:
        return ()
    if entry.stage == "COURT":
        if court_type == "CRIMINAL":
            return ("court_criminal",)
        if court_type == "CIVIL":
            return ("court_civil",)
        return ("court_criminal", "court_civil")
    return (entry.stage.lower(),)


# ----------------------------------------------------------------------
# wizard state
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class Idle:
    name: str = "idle"


@dataclass(frozen=True)
class SelectingSearches:
    pending: tuple[str, ...] = ()
    blocked_reason: str | None = None
    name: str = "selecting_searches"


@dataclass(frozen=True)
class AwaitingDisambiguation:
    session: DisambiguationSession
    name: str = "awaiting_disambiguation"


@dataclass(frozen=True)
class Pricing:
    name: str = "pricing"


@dataclass(frozen=True)
class Submitting:
    name: str = "submitting"


WizardState = Idle | SelectingSearches | AwaitingDisambiguation | Pricing | Submitting


class ModalSequencer:
    """Owns the open dialog, the retained sessions and the director runs."""

    def __init__(
        self,
        selection: SelectionModel,
        engine: DisambiguationEngine,
        *,
        catalog: Catalog = CATALOG,
        order_id: str | None = None,
    ) -> None:
        self._selection = selection
        self._engine = engine
        self._catalog = catalog
        self._order_id = order_id
        self.subject: Subject | None = None
        self._directors: tuple[Director, ...] = ()
        self._iterator = DirectorIterator(order_id=order_id)
        self._sessions: dict[tuple[str, str], DisambiguationSession] = {}
        self._active: DisambiguationSession | None = None
        self._counter = 0
        self.stage = Stage.IDLE
        self.blocked_reason: str | None = None

    # ------------------------------------------------------------------
    # accessors
    # ------------------------------------------------------------------
    @property
    def active(self) -> DisambiguationSession | None:
        return self._active

    @property
    def directors(self) -> tuple[Director, ...]:
        return self._directors

    @property
    def current_directors(self) -> tuple[Director, ...]:
        return self._iterator.directors

    def session(self, kind: str, owner: OwnerRef = SUBJECT) -> DisambiguationSession | None:
        return self._sessions.get((owner.key, kind))

    def sessions(self) -> list[DisambiguationSession]:
        return list(self._sessions.values())

    def wizard_state(self, *, submitting: bool = False) -> WizardState:
        if submitting:
            return Submitting()
        if self._active is not None:
            return AwaitingDisambiguation(self._active)
        snapshot = self._selection.snapshot
        if self.blocked_reason or snapshot.pending:
            return SelectingSearches(tuple(sorted(snapshot.pending)), self.blocked_reason)
        if not snapshot.active():
            return Idle()
        return Pricing()

    def resolved_state(self, title_counts: dict[str, StateTitleCount] | None = None) -> ResolvedState:
        subject_matches = {}
        skipped: set[str] = set()
        for (owner_key, kind), session in self._sessions.items():
            if owner_key != SUBJECT.key:
                continue
            if session.status == "resolved":
                subject_matches[kind] = tuple(session.selected)
            elif session.status == "skipped":
                skipped.add(kind)
        return ResolvedState(
            subject=self.subject,
            directors=self._iterator.directors,
            subject_matches=subject_matches,
            skipped_kinds=frozenset(skipped),
            director_slots=self._iterator.runs(),
            title_counts=dict(title_counts or {}),
        )

    # ------------------------------------------------------------------
    # subject and directors
    # ------------------------------------------------------------------
    def set_subject(self, subject: Subject | None) -> None:
        """Install the subject; a different identity sends its dialogs back to confirmation."""

        previous = self.subject
        self.subject = subject
        if previous is not None and _identity_of(previous) != _identity_of(subject):
            self._discard_subject_sessions()

    def _discard_subject_sessions(self) -> None:
        for key in [key for key in self._sessions if key[0] == SUBJECT.key]:
            del self._sessions[key]
        if self._active is not None and self._active.owner == SUBJECT:
            self._active = None
        snapshot = self._selection.snapshot
        for entry in self._selected_entries():
            if entry.per_director:
                continue
            if entry.interactive and snapshot.is_active(entry.code):
                self._selection.restage(entry.code)
            elif entry.stage == "PPSR":
                self.record_silent(entry)
        bind_context(order_id=self._order_id).info("subject_sessions_discarded")
        self._enter(Stage.IDLE)

    def set_directors(self, directors: tuple[Director, ...]) -> None:
        """Install the officer list once; only current directors are walked."""

        self._directors = directors
        current = tuple(director for director in directors if director.status == "current")
        self._iterator = DirectorIterator(current, order_id=self._order_id)
        self._drop_director_sessions()
        for entry in self._selected_entries():
            if entry.per_director and entry.stage == "PPSR":
                self._iterator.record_null("ppsr")

    def clear_directors(self) -> None:
        self._directors = ()
        self._iterator = DirectorIterator(order_id=self._order_id)
        self._drop_director_sessions()
        if self._active is not None and self._active.owner.kind == "director":
            self._active = None

    def _drop_director_sessions(self) -> None:
        for key in [key for key in self._sessions if key[0] != SUBJECT.key]:
            del self._sessions[key]

    # ------------------------------------------------------------------
    # selection hooks
    # ------------------------------------------------------------------
    async def sync(self, change: SelectionChange) -> DisambiguationSession | None:
        """React to a selection mutation, then re-evaluate the next stage."""

        for code in change.added:
            entry = self._catalog.entry(code)
            if entry.stage == "PPSR":
                self.record_silent(entry)
        for code in change.staged:
            self.rearm(code)
        return await self.next()

    def record_silent(self, entry: CatalogEntry) -> None:
        """Store a lookup that needs no dialog as resolved with no candidates."""

        kind = entry.stage.lower() if entry.stage else entry.code.lower()
        if entry.per_director:
            self._iterator.record_null(kind)
            return
        self._sessions[(SUBJECT.key, kind)] = DisambiguationSession(
            session_id=self._next_id(), owner=SUBJECT, search_kind=kind, status="resolved"
        )

    def rearm(self, code: str) -> None:
        """Send a re-toggled entry's retained sessions back for confirmation."""

        entry = self._catalog.entry(code)
        for kind in kinds_for(entry, self._selection.snapshot.court_type):
            if entry.per_director:
                self._iterator.restart(kind)
                for (owner_key, session_kind), session in self._sessions.items():
                    if owner_key != SUBJECT.key and session_kind == kind and session.settled:
                        session.status = "pending"
                continue
            session = self._sessions.get((SUBJECT.key, kind))
            if session is not None and session.settled:
                session.status = "pending"

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------
    async def next(self) -> DisambiguationSession | None:
        if self._active is not None:
            if self._needed(self._active.search_kind):
                return self._active
            self._active = None

        self.blocked_reason = None
        for stage in STAGE_ORDER:
            kind = STAGE_KINDS[stage]
            entries = self._interactive_entries(kind)
            if not entries:
                continue
            owner, blocked = self._next_owner(kind, entries)
            if blocked:
                self.blocked_reason = blocked
                self._enter(Stage.IDLE)
                return None
            if owner is None:
                self._finalise(kind)
                continue
            self._enter(stage)
            return await self._open(owner, kind)

        if not self._selection.snapshot.active() and not self._selection.snapshot.pending:
            self._enter(Stage.IDLE)
            return None
        self._enter(Stage.DONE)
        if self.subject is not None and self.subject.has_identity:
            self.subject.confirmed = True
        return None

    async def confirm(self, session_id: str, labels: list[str]) -> DisambiguationSession | None:
        session = self._require_active(session_id)
        if session.status == "loading":
            raise SequenceError("the dialog is still loading")
        if not labels:
            raise ValidationError("choose at least one candidate to confirm")
        offered = {candidate.label for candidate in session.candidates}
        unknown = [label for label in labels if label not in offered]
        if unknown:
            raise ValidationError(f"unknown candidate(s): {', '.join(unknown)}")
        chosen = set(labels)
        session.selected = [candidate for candidate in session.candidates if candidate.label in chosen]
        session.status = "resolved"
        return await self._settle(session)

    async def cancel(self, session_id: str) -> DisambiguationSession | None:
        session = self._require_active(session_id)
        session.status = "skipped"
        return await self._settle(session)

    def reopen(self, kind: str, owner: OwnerRef = SUBJECT) -> DisambiguationSession:
        """Make a confirmed session active again with its choice pre-selected."""

        if self._active is not None:
            raise SequenceError("another dialog is open")
        session = self._sessions.get((owner.key, kind))
        if session is None or session.status != "resolved" or not session.candidates:
            raise SequenceError(f"no confirmed '{kind}' dialog to reopen")
        if not self._needed(kind):
            raise SequenceError(f"'{kind}' is no longer selected")
        session.status = "pending"
        self._active = session
        self._enter(KIND_STAGES[kind])
        return session

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    def _next_id(self) -> str:
        self._counter += 1
        return f"session-{self._counter:04d}"

    def _enter(self, stage: Stage) -> None:
        if stage != self.stage or self._active is not None:
            owner = self._active.owner.key if self._active is not None else None
            stage_entered(stage.value, self._order_id, owner)
        self.stage = stage

    def _selected_entries(self) -> list[CatalogEntry]:
        snapshot = self._selection.snapshot
        return [
            entry
            for entry in self._catalog.entries
            if entry.category == snapshot.category and snapshot.is_selected(entry.code)
        ]

    def _interactive_entries(self, kind: str) -> list[CatalogEntry]:
        court_type = self._selection.snapshot.court_type
        return [
            entry
            for entry in self._selected_entries()
            if entry.interactive and kind in kinds_for(entry, court_type)
        ]

    def _needed(self, kind: str) -> bool:
        return bool(self._interactive_entries(kind))

    def _next_owner(self, kind: str, entries: list[CatalogEntry]) -> tuple[OwnerRef | None, str | None]:
        if kind == "land_title" and not self._selection.snapshot.land_title_states:
            return None, "choose at least one jurisdiction for the land title search"

        if any(not entry.per_director for entry in entries):
            if self.subject is None or not self.subject.has_identity:
                return None, "enter the subject's details before confirming searches"
            session = self._sessions.get((SUBJECT.key, kind))
            if session is None or not session.settled:
                return SUBJECT, None

        if any(entry.per_director for entry in entries):
            subject = self.subject
            if subject is None or subject.kind != "organisation" or not subject.confirmed:
                return None, "confirm the organisation before running director searches"
            director = self._iterator.start(kind)
            if director is not None:
                return OwnerRef("director", director.index), None
        return None, None

    def _identity(self, owner: OwnerRef) -> OwnerIdentity:
        if owner.kind == "director":
            for director in self._iterator.directors:
                if director.index == owner.index:
                    return OwnerIdentity.from_director(director)
            raise SequenceError(f"unknown director {owner.index}")
        if self.subject is None:
            raise SequenceError("no subject to search for")
        return OwnerIdentity.from_subject(self.subject)

    async def _open(self, owner: OwnerRef, kind: str) -> DisambiguationSession | None:
        key = (owner.key, kind)
        existing = self._sessions.get(key)
        if existing is not None and existing.status in ("pending", "error") and existing.candidates:
            self._active = existing
            return existing

        session = DisambiguationSession(
            session_id=self._next_id(),
            owner=owner,
            search_kind=kind,
            selected=list(existing.selected) if existing is not None else [],
            status="loading",
        )
        self._sessions[key] = session
        self._active = session

        result = await self._engine.fetch(
            self._identity(owner),
            kind,
            states=self._selection.snapshot.land_title_states,
            order_id=self._order_id,
        )
        if self._active is not session:
            bind_context(order_id=self._order_id, session=session.session_id).info("stale_response_ignored")
            return self._active

        session.candidates = list(result.candidates)
        session.selected = [candidate for candidate in session.selected if candidate in session.candidates]
        session.error_message = result.error
        session.status = "error" if result.fell_back and result.error else "pending"
        return session

    def _require_active(self, session_id: str) -> DisambiguationSession:
        if self._active is None:
            raise SequenceError("no dialog is open")
        if self._active.session_id != session_id:
            raise SequenceError(f"session {session_id} is not the open dialog")
        return self._active

    async def _settle(self, session: DisambiguationSession) -> DisambiguationSession | None:
        kind = session.search_kind
        self._active = None
        if session.owner.kind == "director":
            if session.owner.index is None:
                raise SequenceError(f"director session {session.session_id} has no director index")
            if not self._iterator.started(kind):
                self._iterator.start(kind)
            matches = tuple(session.selected) if session.status == "resolved" else None
            following = self._iterator.advance(kind, session.owner.index, matches)
            if following is not None and self._needed(kind):
                return await self._open(OwnerRef("director", following.index), kind)
        self._finalise(kind)
        return await self.next()

    def _finalise(self, kind: str) -> None:
        """Activate or drop the staged entries of ``kind`` once all owners settled."""

        court_type = self._selection.snapshot.court_type
        for entry in self._interactive_entries(kind):
            kinds = kinds_for(entry, court_type)
            snapshot = self._selection.snapshot
            if entry.per_director:
                if all(self._iterator.completed(item) for item in kinds) and entry.code in snapshot.pending:
                    self._selection.activate(entry.code)
                continue
            sessions = [self._sessions.get((SUBJECT.key, item)) for item in kinds]
            if any(session is None or not session.settled for session in sessions):
                continue
            if all(session.status == "skipped" for session in sessions if session is not None):
                bind_context(order_id=self._order_id, kind=kind).info("entry_deselected", code=entry.code)
                self._selection.deselect(entry.code)
            elif entry.code in snapshot.pending:
                self._selection.activate(entry.code)
