"""Domain entities for search orders."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Literal

Category = Literal["ORGANISATION", "INDIVIDUAL", "LAND TITLE"]
SessionStatus = Literal["pending", "loading", "resolved", "skipped", "error"]
SlotStatus = Literal["pending", "resolved", "skipped", "auto_skipped"]
JobStatus = Literal["queued", "processing", "done", "error"]

CATEGORIES: tuple[str, ...] = ("ORGANISATION", "INDIVIDUAL", "LAND TITLE")
FALLBACK_KEY = "typed-identity"


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """One orderable search item."""

    code: str
    category: str
    group: str
    display_name: str
    base_price: Decimal
    pricing: str = "flat"
    stage: str | None = None
    per_director: bool = False
    report_type: str | None = None
    excludes: tuple[str, ...] = ()
    hidden_by: tuple[str, ...] = ()

    @property
    def interactive(self) -> bool:
        """PPSR lookups resolve without a dialog."""

        return self.stage is not None and self.stage != "PPSR"


@dataclass(slots=True)
class Subject:
    """The organisation or individual being searched."""

    kind: Literal["organisation", "individual"]
    abn: str | None = None
    name: str | None = None
    first_name: str = ""
    middle_name: str = ""
    last_name: str = ""
    dob: str | None = None
    birth_year_from: int | None = None
    birth_year_to: int | None = None
    confirmed: bool = False

    @property
    def full_name(self) -> str:
        if self.kind == "organisation":
            return (self.name or "").strip()
        parts = [self.first_name, self.middle_name, self.last_name]
        return " ".join(part.strip() for part in parts if part and part.strip())

    @property
    def has_identity(self) -> bool:
        if self.kind == "organisation":
            return bool(self.abn)
        return bool(self.last_name.strip())


@dataclass(frozen=True, slots=True)
class Director:
    index: int
    first_name: str
    last_name: str
    dob: str = ""
    status: Literal["current", "past"] = "current"

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


@dataclass(frozen=True, slots=True)
class OwnerRef:
    """Who a disambiguation session belongs to: the subject or one director."""

    kind: Literal["subject", "director"] = "subject"
    index: int | None = None

    @property
    def key(self) -> str:
        return "subject" if self.kind == "subject" else f"director:{self.index}"


SUBJECT = OwnerRef()


@dataclass(frozen=True, slots=True)
class MatchCandidate:
    provider: str
    label: str
    identity_key: str
    raw_record: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def is_fallback(self) -> bool:
        return self.identity_key == FALLBACK_KEY


@dataclass(slots=True)
class DisambiguationSession:
    session_id: str
    owner: OwnerRef
    search_kind: str
    candidates: list[MatchCandidate] = field(default_factory=list)
    selected: list[MatchCandidate] = field(default_factory=list)
    status: SessionStatus = "pending"
    error_message: str | None = None

    @property
    def settled(self) -> bool:
        return self.status in ("resolved", "skipped")


@dataclass(frozen=True, slots=True)
class DirectorSlot:
    """Immutable snapshot of one director's outcome for a search kind."""

    director: Director
    status: SlotStatus = "pending"
    matches: tuple[MatchCandidate, ...] | None = None


@dataclass(frozen=True, slots=True)
class StateTitleCount:
    state: str
    current: int | None = None
    historical: int | None = None
    current_references: tuple[str, ...] = ()
    historical_references: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PriceLine:
    description: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal


@dataclass(frozen=True, slots=True)
class PriceBreakdown:
    lines: tuple[PriceLine, ...] = ()
    total: Decimal = Decimal("0.00")


@dataclass(slots=True)
class ReportJob:
    job_id: str
    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    status: JobStatus = "queued"
    result_ref: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ResolvedState:
    """What the dialogs settled, as read by pricing and job building.

    ``subject_matches`` holds the confirmed candidates of every resolved
    subject session by search kind; ``director_slots`` the per-director
    outcome of each director run.  ``directors`` are the current directors.
    """

    subject: Subject | None = None
    directors: tuple[Director, ...] = ()
    subject_matches: dict[str, tuple[MatchCandidate, ...]] = field(default_factory=dict)
    skipped_kinds: frozenset[str] = frozenset()
    director_slots: dict[str, tuple[DirectorSlot, ...]] = field(default_factory=dict)
    title_counts: dict[str, StateTitleCount] = field(default_factory=dict)
