"""Domain layer exports."""

from .orders import (
    CATEGORIES,
    FALLBACK_KEY,
    SUBJECT,
    CatalogEntry,
    Director,
    DirectorSlot,
    DisambiguationSession,
    MatchCandidate,
    OwnerRef,
    PriceBreakdown,
    PriceLine,
    ReportJob,
    ResolvedState,
    StateTitleCount,
    Subject,
)

__all__ = [
    "CATEGORIES",
    "FALLBACK_KEY",
    "SUBJECT",
    "CatalogEntry",
    "Director",
    "DirectorSlot",
    "DisambiguationSession",
    "MatchCandidate",
    "OwnerRef",
    "PriceBreakdown",
    "PriceLine",
    "ReportJob",
    "ResolvedState",
    "StateTitleCount",
    "Subject",
]
