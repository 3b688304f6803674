from __future__ import annotations

import asyncio
from dataclasses import asdict
from typing import Any, AsyncIterator

from search_orders.core.catalog import CATALOG, Catalog
from search_orders.core.selection import Selection
from search_orders.core.titles import Flat, title_references
from search_orders.domain import CatalogEntry, Director, MatchCandidate, ReportJob, ResolvedState, Subject
from search_orders.infrastructure import ProviderError, RegistryClient
from search_orders.logging import bind_context, job_finished


class JobError(RuntimeError):
    """A report job failed; recorded on the job, never raised out of a batch."""

    def __init__(self, job: ReportJob, cause: Exception) -> None:
        super().__init__(f"{job.type} report failed: {cause}")
        self.job = job
        self.cause = cause


def _business(subject: Subject | None, category: str) -> dict[str, Any]:
    if subject is None:
        return {"isCompany": category}
    if subject.kind == "organisation":
        return {"Abn": subject.abn, "Name": subject.name or "Unknown", "isCompany": "ORGANISATION"}
    return {
        "fname": subject.first_name,
        "mname": subject.middle_name or None,
        "lname": subject.last_name,
        "dob": subject.dob,
        "startYear": subject.birth_year_from,
        "endYear": subject.birth_year_to,
        "isCompany": "INDIVIDUAL",
    }


def _director_business(subject: Subject | None, director: Director) -> dict[str, Any]:
    business = _business(subject, "ORGANISATION")
    business.update({"fname": director.first_name, "lname": director.last_name, "dob": director.dob})
    return business


def _match_payload(match: MatchCandidate | None) -> dict[str, Any] | None:
    if match is None:
        return None
    return {"label": match.label, "identityKey": match.identity_key, "record": dict(match.raw_record)}


def _court_report(entry: CatalogEntry, selection: Selection, resolved: ResolvedState) -> str:
    base = entry.report_type or "director-court"
    if selection.court_type == "CRIMINAL":
        return f"{base}-criminal"
    if selection.court_type == "CIVIL":
        return f"{base}-civil"
    criminal = "court_criminal" not in resolved.skipped_kinds
    civil = "court_civil" not in resolved.skipped_kinds
    if criminal and not civil:
        return f"{base}-criminal"
    if civil and not criminal:
        return f"{base}-civil"
    return base


def _api_matches(matches: tuple[MatchCandidate, ...] | None) -> list[MatchCandidate | None]:
    api = [match for match in matches or () if not match.is_fallback]
    return list(api) or [None]


def _land_title_fields(entry: CatalogEntry, selection: Selection, resolved: ResolvedState, state: str) -> dict[str, Any]:
    fields: dict[str, Any] = {"state": state, "addOn": selection.add_on}
    if entry.pricing == "title":
        fields["titleReference"] = selection.title_reference
        fields["address"] = selection.property_address
        return fields
    refs = title_references(selection.land_title_detail, resolved.title_counts.get(state))
    fields["detail"] = selection.land_title_detail
    if isinstance(refs, Flat):
        fields["titleReferences"] = list(refs.items)
    else:
        fields["titleReferences"] = {"current": list(refs.current), "historical": list(refs.historical)}
    return fields


def build_jobs(
    selection: Selection,
    resolved: ResolvedState,
    catalog: Catalog = CATALOG,
    *,
    user_id: int | str = 0,
    matter_id: int | str | None = None,
) -> list[ReportJob]:
    """One job per billed unit of every active entry, in catalog order."""

    jobs: list[ReportJob] = []

    def add(report_type: str, business: dict[str, Any], **extra: Any) -> None:
        payload: dict[str, Any] = {
            "type": report_type,
            "userId": user_id,
            "matterId": matter_id,
            "ispdfcreate": True,
            "business": {key: value for key, value in business.items() if value is not None},
        }
        payload.update(extra)
        jobs.append(ReportJob(job_id=f"job-{len(jobs) + 1:05d}", type=report_type, payload=payload))

    subject = resolved.subject
    for entry in catalog.entries:
        if entry.category != selection.category or not selection.is_active(entry.code):
            continue
        if entry.pricing == "asic" or not entry.report_type:
            continue
        report_type = entry.report_type
        if entry.stage == "COURT":
            report_type = _court_report(entry, selection, resolved)
        kind = entry.stage.lower() if entry.stage else None

        if entry.per_director:
            slots = resolved.director_slots.get(kind) if kind else None
            if slots is None:
                owners = [(director, None) for director in resolved.directors]
            else:
                owners = [
                    (slot.director, slot.matches)
                    for slot in slots
                    if slot.status in ("resolved", "pending")
                ]
            for director, matches in owners:
                business = _director_business(subject, director)
                if entry.pricing == "per_match":
                    for match in _api_matches(matches):
                        add(report_type, business, directorIndex=director.index, match=_match_payload(match))
                elif entry.pricing == "jurisdiction":
                    for state in selection.land_title_states:
                        fields = _land_title_fields(entry, selection, resolved, state)
                        add(report_type, business, directorIndex=director.index, **fields)
                else:
                    add(report_type, business, directorIndex=director.index)
            continue

        business = _business(subject, selection.category)
        if entry.pricing == "per_match":
            for match in _api_matches(resolved.subject_matches.get(kind or "")):
                add(report_type, business, match=_match_payload(match))
        elif entry.pricing in ("jurisdiction", "title"):
            for state in selection.land_title_states:
                add(report_type, business, **_land_title_fields(entry, selection, resolved, state))
        else:
            add(report_type, business)
    return jobs


class ReportDispatcher:
    """Runs report jobs one after another and reports each status change."""

    def __init__(self, client: RegistryClient, *, catalog: Catalog = CATALOG) -> None:
        self._client = client
        self._catalog = catalog
        self._lock = asyncio.Lock()

    def build_jobs(self, selection: Selection, resolved: ResolvedState, **context: Any) -> list[ReportJob]:
        return build_jobs(selection, resolved, self._catalog, **context)

    @staticmethod
    def _event(job: ReportJob, position: int, total: int) -> dict[str, Any]:
        event = asdict(job)
        event.pop("payload", None)
        event.update({"position": position, "total": total})
        return event

    async def run(self, jobs: list[ReportJob], *, order_id: str | None = None) -> AsyncIterator[dict[str, Any]]:
        """Yield a progress event for every status change, strictly in job order."""

        async with self._lock:
            total = len(jobs)
            log = bind_context(order_id=order_id)
            log.info("dispatch_start", jobs=total)
            for position, job in enumerate(jobs, start=1):
                job.status = "processing"
                yield self._event(job, position, total)
                try:
                    job.result_ref = await self._client.create_report_job(job.payload)
                    job.status = "done"
                except ProviderError as exc:
                    error = JobError(job, exc)
                    job.status = "error"
                    job.error = str(error)
                job_finished(job, order_id)
                yield self._event(job, position, total)
            failed = sum(1 for job in jobs if job.status == "error")
            log.info("dispatch_end", jobs=total, failed=failed)

    async def submit(self, jobs: list[ReportJob], *, order_id: str | None = None) -> list[ReportJob]:
        async for _ in self.run(jobs, order_id=order_id):
            pass
        return jobs
