"""Logging helpers shared by the order core."""

from __future__ import annotations

from typing import Any

from loguru import logger


def bind_context(**kwargs: Any):
    """Return a logger with bound contextual fields (order/owner/stage)."""
    return logger.bind(**{k: v for k, v in kwargs.items() if v is not None})


def stage_entered(stage: str, order_id: str | None = None, owner: str | None = None):
    bind_context(stage=stage, order_id=order_id, owner=owner).info("stage_enter")


def provider_lookup(
    provider: str,
    query: Any,
    results_raw: int,
    results_kept: int | None = None,
    duration_ms: float | None = None,
    **ctx: Any,
):
    payload = {
        "provider": provider,
        "query": query,
        "results_raw": results_raw,
    }
    if results_kept is not None:
        payload["results_kept"] = results_kept
    if duration_ms is not None:
        payload["duration_ms"] = round(duration_ms, 1)
    payload.update({k: v for k, v in ctx.items() if v is not None})
    logger.info("provider_lookup", **payload)


def job_finished(job: Any, order_id: str | None = None):
    bind_context(order_id=order_id, job_id=job.job_id).info(
        "job_status", type=job.type, status=job.status, error=job.error
    )
