"""Batch splitting and paced sequential dispatch.

Records are delivered in groups of at most ``BATCH_SIZE_MAX``. A group of one
travels as the bare payload; larger groups are wrapped as
``{"type": ..., "items": [...]}``. Groups go out strictly one after another
with a pacing delay between them (never after the last one).
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Iterable, Sequence, TypeVar

import structlog

from ..bootstrap import BATCHES_DISPATCHED

logger = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

SleepFn = Callable[[float], Awaitable[Any]]


def chunk(items: Sequence[T], max_size: int) -> list[list[T]]:
    """Split ``items`` into ordered groups of at most ``max_size``."""
    size = max(1, int(max_size))
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def envelope_payload(group: Sequence[dict[str, Any]], payload_type: str = "post") -> dict[str, Any]:
    if not group:
        raise ValueError("cannot build an envelope for an empty group")
    if len(group) == 1:
        return dict(group[0])
    return {"type": payload_type, "items": [dict(p) for p in group]}


async def dispatch(
    groups: Iterable[T],
    send: Callable[[int, T], Awaitable[R]],
    pacing_seconds: float,
    *,
    sleep: SleepFn = asyncio.sleep,
) -> list[R]:
    """Await ``send(index, group)`` for each group in order (index is 1-based).

    Exactly one send is outstanding at any time. ``sleep(pacing_seconds)``
    runs between consecutive groups only.
    """
    results: list[R] = []
    for index, group in enumerate(groups, start=1):
        if index > 1 and pacing_seconds > 0:
            await sleep(pacing_seconds)
        BATCHES_DISPATCHED.inc()
        results.append(await send(index, group))
    logger.debug("batches_dispatched", count=len(results), pacing_seconds=pacing_seconds)
    return results


__all__ = ["chunk", "envelope_payload", "dispatch"]
