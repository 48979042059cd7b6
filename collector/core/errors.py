"""Error taxonomy and structured delivery-failure registry.

Extraction-side errors never leave the extraction layer: they are raised and
caught locally to select a default. Delivery-side errors never leave the
delivery client: they become ``DeliveryResult(ok=False)``.

Final delivery failures are appended as JSON lines to a configurable file
(env DELIVERY_FAILURE_LOG, default delivery_failures.log). Per-process
aggregation keeps an in-memory counter to avoid excessive disk writes for
identical signatures.
"""
from __future__ import annotations
import os, json, time, threading
from dataclasses import dataclass, asdict
from typing import Dict, Optional


class CollectorError(Exception):
    """Base class for every collector error."""


# --- extraction layer (recovered locally) ---------------------------------
class ExtractionError(CollectorError):
    pass


class ResolutionMiss(ExtractionError):
    """No strategy located the field; the default applies."""


class NormalizationFailure(ExtractionError):
    """Free text could not be turned into a number/date."""


class InvalidIdentifier(ExtractionError):
    """Unit identifier missing or not matching the canonical pattern."""


class RepostDetected(ExtractionError):
    """Unit is a re-share and is never emitted."""


# --- delivery layer (reported as results) ---------------------------------
class DeliveryError(CollectorError):
    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class TransientDeliveryError(DeliveryError):
    """5xx, timeout or transport failure: retried."""


class TerminalDeliveryError(DeliveryError):
    """4xx or rate limiting: reported, never retried."""


class KillSwitchActive(TerminalDeliveryError):
    """Outbound delivery disabled by configuration."""


# --- failure registry ------------------------------------------------------
_lock = threading.Lock()
_counts: Dict[str, int] = {}


@dataclass
class DeliveryFailure:
    ts: float
    category: str
    signature: str
    message: str
    trace_id: Optional[str]
    occurrences: int


def _log_path() -> str:
    return os.environ.get("DELIVERY_FAILURE_LOG", "delivery_failures.log")


def log_delivery_failure(category: str, exc: Exception | str, *, trace_id: str | None = None, path: str | None = None) -> bool:
    """Record a final delivery failure. Returns True when a line was written."""
    sig = f"{category}:{type(exc).__name__ if not isinstance(exc, str) else 'str'}"
    msg = str(exc)
    with _lock:
        count = _counts.get(sig, 0) + 1
        _counts[sig] = count
        # first 3 occurrences, then every 10th
        if count > 3 and (count % 10) != 0:
            return False
        rec = DeliveryFailure(ts=time.time(), category=category, signature=sig, message=msg, trace_id=trace_id, occurrences=count)
        try:
            with open(path or _log_path(), "a", encoding="utf-8") as f:
                f.write(json.dumps(asdict(rec), ensure_ascii=False) + "\n")
        except OSError:
            return False
    return True


def reset_failure_counts() -> None:
    with _lock:
        _counts.clear()


__all__ = [
    "CollectorError",
    "ExtractionError",
    "ResolutionMiss",
    "NormalizationFailure",
    "InvalidIdentifier",
    "RepostDetected",
    "DeliveryError",
    "TransientDeliveryError",
    "TerminalDeliveryError",
    "KillSwitchActive",
    "log_delivery_failure",
    "reset_failure_counts",
]
