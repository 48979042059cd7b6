"""Activity identifier (URN) and trace id utilities centralised."""
from __future__ import annotations
import re, uuid

URN_PATTERN = re.compile(r"^urn:li:activity:\d+$")
_ACTIVITY_PAT = re.compile(r"urn:li:activity:(\d+)")
_ACTIVITY_PAT2 = re.compile(r"activity[-/](\d+)")


def is_valid_identifier(value: str | None) -> bool:
    return bool(value) and URN_PATTERN.match(value) is not None


def find_identifier(blob: str | None) -> str | None:
    """Return the canonical URN embedded in ``blob`` (attribute, href, html)."""
    if not blob:
        return None
    m = _ACTIVITY_PAT.search(blob) or _ACTIVITY_PAT2.search(blob)
    if m:
        return f"urn:li:activity:{m.group(1)}"
    return None


def new_trace_id() -> str:
    return str(uuid.uuid4())


def batch_trace_id(trace_id: str, batch_index: int) -> str:
    """Per-batch trace id; ``batch_index`` is 1-based."""
    return f"{trace_id}-batch-{batch_index}"
