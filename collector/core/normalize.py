"""Locale-aware normalisation of numbers, dates and percentages.

LinkedIn renders figures with whatever separators the viewer's locale uses
("1 234", "1,234", "1.234,56", "6,4 %"), and timestamps either as ISO
attributes or as relative phrases ("4 mois", "il y a 2 semaines", "3w ago").
Every helper here is total: bad input degrades to ``0`` / ``None`` and never
raises.

Known limitation: relative phrases are *recognised* but resolved to the
current instant, not to ``now - duration``.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Optional, Union

from .errors import NormalizationFailure

Number = Union[int, float]

_NON_NUMERIC_RE = re.compile(r"[^\d.,]")
_ISO_TS_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}")
_RELATIVE_RE = re.compile(
    r"(?:il\s+y\s+a\s+)?(\d+)\s*"
    r"(mois|semaines?|jours?|heures?|minutes?|secondes?|ans?|"
    r"months?|weeks?|days?|hours?|minutes?|seconds?|years?|"
    r"sem\.?|min\.?|sec\.?|mo|wk|hr|yr|h|j|d|w|y|s)"
    r"(?![a-zà-ÿ])(?:\s+ago)?",
    re.IGNORECASE,
)
_DMY_FORMATS = ("%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y")


def iso(dt: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_iso(now: Optional[datetime] = None) -> str:
    return iso(now or datetime.now(timezone.utc))


def _parse_number(text: str) -> Number:
    cleaned = _NON_NUMERIC_RE.sub("", text)
    if not cleaned:
        raise NormalizationFailure(f"no digits in {text!r}")

    if "," in cleaned and "." in cleaned:
        # rightmost separator is the decimal point
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        if cleaned.count(",") == 1 and len(cleaned) - cleaned.rfind(",") <= 3:
            cleaned = cleaned.replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif cleaned.count(".") > 1:
        cleaned = cleaned.replace(".", "")

    try:
        value = float(cleaned)
    except ValueError as exc:
        raise NormalizationFailure(f"unparseable number {text!r}") from exc
    return int(value) if value.is_integer() else value


def number(value: Any) -> Number:
    """Parse a locale-formatted number; 0 when nothing usable is found."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value if value >= 0 else 0
    if not value or not isinstance(value, str):
        return 0
    try:
        return _parse_number(value)
    except NormalizationFailure:
        return 0


def is_relative(text: str) -> bool:
    """True for "4 mois", "il y a 2 semaines", "3 weeks ago" and the like."""
    return bool(text) and _RELATIVE_RE.search(text) is not None


def date(value: Any, now: Optional[datetime] = None) -> Optional[str]:
    """Normalise a timestamp to ISO-8601.

    - ISO timestamps pass through unchanged
    - relative phrases ("4 mois", "il y a 2 semaines") yield the current instant
    - absolute dates ("15/03/2024", "2024-03-15") are parsed directly
    - anything else yields None
    """
    if isinstance(value, datetime):
        return iso(value)
    if not value or not isinstance(value, str):
        return None
    raw = value.strip()
    if _ISO_TS_RE.match(raw):
        return raw
    if is_relative(raw):
        return now_iso(now)
    try:
        return iso(datetime.fromisoformat(raw.replace("Z", "+00:00")))
    except ValueError:
        pass
    for fmt in _DMY_FORMATS:
        try:
            return iso(datetime.strptime(raw, fmt))
        except ValueError:
            continue
    return None


def percentage(value: Any) -> float:
    """Normalise to [0, 1] whether the input is fractional (0.064) or not (6,4 %)."""
    num = number(value)
    if num == 0:
        return 0.0
    ratio = float(num) if num < 1 else float(num) / 100
    return min(1.0, ratio)


def text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


__all__ = ["number", "date", "percentage", "text", "iso", "now_iso", "is_relative"]
