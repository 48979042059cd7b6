"""Utility functions for the collector.

This module groups stateless helpers used by the extraction engine:
- Text normalization
- Indicator-word language classification
- Local calendar date for daily snapshots

All functions are pure (no side effects). They accept primitives / simple
structures for easier testing.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

# ---------------------------------------------------------------------------
# Text normalization
# ---------------------------------------------------------------------------
_WS_RE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def contains_any(text: str, needles: Sequence[str]) -> bool:
    """Case-insensitive substring test."""
    text_lc = text.lower()
    return any(n.lower() in text_lc for n in needles if n)


# ---------------------------------------------------------------------------
# Language classification
# ---------------------------------------------------------------------------
_WORD_RE = re.compile(r"[a-zà-öø-ÿœæ]+", re.IGNORECASE)

UNKNOWN_LANGUAGE = "other"


def count_indicators(text: str, indicators: Sequence[str]) -> int:
    """Number of occurrences of indicator words (whole words) in ``text``.

    Multi-word indicators ("il y a") are matched as phrases.
    """
    text_lc = text.lower()
    tokens = _WORD_RE.findall(text_lc)
    singles = {w.lower() for w in indicators if w and " " not in w.strip()}
    total = sum(1 for t in tokens if t in singles)
    for phrase in (w.lower().strip() for w in indicators if w and " " in w.strip()):
        total += len(re.findall(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)", text_lc))
    return total


def detect_language(text: str, indicators: Mapping[str, Sequence[str]]) -> str:
    """Language whose indicator words occur most often; ties give ``other``."""
    if not text or not indicators:
        return UNKNOWN_LANGUAGE
    counts = {lang: count_indicators(text, words) for lang, words in indicators.items()}
    best = max(counts.values())
    if best == 0:
        return UNKNOWN_LANGUAGE
    winners = [lang for lang, c in counts.items() if c == best]
    return winners[0] if len(winners) == 1 else UNKNOWN_LANGUAGE


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------
PARIS_TZ = ZoneInfo("Europe/Paris")


def local_date(now: Optional[datetime] = None, tz: ZoneInfo = PARIS_TZ) -> str:
    """Calendar date (YYYY-MM-DD) in ``tz`` for daily snapshots."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz).strftime("%Y-%m-%d")
