"""Multi-tier field resolution.

Given a ``FieldSpec`` and a scope (a structural unit, or the document root),
locate the field's value by trying strategies in order, first success wins:

1. ``selector``  candidate selectors in order; the first element passing the
   validity predicate supplies the value. Attribute-embedded values
   (``data-value``, ``aria-label``, ``title``) beat free text.
2. ``context``   numeric-bearing candidates are accepted when the text around
   them carries one of the field's keywords and passes the anti-collision
   rules (``exclude`` / ``require_any``). Candidates are taken in document
   order; each one tries its parent's text, then its closest container's.
3. ``pattern``   fallback regexes over the scope's flattened text.
4. ``default``   0 for counts and percentages, the current instant for dates.

Resolution never raises; a miss is just the default.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence

import structlog

from . import normalize
from .document import Node, tag_in
from .errors import NormalizationFailure, ResolutionMiss
from ..bootstrap import FIELD_RESOLUTIONS
from ..field_specs import VALUE_ATTRIBUTES, FieldSpec
from ..runtime.models import ExtractionResult
from ..utils import contains_any

logger = structlog.get_logger(__name__)

_DIGITS_RE = re.compile(r"\d")
# digits with thousands/decimal separators; a space only counts between digits
_NUMBER_TOKEN_RE = re.compile(r"\d(?:[\d.,]|\s(?=\d))*")
MAX_CANDIDATE_TEXT = 100

_is_container = tag_in("div", "section", "article")


def first_number(text: str | None) -> Optional[normalize.Number]:
    """First locale-formatted number in ``text`` or None."""
    if not text:
        return None
    m = _NUMBER_TOKEN_RE.search(text)
    if not m:
        return None
    try:
        return normalize._parse_number(m.group(0))
    except NormalizationFailure:
        return None


def is_valid_candidate(text: str | None) -> bool:
    """Validity predicate for numeric candidates: has digits, short enough."""
    return bool(text) and len(text) < MAX_CANDIDATE_TEXT and _DIGITS_RE.search(text) is not None


class FieldResolver:
    """Resolve ``FieldSpec`` values inside a scope node."""

    def __init__(
        self,
        number_selectors: Sequence[str] = (),
        *,
        clock: Callable[[], Optional[datetime]] = lambda: None,
    ) -> None:
        self.number_selectors = tuple(number_selectors)
        self._clock = clock

    # ------------------------------------------------------------------
    def resolve(self, spec: FieldSpec, scope: Node) -> ExtractionResult:
        try:
            result = self._resolve(spec, scope)
        except ResolutionMiss:
            result = ExtractionResult(value=self._default(spec), strategy="default")
        except Exception as exc:  # noqa: BLE001
            logger.warning("field_resolution_error", field=spec.key, error=str(exc))
            result = ExtractionResult(value=self._default(spec), strategy="default")
        FIELD_RESOLUTIONS.labels(strategy=result.strategy).inc()
        return result

    def _resolve(self, spec: FieldSpec, scope: Node) -> ExtractionResult:
        for strategy in (self._by_selector, self._by_context, self._by_pattern):
            result = strategy(spec, scope)
            if result is not None:
                return result
        raise ResolutionMiss(spec.key)

    def _default(self, spec: FieldSpec):
        if spec.kind == "date":
            return normalize.now_iso(self._clock())
        if spec.kind == "percentage":
            return 0.0
        return 0

    # ------------------------------------------------------------------
    # Strategy 1: candidate selectors
    # ------------------------------------------------------------------
    def _by_selector(self, spec: FieldSpec, scope: Node) -> Optional[ExtractionResult]:
        for selector in spec.selectors:
            for node in scope.find_all(selector):
                value = self._node_value(spec, node)
                if value is not None:
                    return ExtractionResult(value=value, strategy="selector", source=selector)
        return None

    def _node_value(self, spec: FieldSpec, node: Node):
        if node.is_hidden():
            return None
        if spec.kind == "date":
            return self._date_value(node)
        for attr in VALUE_ATTRIBUTES:
            raw = node.attribute(attr)
            if not is_valid_candidate(raw):
                continue
            if attr == "data-value":
                value = first_number(raw)
            else:
                value = self._match_patterns(spec, raw)
            if value is not None:
                return self._finish(spec, value)
        text = node.text()
        if not is_valid_candidate(text):
            return None
        value = self._match_patterns(spec, text)
        if value is None:
            value = first_number(text)
        return None if value is None else self._finish(spec, value)

    def _date_value(self, node: Node) -> Optional[str]:
        attr = node.attribute("datetime")
        if attr:
            parsed = normalize.date(attr, self._clock())
            if parsed:
                return parsed
        return normalize.date(node.text(), self._clock())

    # ------------------------------------------------------------------
    # Strategy 2: surrounding context
    # ------------------------------------------------------------------
    def _by_context(self, spec: FieldSpec, scope: Node) -> Optional[ExtractionResult]:
        if spec.kind == "date" or not spec.keywords:
            return None
        candidates = spec.candidates or self.number_selectors
        if not candidates:
            return None
        nodes = self._numeric_candidates(scope, candidates)
        if not nodes:
            return None
        for node, value in nodes:
            for level, context in (("parent", self._parent_text(node)), ("container", self._container_text(node))):
                if self._context_accepts(spec, context):
                    return ExtractionResult(value=self._finish(spec, value), strategy="context", source=level)
        return None

    def _numeric_candidates(self, scope: Node, selectors: Iterable[str]) -> list[tuple[Node, normalize.Number]]:
        seen: set[Node] = set()
        out: list[tuple[Node, normalize.Number]] = []
        for node in scope.find_all(", ".join(selectors)):
            if node in seen or node.is_hidden():
                continue
            seen.add(node)
            text = node.text()
            if not is_valid_candidate(text):
                continue
            value = first_number(text)
            # zero is indistinguishable from a placeholder here
            if not value:
                continue
            out.append((node, value))
        return out

    @staticmethod
    def _parent_text(node: Node) -> str:
        parent = node.parent()
        return parent.text() if parent is not None else ""

    @staticmethod
    def _container_text(node: Node) -> str:
        container = node.closest(_is_container)
        return container.text() if container is not None else ""

    @staticmethod
    def _context_accepts(spec: FieldSpec, context: str) -> bool:
        if not context or not contains_any(context, spec.keywords):
            return False
        if spec.exclude and contains_any(context, spec.exclude):
            return False
        if spec.require_any and not contains_any(context, spec.require_any):
            return False
        return True

    # ------------------------------------------------------------------
    # Strategy 3: regex over flattened text
    # ------------------------------------------------------------------
    def _by_pattern(self, spec: FieldSpec, scope: Node) -> Optional[ExtractionResult]:
        if not spec.patterns:
            return None
        text = scope.text()
        if not text:
            return None
        for pattern in spec.compiled_patterns():
            m = pattern.search(text)
            if not m:
                continue
            if spec.kind == "date":
                value = normalize.date(m.group(0), self._clock())
            else:
                value = first_number(m.group(1) if m.groups() else m.group(0))
            if value is not None:
                return ExtractionResult(value=self._finish(spec, value), strategy="pattern", source=pattern.pattern)
        return None

    def _match_patterns(self, spec: FieldSpec, text: str) -> Optional[normalize.Number]:
        for pattern in spec.compiled_patterns():
            m = pattern.search(text)
            if m:
                value = first_number(m.group(1) if m.groups() else m.group(0))
                if value is not None:
                    return value
        return None

    @staticmethod
    def _finish(spec: FieldSpec, value):
        if spec.kind == "percentage":
            return normalize.percentage(value)
        if spec.kind == "count":
            return int(normalize.number(value))
        return value


__all__ = ["FieldResolver", "first_number", "is_valid_candidate", "MAX_CANDIDATE_TEXT"]
