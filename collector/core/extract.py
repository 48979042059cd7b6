"""Record and summary extraction over a document snapshot.

``RecordExtractor`` turns every structural unit of a "posts" page into a
``Record``; ``SummaryExtractor`` turns a "dashboard" page into a single
``KpiSnapshot``. Both delegate value lookup to ``FieldResolver`` and only own
the per-unit rules:

* identifier lookup (container attributes, descendant attributes, link
  targets); units without a canonical ``urn:li:activity:<digits>`` are dropped
* repost detection by keyword; reposts are never emitted
* creation date, language tag and engagement rate
* duplicate suppression against the session's processed identifiers

A unit that fails for any other reason is logged and skipped; the pass
always completes.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, MutableSet, Optional, Sequence

import structlog

from . import normalize
from .document import Document, Node
from .errors import InvalidIdentifier, RepostDetected
from .ids import find_identifier, is_valid_identifier
from .resolver import FieldResolver
from .. import utils
from ..bootstrap import EXTRACTION_PASSES, RECORDS_EMITTED, UNITS_DISCARDED
from ..field_specs import PageSpec
from ..runtime.models import KpiSnapshot, Record

logger = structlog.get_logger(__name__)

METRIC_FIELDS = ("reactions", "comments", "shares", "reshares", "impressions")
# reshares mirror shares on current layouts and stay out of the numerator
ENGAGEMENT_FIELDS = ("reactions", "comments", "shares")
SUMMARY_FIELDS = (
    "followers",
    "profile_views_90d",
    "global_posts_impressions_last_7d",
    "search_appearances_last_week",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def engagement_rate(reactions: int, comments: int, shares: int, impressions: int) -> float:
    """(reactions + comments + shares) / impressions, 4 decimals, within [0, 1]."""
    if impressions <= 0:
        return 0.0
    rate = (max(0, reactions) + max(0, comments) + max(0, shares)) / impressions
    return round(min(1.0, max(0.0, rate)), 4)


class RecordExtractor:
    def __init__(
        self,
        page_spec: PageSpec,
        processed: Optional[MutableSet[str]] = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
        log: Optional[structlog.BoundLogger] = None,
    ) -> None:
        self.page_spec = page_spec
        self.processed: MutableSet[str] = processed if processed is not None else set()
        self._clock = clock
        self.resolver = FieldResolver(page_spec.number_selectors, clock=clock)
        self.log = log or logger.bind(page_type=page_spec.page_type)

    # ------------------------------------------------------------------
    def units(self, document: Document) -> list[Node]:
        """Structural units, document order; first selector with matches wins."""
        for selector in self.page_spec.unit_selectors:
            found = document.find_all(selector)
            if not found:
                continue
            kept: list[Node] = []
            members = set(found)
            for node in found:
                # nested matches of the same selector describe the same unit
                if any(a in members for a in node.ancestors()):
                    continue
                kept.append(node)
            self.log.debug("units_located", selector=selector, count=len(kept))
            return kept
        return []

    def identifier(self, unit: Node) -> str:
        for attr in self.page_spec.identifier_attributes:
            urn = find_identifier(unit.attribute(attr))
            if is_valid_identifier(urn):
                return urn  # type: ignore[return-value]
        lookups = (*self.page_spec.identifier_attributes, "href")
        for selector in self.page_spec.identifier_selectors:
            for node in unit.find_all(selector):
                for attr in lookups:
                    urn = find_identifier(node.attribute(attr))
                    if is_valid_identifier(urn):
                        return urn  # type: ignore[return-value]
        raise InvalidIdentifier("no canonical activity identifier in unit")

    def check_repost(self, unit_text: str) -> None:
        if utils.contains_any(unit_text, self.page_spec.repost_keywords):
            raise RepostDetected("unit is a repost")

    def build_record(self, unit: Node) -> Record:
        identifier = self.identifier(unit)
        text = unit.text()
        self.check_repost(text)

        record = Record(identifier=identifier)
        fields = self.page_spec.fields
        for key in METRIC_FIELDS:
            spec = fields.get(key)
            if spec is None:
                continue
            result = self.resolver.resolve(spec, unit)
            setattr(record, key, max(0, int(result.value)))
            record.strategies[key] = result.strategy

        date_spec = fields.get("created_at")
        if date_spec is not None:
            result = self.resolver.resolve(date_spec, unit)
            record.created_at = result.value
            record.strategies["created_at"] = result.strategy
        else:
            record.created_at = normalize.now_iso(self._clock())

        record.lang = utils.detect_language(text, self.page_spec.language_indicators)
        record.engagement_rate = engagement_rate(
            *(getattr(record, k) for k in ENGAGEMENT_FIELDS), record.impressions
        )
        return record

    def extract(self, document: Document) -> list[Record]:
        """Run one pass; records already in ``processed`` are suppressed."""
        EXTRACTION_PASSES.labels(page_type=self.page_spec.page_type).inc()
        records: list[Record] = []
        units = self.units(document)
        for index, unit in enumerate(units):
            try:
                record = self.build_record(unit)
            except InvalidIdentifier:
                UNITS_DISCARDED.labels(reason="invalid_identifier").inc()
                self.log.debug("unit_discarded", index=index, reason="invalid_identifier")
                continue
            except RepostDetected:
                UNITS_DISCARDED.labels(reason="repost").inc()
                self.log.debug("unit_discarded", index=index, reason="repost")
                continue
            except Exception as exc:  # noqa: BLE001
                UNITS_DISCARDED.labels(reason="error").inc()
                self.log.warning("unit_extraction_failed", index=index, error=str(exc))
                continue
            if record.identifier in self.processed:
                UNITS_DISCARDED.labels(reason="duplicate").inc()
                continue
            self.processed.add(record.identifier)
            records.append(record)
        RECORDS_EMITTED.inc(len(records))
        self.log.info("extraction_pass", units=len(units), records=len(records))
        return records


class SummaryExtractor:
    def __init__(
        self,
        page_spec: PageSpec,
        *,
        clock: Callable[[], datetime] = _utcnow,
        log: Optional[structlog.BoundLogger] = None,
    ) -> None:
        self.page_spec = page_spec
        self._clock = clock
        self.resolver = FieldResolver(page_spec.number_selectors, clock=clock)
        self.log = log or logger.bind(page_type=page_spec.page_type)

    def extract(self, document: Document, fields: Sequence[str] = SUMMARY_FIELDS) -> KpiSnapshot:
        EXTRACTION_PASSES.labels(page_type=self.page_spec.page_type).inc()
        snapshot = KpiSnapshot(date=utils.local_date(self._clock()))
        scope = document.root
        for key in fields:
            spec = self.page_spec.fields.get(key)
            if spec is None:
                continue
            result = self.resolver.resolve(spec, scope)
            setattr(snapshot, key, max(0, int(result.value)))
            snapshot.strategies[key] = result.strategy
        self.log.info("summary_extracted", **snapshot.to_payload())
        return snapshot


__all__ = [
    "RecordExtractor",
    "SummaryExtractor",
    "engagement_rate",
    "METRIC_FIELDS",
    "SUMMARY_FIELDS",
]
