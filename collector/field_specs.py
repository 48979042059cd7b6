"""Declarative field specifications with ordered fallbacks.

LinkedIn ships DOM changes weekly and without notice, so nothing about where a
value lives is hard-coded in the extraction logic. Each page type ("posts" for
the recent-activity item list, "dashboard" for the creator summary) has a
``PageSpec`` describing:

- where the repeating units are (``unit_selectors``, first non-empty wins)
- how to find a unit's identifier (attributes, then descendant selectors)
- which words mark a repost, and the per-language indicator dictionaries
- one ``FieldSpec`` per value: candidate selectors (tried in order), context
  keywords with anti-collision rules, and fallback regexes over flat text

Specs are frozen once loaded. A JSON document (``FIELD_SPECS_PATH``) may
replace the built-in defaults below; it must carry a ``version``.

Usage:
    from collector.field_specs import load_page_specs

    specs = load_page_specs(settings.field_specs_path)
    posts_spec = specs["posts"]
"""
from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Literal, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = structlog.get_logger(__name__)

FieldKind = Literal["count", "date", "percentage"]

# Attributes carrying machine- or screen-reader-facing values, preferred over text
VALUE_ATTRIBUTES: tuple[str, ...] = ("data-value", "aria-label", "title")


class FieldSpec(BaseModel):
    """How to locate a single named value."""

    model_config = ConfigDict(frozen=True)

    key: str
    kind: FieldKind = "count"
    selectors: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    # anti-collision: context must contain none of these...
    exclude: tuple[str, ...] = ()
    # ...and, when set, at least one of these
    require_any: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ()
    # numeric-bearing candidates for the context scan; page default when empty
    candidates: tuple[str, ...] = ()

    @field_validator("patterns")
    @classmethod
    def _patterns_compile(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for p in v:
            try:
                re.compile(p)
            except re.error as exc:
                raise ValueError(f"invalid pattern {p!r}: {exc}") from exc
        return v

    def compiled_patterns(self) -> list[re.Pattern[str]]:
        return [re.compile(p, re.IGNORECASE) for p in self.patterns]


class PageSpec(BaseModel):
    """Everything the extractors need to know about one page type."""

    model_config = ConfigDict(frozen=True)

    page_type: str
    version: str = "builtin"
    unit_selectors: tuple[str, ...] = ()
    identifier_attributes: tuple[str, ...] = ("data-urn",)
    identifier_selectors: tuple[str, ...] = ()
    repost_keywords: tuple[str, ...] = ()
    language_indicators: dict[str, tuple[str, ...]] = Field(default_factory=dict)
    number_selectors: tuple[str, ...] = ()
    fields: dict[str, FieldSpec] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _keys_into_fields(cls, data):  # noqa: D401
        # JSON documents may omit the key inside each field block
        if isinstance(data, dict) and isinstance(data.get("fields"), dict):
            fields = {}
            for key, spec in data["fields"].items():
                if isinstance(spec, dict) and "key" not in spec:
                    spec = {**spec, "key": key}
                fields[key] = spec
            data = {**data, "fields": fields}
        return data

    def field(self, key: str) -> FieldSpec:
        return self.fields[key]


class FieldSpecError(ValueError):
    """Field specification document is unreadable or invalid."""


# =============================================================================
# BUILT-IN DEFAULTS - Editable configuration
# =============================================================================
_NUM = r"(\d[\d\s.,  ]*)"

POSTS_SPEC = PageSpec(
    page_type="posts",
    version="2025.1-builtin",
    unit_selectors=(
        "div.feed-shared-update-v2",
        "article[data-urn*='urn:li:activity']",
        "div[data-urn*='urn:li:activity:']",
        "div.occludable-update",
        "div.update-components-feed-update",
    ),
    identifier_attributes=("data-urn", "data-id", "data-activity-urn"),
    identifier_selectors=(
        "[data-urn*='urn:li:activity:']",
        "[data-id*='urn:li:activity:']",
        "a[href*='urn:li:activity:']",
        "a[href*='/feed/update/']",
        "a[href*='activity-']",
    ),
    repost_keywords=(
        "reposté par",
        "a republié ceci",
        "a republié",
        "repartagé",
        "partagé par",
        "a partagé ceci",
        "reposted by",
        "reposted this",
        "shared by",
    ),
    language_indicators={
        "fr": (
            "bonjour", "merci", "très", "avec", "pour", "dans", "sur", "par", "les", "une",
            "des", "est", "nous", "vous", "mais", "donc", "car", "aujourd'hui", "équipe",
        ),
        "en": (
            "hello", "thanks", "thank", "very", "with", "for", "the", "and", "but", "because",
            "this", "that", "our", "you", "are", "is", "today", "team",
        ),
    },
    number_selectors=(
        "li.social-details-social-counts__item",
        "span.social-details-social-counts__reactions-count",
        "button.social-details-social-counts__count-value",
        "span.ca-entry-point__num-views",
        "button[aria-label]",
    ),
    fields={
        "reactions": FieldSpec(
            key="reactions",
            selectors=(
                "button[aria-label*='réaction']",
                "button[aria-label*='reaction']",
                "span.social-details-social-counts__reactions-count",
                "span.social-details-social-counts__social-proof-fallback-number",
            ),
            keywords=("réaction", "reaction", "j'aime", "like"),
            patterns=(_NUM + r"\s*(?:réactions?|reactions?|likes?|j'aime)",),
        ),
        "comments": FieldSpec(
            key="comments",
            selectors=(
                "button[aria-label*='commentaire']",
                "button[aria-label*='comment']",
                "li.social-details-social-counts__comments button",
            ),
            keywords=("commentaire", "comment"),
            exclude=("réaction", "reaction"),
            patterns=(_NUM + r"\s*(?:commentaires?|comments?)",),
        ),
        "shares": FieldSpec(
            key="shares",
            selectors=(
                "button[aria-label*='republication']",
                "button[aria-label*='partage']",
                "button[aria-label*='repost']",
            ),
            keywords=("republication", "partage", "share", "repost"),
            exclude=("réaction", "reaction", "commentaire", "comment"),
            patterns=(_NUM + r"\s*(?:republications?|partages?|shares?|reposts?)",),
        ),
        "reshares": FieldSpec(
            key="reshares",
            selectors=(
                "button[aria-label*='repartage']",
                "button[aria-label*='republication']",
                "button[aria-label*='reshare']",
            ),
            keywords=("repartage", "republication", "reshare"),
            exclude=("réaction", "reaction", "commentaire", "comment"),
            patterns=(_NUM + r"\s*(?:repartages?|republications?|reshares?)",),
        ),
        "impressions": FieldSpec(
            key="impressions",
            selectors=(
                "span.ca-entry-point__num-views",
                "a[aria-label*='impression']",
                "button[aria-label*='impression']",
            ),
            keywords=("impression", "vue", "view"),
            exclude=("vues du profil", "profile view"),
            patterns=(_NUM + r"\s*(?:impressions?|vues?|views?)",),
        ),
        "created_at": FieldSpec(
            key="created_at",
            kind="date",
            selectors=(
                "time[datetime]",
                "time",
                "span.update-components-actor__sub-description",
                "span.feed-shared-actor__sub-description",
                "span[class*='sub-description']",
            ),
            patterns=(
                r"(?:il\s+y\s+a\s+)?\d+\s*(?:mois|semaines?|jours?|heures?|minutes?|ans?|sem\.?|min|h|j)(?![a-zà-ÿ])",
                r"\d+\s*(?:months?|weeks?|days?|hours?|minutes?|years?|mo|w|d)(?![a-z])(?:\s+ago)?",
            ),
        ),
    },
)

DASHBOARD_SPEC = PageSpec(
    page_type="dashboard",
    version="2025.1-builtin",
    number_selectors=(
        "p.text-body-large-bold",
        ".text-body-large-bold",
        "span.pcd-analytic-view-items__value",
    ),
    fields={
        "global_posts_impressions_last_7d": FieldSpec(
            key="global_posts_impressions_last_7d",
            selectors=(
                "a[href*='/analytics/creator/content'] p.text-body-large-bold",
                "a[href*='creator/content'] .text-body-large-bold",
            ),
            keywords=("impression", "vue", "reach", "portée", "7 jour", "7 day", "impressions de posts"),
            exclude=("vues du profil", "vue de profil", "profile view"),
            require_any=("impression", "post"),
            patterns=(_NUM + r"\s*impressions?",),
        ),
        "followers": FieldSpec(
            key="followers",
            selectors=(
                "a[href*='/analytics/creator/audience'] p.text-body-large-bold",
                "a[href*='creator/audience'] .text-body-large-bold",
            ),
            keywords=("follower", "abonné", "connection", "connexion", "réseau"),
            patterns=(_NUM + r"\s*(?:followers?|abonnés?)",),
        ),
        "profile_views_90d": FieldSpec(
            key="profile_views_90d",
            selectors=(
                "a[href*='/analytics/profile-views'] p.text-body-large-bold",
                "a[href*='profile-views'] .text-body-large-bold",
            ),
            keywords=("vues du profil", "vue de profil", "profile view", "profil vu"),
            exclude=("impression",),
            patterns=(
                _NUM + r"\s*(?:vues?\s+(?:du|de)\s+profil|profile\s+views?)",
                r"(\d+)\s*personnes?\s+ont\s+vu\s+votre\s+profil",
            ),
        ),
        "search_appearances_last_week": FieldSpec(
            key="search_appearances_last_week",
            selectors=(
                "a[href*='/analytics/search-appearances'] p.text-body-large-bold",
                "a[href*='search-appearances'] .text-body-large-bold",
            ),
            keywords=("apparition", "recherche", "search appearance", "appearance"),
            exclude=("impression",),
            patterns=(
                _NUM + r"\s*(?:apparitions?\s+dans\s+les\s+recherches?|search\s+appearances?)",
            ),
        ),
    },
)

DEFAULT_PAGE_SPECS: dict[str, PageSpec] = {
    POSTS_SPEC.page_type: POSTS_SPEC,
    DASHBOARD_SPEC.page_type: DASHBOARD_SPEC,
}


# =============================================================================
# LOADING
# =============================================================================

def parse_page_specs(document: dict) -> dict[str, PageSpec]:
    """Validate a field specification document.

    Expected shape::

        {"version": "2025.3", "pages": {"posts": {...}, "dashboard": {...}}}

    Page types absent from the document keep their built-in default.
    """
    if not isinstance(document, dict) or "pages" not in document:
        raise FieldSpecError("field spec document must be an object with a 'pages' key")
    version = str(document.get("version") or "unversioned")
    specs = dict(DEFAULT_PAGE_SPECS)
    for page_type, raw in (document.get("pages") or {}).items():
        if not isinstance(raw, dict):
            raise FieldSpecError(f"page {page_type!r} must be an object")
        payload = {"page_type": page_type, "version": version, **raw}
        try:
            specs[page_type] = PageSpec.model_validate(payload)
        except ValidationError as exc:
            raise FieldSpecError(f"invalid spec for page {page_type!r}: {exc}") from exc
    return specs


def load_page_specs(path: Optional[str | Path] = None) -> dict[str, PageSpec]:
    """Load page specs from ``path`` (JSON) or return the built-in defaults."""
    if not path:
        return dict(DEFAULT_PAGE_SPECS)
    p = Path(path)
    try:
        document = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise FieldSpecError(f"cannot read field specs from {p}: {exc}") from exc
    specs = parse_page_specs(document)
    logger.info(
        "field_specs_loaded",
        path=str(p),
        version=document.get("version"),
        pages=sorted(specs),
    )
    return specs


__all__ = [
    "FieldKind",
    "FieldSpec",
    "PageSpec",
    "FieldSpecError",
    "VALUE_ATTRIBUTES",
    "POSTS_SPEC",
    "DASHBOARD_SPEC",
    "DEFAULT_PAGE_SPECS",
    "parse_page_specs",
    "load_page_specs",
]
