from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from collector.field_specs import (
    DASHBOARD_SPEC,
    DEFAULT_PAGE_SPECS,
    POSTS_SPEC,
    FieldSpec,
    FieldSpecError,
    load_page_specs,
    parse_page_specs,
)


def test_builtin_defaults():
    specs = load_page_specs(None)
    assert set(specs) == {"posts", "dashboard"}
    assert specs["posts"] is POSTS_SPEC
    for key in ("reactions", "comments", "shares", "reshares", "impressions", "created_at"):
        assert key in POSTS_SPEC.fields
    assert POSTS_SPEC.field("created_at").kind == "date"
    assert set(POSTS_SPEC.language_indicators) == {"fr", "en"}
    assert "reposted by" in POSTS_SPEC.repost_keywords


def test_dashboard_anti_collision_rules():
    assert "impression" in DASHBOARD_SPEC.field("profile_views_90d").exclude
    assert set(DASHBOARD_SPEC.field("global_posts_impressions_last_7d").require_any) == {"impression", "post"}


def test_specs_are_frozen():
    with pytest.raises(ValidationError):
        POSTS_SPEC.field("reactions").selectors = ("x",)


def test_load_versioned_document(tmp_path):
    path = tmp_path / "specs.json"
    path.write_text(
        json.dumps(
            {
                "version": "2025.3",
                "pages": {
                    "posts": {
                        "unit_selectors": ["article.post"],
                        "fields": {"reactions": {"selectors": ["span.r"], "patterns": ["(\\d+) likes"]}},
                    }
                },
            }
        ),
        encoding="utf-8",
    )
    specs = load_page_specs(path)
    posts = specs["posts"]
    assert posts.version == "2025.3"
    assert posts.page_type == "posts"
    assert posts.unit_selectors == ("article.post",)
    assert posts.field("reactions").key == "reactions"
    assert posts.field("reactions").kind == "count"
    assert specs["dashboard"] is DEFAULT_PAGE_SPECS["dashboard"]


def test_invalid_pattern_rejected():
    with pytest.raises(FieldSpecError):
        parse_page_specs({"version": "1", "pages": {"posts": {"fields": {"x": {"patterns": ["(unclosed"]}}}}})


def test_document_without_pages_rejected():
    with pytest.raises(FieldSpecError):
        parse_page_specs({"version": "1"})


def test_unreadable_file(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(FieldSpecError):
        load_page_specs(bad)
    with pytest.raises(FieldSpecError):
        load_page_specs(tmp_path / "missing.json")


def test_field_spec_compiles_case_insensitive():
    spec = FieldSpec(key="n", patterns=(r"(\d+) Likes",))
    assert spec.compiled_patterns()[0].search("12 likes").group(1) == "12"
