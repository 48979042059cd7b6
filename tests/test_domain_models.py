from __future__ import annotations

import pytest
from pydantic import ValidationError

from domain.models import BatchPayload, DailyPayload, PostPayload

BASE = {"company_id": "c1", "team_id": "t1", "user_id": "u1", "trace_id": "t"}


def test_post_payload_valid():
    payload = PostPayload(post_id="urn:li:activity:123", reactions=4, impressions=10, engagement_rate=0.4, **BASE)
    wire = payload.to_wire()
    assert wire["type"] == "post"
    assert wire["post_id"] == "urn:li:activity:123"
    assert wire["captured_at_iso"].endswith("Z")


@pytest.mark.parametrize(
    "overrides",
    [
        {"post_id": "urn:li:share:123"},
        {"post_id": "123"},
        {"reactions": -1},
        {"engagement_rate": 1.5},
        {"is_repost": True},
        {"user_id": ""},
    ],
)
def test_post_payload_rejects(overrides):
    data = {"post_id": "urn:li:activity:1", **BASE, **overrides}
    with pytest.raises(ValidationError):
        PostPayload(**data)


def test_post_payload_requires_enrichment_fields():
    with pytest.raises(ValidationError):
        PostPayload(post_id="urn:li:activity:1")


def test_daily_payload():
    wire = DailyPayload(date="2024-06-01", followers=567, **BASE).to_wire()
    assert wire["type"] == "daily"
    with pytest.raises(ValidationError):
        DailyPayload(date="01/06/2024", **BASE)


def test_batch_payload_needs_two_items():
    assert BatchPayload(items=[{"a": 1}, {"b": 2}]).to_wire()["type"] == "post"
    with pytest.raises(ValidationError):
        BatchPayload(items=[{"a": 1}])
