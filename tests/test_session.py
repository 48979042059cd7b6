from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from conftest import DASHBOARD_HTML, FIXED_NOW_ISO, POSTS_HTML

from collector.bootstrap import bootstrap
from collector.core.soup import SoupDocument
from collector.runtime.models import KpiSnapshot, Record
from collector.runtime.session import SessionContext
from collector.transport import DeliveryClient


class Endpoint:
    def __init__(self, status: int = 200):
        self.status = status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json={"ok": self.status == 200})

    @property
    def bodies(self):
        return [json.loads(r.content) for r in self.requests]


def _session(app_ctx, endpoint, sleep, clock, **kwargs) -> SessionContext:
    http = httpx.AsyncClient(transport=httpx.MockTransport(endpoint))
    delivery = DeliveryClient(app_ctx.settings, http, sleep=sleep)
    return SessionContext(app_ctx, user_id="jdupont", delivery=delivery, clock=clock, sleep=sleep, **kwargs)


def _records(n: int) -> list[Record]:
    return [Record(identifier=f"urn:li:activity:{i}", reactions=i, impressions=100) for i in range(1, n + 1)]


@pytest.mark.asyncio
async def test_twenty_three_records_three_paced_batches(app_ctx, recording_sleep, clock):
    endpoint = Endpoint()
    session = _session(app_ctx, endpoint, recording_sleep, clock)
    results = await session.deliver(_records(23))

    assert [r.ok for r in results] == [True, True, True]
    assert [len(body["items"]) if "items" in body else 1 for body in endpoint.bodies] == [10, 10, 3]
    assert all(body["type"] == "post" for body in endpoint.bodies)
    # pacing between batches only
    assert recording_sleep.calls == [0.25, 0.25]

    traces = [r.url.params["X-Trace-Id"] for r in endpoint.requests]
    base = traces[0].rsplit("-batch-", 1)[0]
    assert traces == [f"{base}-batch-1", f"{base}-batch-2", f"{base}-batch-3"]
    assert [r.trace_id for r in results] == traces


@pytest.mark.asyncio
async def test_single_record_is_sent_bare_and_enriched(app_ctx, recording_sleep, clock):
    endpoint = Endpoint()
    session = _session(app_ctx, endpoint, recording_sleep, clock)
    results = await session.deliver(_records(1))

    assert len(results) == 1 and results[0].ok
    body = endpoint.bodies[0]
    assert "items" not in body
    assert body["post_id"] == "urn:li:activity:1"
    assert body["type"] == "post"
    assert body["company_id"] == "c1"
    assert body["team_id"] == "t1"
    assert body["user_id"] == "jdupont"
    assert body["captured_at_iso"] == FIXED_NOW_ISO
    assert body["trace_id"] == results[0].trace_id
    assert body["is_repost"] is False
    assert "identifier" not in body and "strategies" not in body
    assert recording_sleep.calls == []


@pytest.mark.asyncio
async def test_invalid_records_never_delivered(app_ctx, recording_sleep, clock):
    endpoint = Endpoint()
    session = _session(app_ctx, endpoint, recording_sleep, clock)
    bad = [Record(identifier="urn:li:share:1"), Record(identifier="urn:li:activity:2", engagement_rate=3.0)]
    assert await session.deliver(bad) == []
    assert endpoint.requests == []

    results = await session.deliver(bad + _records(1))
    assert len(results) == 1
    assert endpoint.bodies[0]["post_id"] == "urn:li:activity:1"


@pytest.mark.asyncio
async def test_kill_switch_delivers_nothing(settings, recording_sleep, clock):
    app_ctx = bootstrap(settings.model_copy(update={"kill_switch": True}), configure=False)
    endpoint = Endpoint()
    session = _session(app_ctx, endpoint, recording_sleep, clock)
    results = await session.deliver(_records(15))
    assert [r.ok for r in results] == [False, False]
    assert all(r.attempts == 0 for r in results)
    assert endpoint.requests == []
    assert recording_sleep.calls == []


@pytest.mark.asyncio
async def test_extract_then_deliver_end_to_end(app_ctx, recording_sleep, clock):
    endpoint = Endpoint()
    session = _session(app_ctx, endpoint, recording_sleep, clock)
    records = session.extract(SoupDocument.from_html(POSTS_HTML))
    assert len(records) == 2
    assert session.extract(SoupDocument.from_html(POSTS_HTML)) == []

    results = await session.deliver(records)
    assert len(results) == 1 and results[0].ok
    body = endpoint.bodies[0]
    assert [item["post_id"] for item in body["items"]] == [
        "urn:li:activity:7100000000000000001",
        "urn:li:activity:7100000000000000002",
    ]
    assert body["items"][0]["reactions"] == 12


@pytest.mark.asyncio
async def test_summary_round(app_ctx, recording_sleep, clock):
    endpoint = Endpoint()
    session = _session(app_ctx, endpoint, recording_sleep, clock, page_type="dashboard")
    snapshot = session.extract_summary(SoupDocument.from_html(DASHBOARD_HTML))
    result = await session.deliver_summary(snapshot)
    assert result.ok
    body = endpoint.bodies[0]
    assert body["type"] == "daily"
    assert body["date"] == "2024-06-01"
    assert body["followers"] == 567
    assert body["user_id"] == "jdupont"


@pytest.mark.asyncio
async def test_invalid_summary_not_sent(app_ctx, recording_sleep, clock):
    endpoint = Endpoint()
    session = _session(app_ctx, endpoint, recording_sleep, clock)
    result = await session.deliver_summary(KpiSnapshot(date="yesterday"))
    assert result.ok is False
    assert endpoint.requests == []


@pytest.mark.asyncio
async def test_debounce_coalesces_bursts(app_ctx, recording_sleep, clock):
    session = _session(app_ctx, Endpoint(), recording_sleep, clock)
    calls: list[int] = []

    for i in range(5):
        session.schedule_pass(lambda i=i: calls.append(i))
    assert session.pass_pending
    await asyncio.sleep(0.1)
    assert calls == [4]
    assert not session.pass_pending


@pytest.mark.asyncio
async def test_debounce_runs_coroutine_passes(app_ctx, recording_sleep, clock):
    session = _session(app_ctx, Endpoint(), recording_sleep, clock)
    done = asyncio.Event()

    async def run_pass():
        session.extract(SoupDocument.from_html(POSTS_HTML))
        done.set()

    session.schedule_pass(run_pass, delay=0)
    await asyncio.wait_for(done.wait(), timeout=1)
    assert len(session.processed) == 2


@pytest.mark.asyncio
async def test_close_clears_session_state(app_ctx, recording_sleep, clock):
    session = _session(app_ctx, Endpoint(), recording_sleep, clock)
    session.extract(SoupDocument.from_html(POSTS_HTML))
    session.schedule_pass(lambda: None, delay=10)
    await session.close()
    assert session.processed == set()
    assert not session.pass_pending


@pytest.mark.asyncio
async def test_bad_field_specs_fall_back_to_builtin(settings, tmp_path, recording_sleep, clock):
    bad = tmp_path / "specs.json"
    bad.write_text("{oops", encoding="utf-8")
    app_ctx = bootstrap(settings.model_copy(update={"field_specs_path": str(bad)}), configure=False)
    session = _session(app_ctx, Endpoint(), recording_sleep, clock)
    assert set(session.specs) == {"posts", "dashboard"}
    assert len(session.extract(SoupDocument.from_html(POSTS_HTML))) == 2
