"""Per-page-visit session state and the public extraction/delivery boundary.

The page-loading collaborator builds one ``SessionContext`` per page visit,
hands it document snapshots, and calls ``deliver`` with what came out:

    ctx = bootstrap()
    session = SessionContext(ctx, page_type="posts", user_id="jdupont")
    session.schedule_pass(lambda: run_pass(session))   # debounced
    records = session.extract(SoupDocument.from_html(html))
    results = await session.deliver(records)
    await session.close()

Everything mutable (processed identifiers, the debounce timer, pending pass
tasks) lives on the session; nothing is module-global. All mutation happens on
the event loop thread, so no locking is involved.
"""
from __future__ import annotations

import asyncio
import inspect
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError

from domain.models import BatchPayload, DailyPayload, PostPayload

from ..bootstrap import AppContext
from ..core.document import Document
from ..core.extract import RecordExtractor, SummaryExtractor
from ..core.ids import batch_trace_id, new_trace_id
from ..core.normalize import now_iso
from ..field_specs import DEFAULT_PAGE_SPECS, FieldSpecError, PageSpec, load_page_specs
from ..transport import DeliveryClient
from .batcher import SleepFn, chunk, dispatch, envelope_payload
from .models import DeliveryEnvelope, DeliveryResult, KpiSnapshot, Record


PassCallback = Callable[[], Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionContext:
    def __init__(
        self,
        app: AppContext,
        *,
        page_type: str = "posts",
        user_id: str = "anonymous",
        specs: Optional[dict[str, PageSpec]] = None,
        delivery: Optional[DeliveryClient] = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.app = app
        self.settings = app.settings
        self.page_type = page_type
        self.user_id = user_id
        self.log = app.logger.bind(page_type=page_type, user_id=user_id)
        self.specs = specs if specs is not None else self._load_specs()
        self.processed: set[str] = set()
        self._clock = clock
        self._sleep = sleep
        self.delivery = delivery or DeliveryClient(self.settings, sleep=sleep, log=self.log)
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()
        self._records = RecordExtractor(
            self.specs.get("posts", DEFAULT_PAGE_SPECS["posts"]),
            self.processed,
            clock=clock,
            log=self.log,
        )
        self._summary = SummaryExtractor(
            self.specs.get("dashboard", DEFAULT_PAGE_SPECS["dashboard"]),
            clock=clock,
            log=self.log,
        )

    def _load_specs(self) -> dict[str, PageSpec]:
        try:
            return load_page_specs(self.settings.field_specs_path)
        except FieldSpecError as exc:
            self.log.error("field_specs_invalid", error=str(exc), fallback="builtin")
            return dict(DEFAULT_PAGE_SPECS)

    @property
    def kill_switch(self) -> bool:
        return self.settings.kill_switch

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------
    def extract(self, document: Document) -> list[Record]:
        """Records not yet emitted during this session, document order."""
        return self._records.extract(document)

    def extract_summary(self, document: Document) -> KpiSnapshot:
        return self._summary.extract(document)

    # ------------------------------------------------------------------
    # Debounce
    # ------------------------------------------------------------------
    def schedule_pass(self, callback: PassCallback, delay: Optional[float] = None) -> None:
        """Run ``callback`` once the document has been quiet for ``DEBOUNCE_MS``.

        Each call cancels the pending timer. A pass that already started is
        left alone.
        """
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        wait = self.settings.debounce_seconds if delay is None else max(0.0, delay)
        self._timer = loop.call_later(wait, self._fire, callback)

    @property
    def pass_pending(self) -> bool:
        return self._timer is not None

    def _fire(self, callback: PassCallback) -> None:
        self._timer = None
        try:
            result = callback()
        except Exception as exc:  # noqa: BLE001
            self.log.error("extraction_pass_failed", error=str(exc))
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._pass_done)

    def _pass_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.log.error("extraction_pass_failed", error=str(task.exception()))

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------
    def enrich(self, payload: dict[str, Any], payload_type: str, trace_id: str) -> dict[str, Any]:
        return {
            **payload,
            "type": payload_type,
            "company_id": self.settings.company_id,
            "team_id": self.settings.team_id,
            "user_id": self.user_id,
            "captured_at_iso": now_iso(self._clock()),
            "trace_id": trace_id,
        }

    def validated_payloads(self, records: Iterable[Record], trace_id: str) -> list[dict[str, Any]]:
        """Enriched wire payloads; records failing validation are dropped."""
        payloads: list[dict[str, Any]] = []
        for record in records:
            enriched = self.enrich(record.to_payload(), "post", trace_id)
            try:
                payloads.append(PostPayload.model_validate(enriched).to_wire())
            except ValidationError as exc:
                self.log.warning(
                    "payload_invalid",
                    post_id=enriched.get("post_id"),
                    errors=exc.error_count(),
                )
        return payloads

    async def deliver(self, records: Iterable[Record]) -> list[DeliveryResult]:
        """Deliver ``records`` in paced sequential batches, one result per batch."""
        trace_id = new_trace_id()
        payloads = self.validated_payloads(records, trace_id)
        if not payloads:
            return []
        groups = chunk(payloads, self.settings.batch_size_max)
        multi = len(groups) > 1

        async def send(index: int, group: list[dict[str, Any]]) -> DeliveryResult:
            body = envelope_payload(group, "post")
            if len(group) > 1:
                body = BatchPayload.model_validate(body).to_wire()
            envelope = DeliveryEnvelope(
                payload=body,
                trace_id=batch_trace_id(trace_id, index) if multi else trace_id,
                batch_index=index,
                size=len(group),
            )
            return await self.delivery.post_json(envelope.payload, envelope.trace_id)

        # kill switch refuses every request, nothing to pace
        pacing = 0.0 if self.kill_switch else self.settings.pacing_seconds
        results = await dispatch(groups, send, pacing, sleep=self._sleep)
        self.log.info(
            "delivery_complete",
            trace_id=trace_id,
            records=len(payloads),
            batches=len(groups),
            ok=sum(1 for r in results if r.ok),
        )
        return results

    async def deliver_summary(self, snapshot: KpiSnapshot) -> DeliveryResult:
        trace_id = new_trace_id()
        enriched = self.enrich(snapshot.to_payload(), "daily", trace_id)
        try:
            body = DailyPayload.model_validate(enriched).to_wire()
        except ValidationError as exc:
            self.log.warning("payload_invalid", type="daily", errors=exc.error_count())
            return DeliveryResult(ok=False, trace_id=trace_id, error=f"invalid payload: {exc.error_count()} errors")
        return await self.delivery.post_json(body, trace_id)

    # ------------------------------------------------------------------
    async def close(self) -> None:
        """End of page visit: drop pending work and session memory."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self.processed.clear()
        await self.delivery.aclose()
        self.log.debug("session_closed")


__all__ = ["SessionContext"]
