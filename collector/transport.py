"""Resilient JSON delivery to the collection endpoint.

One ``DeliveryClient.post_json`` call walks the state machine::

    Idle -> Sending -> Success
                    -> Retrying -> Sending ...
                    -> Failed

* Kill switch: reported as failed without touching the network.
* Every attempt rebuilds the URL with the ``X-Secret`` and ``X-Trace-Id``
  query parameters.
* Each attempt is bounded by ``TIMEOUT_MS``; a timeout cancels the in-flight
  request and counts as transient.
* 2xx: success, body decoded as JSON and handed back untouched.
  4xx (429 included) and 503: terminal, reported immediately.
  Other 5xx, timeouts and transport errors: retried with exponential backoff
  (``RETRY_BACKOFF_MS * 2^(attempt-1)``, capped at ``RETRY_BACKOFF_MAX_MS``)
  until ``RETRIES`` attempts were made.

``post_json`` never raises; failures come back as ``DeliveryResult(ok=False)``.
"""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
import structlog
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt, wait_exponential

from .bootstrap import DELIVERY_ATTEMPTS, DELIVERY_DURATION_SECONDS, DELIVERY_RESULTS, Settings, redact_url
from .core.errors import (
    DeliveryError,
    KillSwitchActive,
    TerminalDeliveryError,
    TransientDeliveryError,
    log_delivery_failure,
)
from .core.ids import new_trace_id
from .runtime.models import DeliveryResult

logger = structlog.get_logger(__name__)

SECRET_PARAM = "X-Secret"
TRACE_PARAM = "X-Trace-Id"
# never worth retrying even though they are 5xx / rate-limit answers
TERMINAL_STATUSES = frozenset({429, 503})

SleepFn = Callable[[float], Awaitable[Any]]


def build_url(base_url: str, secret: str, trace_id: Optional[str]) -> str:
    """``base_url`` with the secret and trace id set as query parameters."""
    parts = urlsplit(base_url)
    query = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if k not in (SECRET_PARAM, TRACE_PARAM)
    ]
    query.append((SECRET_PARAM, secret))
    if trace_id:
        query.append((TRACE_PARAM, trace_id))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def classify_status(status: int) -> Optional[DeliveryError]:
    """None for 2xx, otherwise the error the response stands for."""
    if 200 <= status < 300:
        return None
    if status in TERMINAL_STATUSES:
        return TerminalDeliveryError(f"HTTP {status}", status=status)
    if 500 <= status < 600:
        return TransientDeliveryError(f"HTTP {status}", status=status)
    return TerminalDeliveryError(f"HTTP {status}", status=status)


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning("delivery_response_not_json", status=response.status_code, error=str(exc))
        return None


class DeliveryClient:
    """POST JSON payloads with retries. One request in flight per call."""

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        log: Optional[structlog.BoundLogger] = None,
        failure_log_path: Optional[str] = None,
    ) -> None:
        self.settings = settings
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep
        self.log = log or logger.bind(component="transport")
        self.failure_log_path = failure_log_path or settings.delivery_failure_log

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.timeout_seconds,
                follow_redirects=True,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "DeliveryClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    async def _attempt(self, payload: Any, trace_id: str, attempt: int) -> Any:
        try:
            url = build_url(self.settings.webapp_url, self.settings.secret, trace_id)
            response = await asyncio.wait_for(
                self.client.post(url, json=payload),
                timeout=self.settings.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            DELIVERY_ATTEMPTS.labels(outcome="timeout").inc()
            raise TransientDeliveryError(f"timeout after {self.settings.timeout_ms}ms") from exc
        except httpx.TimeoutException as exc:
            DELIVERY_ATTEMPTS.labels(outcome="timeout").inc()
            raise TransientDeliveryError(f"timeout: {exc}") from exc
        except httpx.HTTPError as exc:
            DELIVERY_ATTEMPTS.labels(outcome="network").inc()
            raise TransientDeliveryError(f"network error: {exc}") from exc
        except (httpx.InvalidURL, TypeError, ValueError) as exc:
            # bad endpoint or unserializable payload: retrying cannot help
            DELIVERY_ATTEMPTS.labels(outcome="terminal").inc()
            raise TerminalDeliveryError(f"request not sent: {exc}") from exc

        error = classify_status(response.status_code)
        if error is None:
            DELIVERY_ATTEMPTS.labels(outcome="success").inc()
            self.log.debug("delivery_attempt_ok", attempt=attempt, status=response.status_code, url=redact_url(url))
            return _decode(response)
        outcome = "transient" if isinstance(error, TransientDeliveryError) else "terminal"
        DELIVERY_ATTEMPTS.labels(outcome=outcome).inc()
        self.log.warning(
            "delivery_attempt_failed",
            attempt=attempt,
            status=response.status_code,
            outcome=outcome,
            url=redact_url(url),
        )
        raise error

    async def post_json(self, payload: Any, trace_id: Optional[str] = None) -> DeliveryResult:
        """Deliver ``payload``; always returns a ``DeliveryResult``."""
        trace_id = trace_id or new_trace_id()
        log = self.log.bind(trace_id=trace_id)

        if self.settings.kill_switch:
            exc = KillSwitchActive("kill switch active, delivery skipped")
            DELIVERY_RESULTS.labels(result="kill_switch").inc()
            log.warning("delivery_skipped", reason="kill_switch")
            return DeliveryResult(ok=False, trace_id=trace_id, error=str(exc), attempts=0)

        attempts = 0
        started = time.perf_counter()
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.retries),
            wait=wait_exponential(
                multiplier=self.settings.retry_backoff_ms / 1000.0,
                max=self.settings.retry_backoff_max_ms / 1000.0,
            ),
            retry=retry_if_exception_type(TransientDeliveryError),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    response = await self._attempt(payload, trace_id, attempts)
        except DeliveryError as exc:
            DELIVERY_DURATION_SECONDS.observe(time.perf_counter() - started)
            category = "transient" if isinstance(exc, TransientDeliveryError) else "terminal"
            DELIVERY_RESULTS.labels(result=f"failed_{category}").inc()
            log.error(
                "delivery_failed",
                attempts=attempts,
                status=exc.status,
                error=str(exc),
                url=redact_url(self.settings.webapp_url),
            )
            log_delivery_failure(category, exc, trace_id=trace_id, path=self.failure_log_path)
            return DeliveryResult(
                ok=False, trace_id=trace_id, error=str(exc), status=exc.status, attempts=attempts
            )
        except RetryError as exc:  # pragma: no cover - reraise=True surfaces the last error
            DELIVERY_RESULTS.labels(result="failed_transient").inc()
            return DeliveryResult(ok=False, trace_id=trace_id, error=str(exc), attempts=attempts)

        DELIVERY_DURATION_SECONDS.observe(time.perf_counter() - started)
        DELIVERY_RESULTS.labels(result="success").inc()
        log.info("delivery_ok", attempts=attempts)
        return DeliveryResult(ok=True, trace_id=trace_id, response=response, attempts=attempts)


__all__ = [
    "DeliveryClient",
    "build_url",
    "classify_status",
    "SECRET_PARAM",
    "TRACE_PARAM",
    "TERMINAL_STATUSES",
]
