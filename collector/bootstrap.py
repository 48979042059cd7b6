"""Bootstrap module for the collector.

Central responsibilities:
- Load and validate settings from environment (.env supported by Settings class)
- Configure JSON logging through structlog, with an optional rotating file
- Declare the Prometheus instruments shared by extraction and delivery
- Build the application context handed to every scraping session

Design notes:
- No session state lives here: processed identifiers, debounce timer and
  loaded field specifications belong to ``runtime.session.SessionContext``.
- ``bootstrap()`` is a plain factory; callers own the returned context.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit
import logging
from logging.handlers import RotatingFileHandler
import sys

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from prometheus_client import Counter, Histogram

# ------------------------------------------------------------
# Settings
# ------------------------------------------------------------

class Settings(BaseSettings):
    """Collector settings, read from upper-case environment variables or .env.

    Defaults are safe for local development (delivery goes nowhere useful
    until WEBAPP_URL and SECRET are set).
    """

    app_name: str = Field("linkedin-kpi-collector", alias="APP_NAME")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_file: str | None = Field(None, alias="LOG_FILE")
    log_max_bytes: int = Field(2_000_000, alias="LOG_MAX_BYTES")  # ~2MB
    log_backup_count: int = Field(5, alias="LOG_BACKUP_COUNT")

    # Remote collection endpoint
    webapp_url: str = Field("https://script.google.com/macros/s/YOUR_SCRIPT_ID/exec", alias="WEBAPP_URL")
    secret: str = Field("", alias="SECRET")
    company_id: str = Field("c1", alias="COMPANY_ID")
    team_id: str = Field("t1", alias="TEAM_ID")

    # Timeouts & retries
    timeout_ms: int = Field(10_000, alias="TIMEOUT_MS")
    retries: int = Field(3, alias="RETRIES")  # total attempts, first one included
    retry_backoff_ms: int = Field(1_000, alias="RETRY_BACKOFF_MS")
    retry_backoff_max_ms: int = Field(10_000, alias="RETRY_BACKOFF_MAX_MS")

    # Pacing
    debounce_ms: int = Field(1_000, alias="DEBOUNCE_MS")
    batch_size_max: int = Field(10, alias="BATCH_SIZE_MAX")
    batch_pacing_ms: Optional[int] = Field(None, alias="BATCH_PACING_MS")  # None = same as DEBOUNCE_MS

    # Kill switch: disables every outbound delivery
    kill_switch: bool = Field(False, alias="KILL_SWITCH")

    # Field specifications (JSON document); built-in defaults when unset
    field_specs_path: Optional[str] = Field(None, alias="FIELD_SPECS_PATH")

    # JSON lines of final delivery failures (throttled per signature)
    delivery_failure_log: str = Field("delivery_failures.log", alias="DELIVERY_FAILURE_LOG")

    @field_validator("batch_size_max", "retries")
    @classmethod
    def _at_least_one(cls, v: int) -> int:  # noqa: D401
        return max(1, int(v))

    @field_validator("webapp_url")
    @classmethod
    def _sanitize_url(cls, v: str) -> str:  # noqa: D401
        return v.strip()

    @property
    def timeout_seconds(self) -> float:
        return max(0.001, self.timeout_ms / 1000.0)

    @property
    def pacing_seconds(self) -> float:
        ms = self.debounce_ms if self.batch_pacing_ms is None else self.batch_pacing_ms
        return max(0.0, ms / 1000.0)

    @property
    def debounce_seconds(self) -> float:
        return max(0.0, self.debounce_ms / 1000.0)

    # Pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )


# ------------------------------------------------------------
# Logging configuration (structlog)
# ------------------------------------------------------------
_SENSITIVE_KEYS = {
    "secret",
    "x-secret",
    "password",
    "authorization",
    "cookie",
    "cookies",
    "li_at",
    "token",
}


def redact_url(url: str) -> str:
    """Replace the shared secret query parameter of ``url`` with a marker."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.query:
        return url
    query = [
        (k, "[REDACTED]" if k.lower() in _SENSITIVE_KEYS else v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def redact_sensitive(logger, method_name, event_dict):  # noqa: D401
    """Best-effort redaction of secrets in logs.

    Shallow on purpose: scrubs known keys at any depth and the secret query
    parameter of anything logged under ``url``.
    """

    def _scrub(value):
        if isinstance(value, dict):
            out = {}
            for k, v in value.items():
                ks = str(k).lower()
                if ks in _SENSITIVE_KEYS or any(sk in ks for sk in ("secret", "token", "password")):
                    out[k] = "[REDACTED]"
                elif ks == "url" and isinstance(v, str):
                    out[k] = redact_url(v)
                else:
                    out[k] = _scrub(v)
            return out
        if isinstance(value, (list, tuple)):
            return [_scrub(v) for v in value]
        return value

    return _scrub(event_dict)


def configure_logging(level: str = "INFO", settings: Settings | None = None) -> None:
    """Route structlog events as JSON lines to stdout (and LOG_FILE).

    Uses a standard logging handler + structlog processors for JSON output,
    with an optional rotating file handler when LOG_FILE is set.
    """
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    def add_trace_id(logger, method_name, event_dict):  # noqa: D401
        tid = structlog.contextvars.get_contextvars().get("trace_id")
        if tid and "trace_id" not in event_dict:
            event_dict["trace_id"] = tid
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            timestamper,
            add_trace_id,
            structlog.processors.add_log_level,
            redact_sensitive,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper(), logging.INFO)),
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = []
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter("%(message)s"))
    handlers.append(stream_handler)

    if settings and settings.log_file:
        try:
            log_path = Path(settings.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                settings.log_file,
                maxBytes=settings.log_max_bytes,
                backupCount=settings.log_backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(logging.Formatter("%(message)s"))
            handlers.append(file_handler)
        except OSError as e:  # pragma: no cover
            print(f"Failed to set file handler: {e}", file=sys.stderr)

    root = logging.getLogger()
    root.handlers = handlers
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


# ------------------------------------------------------------
# Metrics instruments
# ------------------------------------------------------------
RECORDS_EMITTED = Counter(
    "collector_records_emitted_total", "Records emitted by extraction passes"
)
UNITS_DISCARDED = Counter(
    "collector_units_discarded_total", "Structural units discarded during extraction", labelnames=("reason",)
)
FIELD_RESOLUTIONS = Counter(
    "collector_field_resolutions_total", "Field resolutions by winning strategy", labelnames=("strategy",)
)
EXTRACTION_PASSES = Counter(
    "collector_extraction_passes_total", "Extraction passes run", labelnames=("page_type",)
)
DELIVERY_ATTEMPTS = Counter(
    "collector_delivery_attempts_total", "Delivery HTTP attempts by outcome", labelnames=("outcome",)
)
DELIVERY_RESULTS = Counter(
    "collector_delivery_results_total", "Final delivery results", labelnames=("result",)
)
DELIVERY_DURATION_SECONDS = Histogram(
    "collector_delivery_duration_seconds", "Duration of a delivery (all attempts) in seconds"
)
BATCHES_DISPATCHED = Counter(
    "collector_batches_dispatched_total", "Batches handed to the delivery client"
)


# ------------------------------------------------------------
# Context dataclass
# ------------------------------------------------------------
@dataclass(slots=True)
class AppContext:
    settings: Settings
    logger: structlog.BoundLogger


def bootstrap(settings: Settings | None = None, *, configure: bool = True) -> AppContext:
    """Create an application context.

    Args:
        settings: Explicit settings (tests); loaded from env when omitted.
        configure: Configure structlog/stdlib logging (disable when the host
            application already did).
    """
    settings = settings or Settings()  # Loads from env automatically
    if configure:
        configure_logging(settings.log_level, settings)
    logger = structlog.get_logger().bind(app=settings.app_name, component="bootstrap")
    logger.debug(
        "bootstrap_complete",
        url=settings.webapp_url,
        kill_switch=settings.kill_switch,
        batch_size_max=settings.batch_size_max,
        retries=settings.retries,
        field_specs_path=settings.field_specs_path,
    )
    return AppContext(settings=settings, logger=logger.bind(subsystem="core"))


__all__ = [
    "Settings",
    "AppContext",
    "bootstrap",
    "configure_logging",
    "redact_url",
]
