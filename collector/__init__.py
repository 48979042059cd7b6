"""LinkedIn KPI collector.

Extracts post metrics and creator-dashboard KPIs from LinkedIn page snapshots
and delivers them to a remote collection endpoint.

MODULES:
    - bootstrap: settings, structured logging, metrics instruments
    - field_specs: declarative per-page field specifications
    - core: document model, normalisation, field resolution, extraction
    - runtime: session context, batching, runtime models
    - transport: resilient HTTP delivery

USAGE:
    from collector import bootstrap, SessionContext, SoupDocument

    session = SessionContext(bootstrap(), user_id="jdupont")
    records = session.extract(SoupDocument.from_html(html))
    results = await session.deliver(records)
"""

from .bootstrap import AppContext, Settings, bootstrap  # noqa: F401
from .core.soup import SoupDocument  # noqa: F401
from .runtime.session import SessionContext  # noqa: F401
from .transport import DeliveryClient  # noqa: F401

__version__ = "1.0.0"

__all__ = [
    "AppContext",
    "Settings",
    "bootstrap",
    "SoupDocument",
    "SessionContext",
    "DeliveryClient",
]
