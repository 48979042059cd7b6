from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass(slots=True)
class ExtractionResult:
    """Value resolved for one field plus the strategy that produced it."""

    value: Any
    strategy: str  # selector | context | pattern | default
    source: Optional[str] = None  # selector / pattern that matched

    @property
    def found(self) -> bool:
        return self.strategy != "default"


@dataclass(slots=True)
class Record:
    identifier: str
    reactions: int = 0
    comments: int = 0
    shares: int = 0
    reshares: int = 0
    impressions: int = 0
    created_at: str = ""
    lang: str = "other"
    is_repost: bool = False
    engagement_rate: float = 0.0
    # field key -> winning strategy; diagnostics only, not delivered
    strategies: dict[str, str] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("strategies", None)
        data["post_id"] = data.pop("identifier")
        return data


@dataclass(slots=True)
class KpiSnapshot:
    followers: int = 0
    profile_views_90d: int = 0
    global_posts_impressions_last_7d: int = 0
    search_appearances_last_week: int = 0
    date: str = ""
    strategies: dict[str, str] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("strategies", None)
        return data


@dataclass(slots=True, frozen=True)
class DeliveryEnvelope:
    payload: dict[str, Any]
    trace_id: str
    batch_index: int = 1
    size: int = 1


@dataclass(slots=True)
class DeliveryResult:
    ok: bool
    trace_id: str
    response: Any = None
    error: Optional[str] = None
    status: Optional[int] = None
    attempts: int = 0


__all__ = [
    "ExtractionResult",
    "Record",
    "KpiSnapshot",
    "DeliveryEnvelope",
    "DeliveryResult",
]
