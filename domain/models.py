from __future__ import annotations
from typing import Any, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime, timezone

URN_REGEX = r"^urn:li:activity:\d+$"


def _captured_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class _Envelope(BaseModel):
    """Fields every delivered payload carries (session enrichment)."""

    model_config = ConfigDict(extra="allow")

    company_id: str = Field(..., min_length=1)
    team_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    captured_at_iso: str = Field(default_factory=_captured_now)
    trace_id: Optional[str] = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class PostPayload(_Envelope):
    """One post record as the collection endpoint receives it.

    Validated right before delivery: a payload failing here is dropped, never
    sent.
    """

    type: Literal["post"] = "post"
    post_id: str = Field(..., pattern=URN_REGEX, description="urn:li:activity:<digits>")
    reactions: int = Field(0, ge=0)
    comments: int = Field(0, ge=0)
    shares: int = Field(0, ge=0)
    reshares: int = Field(0, ge=0)
    impressions: int = Field(0, ge=0)
    created_at: Optional[str] = None
    lang: str = "other"
    is_repost: bool = False
    engagement_rate: float = Field(0.0, ge=0.0, le=1.0)

    @field_validator("is_repost")
    @classmethod
    def _never_repost(cls, v: bool) -> bool:
        if v:
            raise ValueError("reposts are never delivered")
        return v


class DailyPayload(_Envelope):
    """Daily KPI snapshot of the creator dashboard."""

    type: Literal["daily"] = "daily"
    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    followers: int = Field(0, ge=0)
    profile_views_90d: int = Field(0, ge=0)
    global_posts_impressions_last_7d: int = Field(0, ge=0)
    search_appearances_last_week: int = Field(0, ge=0)


class BatchPayload(BaseModel):
    type: Literal["post", "daily"] = "post"
    items: list[dict[str, Any]] = Field(..., min_length=2)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


__all__ = ["URN_REGEX", "PostPayload", "DailyPayload", "BatchPayload"]
