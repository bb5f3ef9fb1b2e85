"""Domain models for channel discovery, gating, and identity extraction."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

HIDDEN_SUBSCRIBERS = -1


class Channel(BaseModel):
    """YouTube channel snapshot captured during discovery."""

    channel_id: str
    title: str
    description: str = ""
    thumbnail_url: str = ""
    subscriber_count: int = Field(description="-1 when the channel hides its subscriber count.")
    video_count: int = 0
    view_count: int = 0
    country: str | None = None
    custom_url: str | None = None
    uploads_playlist_id: str | None = None
    discovery_query: str = "unknown"

    model_config = ConfigDict(frozen=True)

    @property
    def reach_hidden(self) -> bool:
        return self.subscriber_count == HIDDEN_SUBSCRIBERS


class RecentVideo(BaseModel):
    """Recent upload used to measure channel activity."""

    video_id: str = ""
    title: str = "Untitled"
    published_at: datetime | None = None

    model_config = ConfigDict(frozen=True)

    @field_validator("published_at", mode="before")
    @classmethod
    def _parse_published_at(cls, value: object) -> datetime | None:
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            parsed = value
        else:
            try:
                parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
            except ValueError:
                return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        return parsed


class Candidate(BaseModel):
    """A unique discovered channel plus its recent uploads."""

    channel: Channel
    recent_videos: list[RecentVideo] = Field(default_factory=list)
    last_upload_at: datetime | None = None

    @classmethod
    def from_videos(cls, channel: Channel, videos: Sequence[RecentVideo]) -> "Candidate":
        timestamps = [video.published_at for video in videos if video.published_at is not None]
        return cls(
            channel=channel,
            recent_videos=list(videos),
            last_upload_at=max(timestamps) if timestamps else None,
        )


class GateReason(str, Enum):
    """Why a candidate was dropped before verification."""

    LOW_REACH = "low_reach"
    INACTIVE = "inactive"
    NO_UPLOADS = "no_uploads"
    EXTRACTION_FAILED = "extraction_failed"
    NOT_PROFESSIONAL = "not_professional"
    NON_DOMESTIC = "non_domestic"


class GateOutcome(BaseModel):
    """Pass/fail decision of an admission check."""

    passed: bool
    reason: GateReason | None = None
    detail: str = ""

    model_config = ConfigDict(frozen=True)


class Identity(BaseModel):
    """Real-world identity resolved from channel metadata."""

    first_name: str | None = None
    last_name: str | None = None
    display_name: str | None = None
    credentials: str | None = None
    is_professional: bool = False
    is_specialist: bool = False
    board_certified: bool | None = None
    hospital_affiliation: str | None = None
    location: str | None = None
    country_code: str | None = None
    confidence: Literal["high", "medium", "low"] = "low"
    reasoning: str = "No reasoning provided"

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)
