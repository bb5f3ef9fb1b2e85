"""Pipeline run output and progress event models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from app.models.candidate import Channel, GateReason, Identity, RecentVideo
from app.models.contact import ContactRecord
from app.models.verification import VerificationResult


def _utcnow() -> datetime:
    return datetime.now(UTC)


class VerifiedCandidate(BaseModel):
    """Output unit handed to every downstream consumer."""

    channel: Channel
    recent_videos: list[RecentVideo] = Field(default_factory=list)
    identity: Identity
    verification: VerificationResult
    contact: ContactRecord
    discovered_at: datetime = Field(default_factory=_utcnow)


class GatedCandidate(BaseModel):
    """A discovered channel dropped before verification."""

    channel_id: str
    title: str
    reason: GateReason
    detail: str = ""


class CandidateDebugLog(BaseModel):
    """Human-readable trace of one channel through every phase."""

    channel_id: str
    channel_title: str
    discovery: str = ""
    gate: str = ""
    identity: str = ""
    verification: str = ""
    enrichment: list[str] = Field(default_factory=list)
    final_status: str = ""


class CostBreakdown(BaseModel):
    """Monetary spend per provider in USD."""

    youtube: float = 0.0
    llm: float = 0.0
    exa: float = 0.0
    hunter: float = 0.0
    snov: float = 0.0
    npi: float = 0.0
    total: float = 0.0


class ApiEffectiveness(BaseModel):
    """Searched/found counters for one enrichment provider."""

    provider: str
    searched: int = 0
    found: int = 0
    hit_rate: int = Field(default=0, description="0-100, rounded.")
    cost_per_success: float = 0.0


class SourceStats(BaseModel):
    """Per-field source frequencies and provider effectiveness."""

    email: dict[str, int] = Field(default_factory=dict)
    phone: dict[str, int] = Field(default_factory=dict)
    linkedin: dict[str, int] = Field(default_factory=dict)
    doximity: dict[str, int] = Field(default_factory=dict)
    website: dict[str, int] = Field(default_factory=dict)
    api_effectiveness: list[ApiEffectiveness] = Field(default_factory=list)


class RunStats(BaseModel):
    """Funnel counts for a run."""

    discovered: int = 0
    gated: int = 0
    gated_reasons: dict[str, int] = Field(default_factory=dict)
    identified: int = 0
    verified: int = 0
    with_email: int = 0
    with_linkedin: int = 0
    with_doximity: int = 0
    with_phone: int = 0
    quota_units: int = 0


class PipelineRunResult(BaseModel):
    """Aggregate result of a single pipeline invocation."""

    candidates: list[VerifiedCandidate] = Field(default_factory=list)
    gated: list[GatedCandidate] = Field(default_factory=list)
    costs: CostBreakdown = Field(default_factory=CostBreakdown)
    stats: RunStats = Field(default_factory=RunStats)
    source_stats: SourceStats = Field(default_factory=SourceStats)
    debug_logs: list[CandidateDebugLog] = Field(default_factory=list)
    started_at: datetime
    completed_at: datetime | None = None


class ProgressEvent(BaseModel):
    """Single entry of the progress stream."""

    type: Literal["phase", "progress", "complete", "error"]
    phase: int | None = None
    label: str | None = None
    count: int | None = None
    processed: int | None = None
    total: int | None = None
    passed: int | None = None
    candidate: str | None = None
    tier: str | None = None
    result: PipelineRunResult | None = None
    error: str | None = None
    code: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.type in ("complete", "error")

    def as_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
