"""Phase 2 admission checks applied before any paid provider is called."""

from __future__ import annotations

from datetime import datetime

from app.models.candidate import Candidate, GateOutcome, GateReason

MIN_SUBSCRIBERS = 5000
MAX_DAYS_SINCE_UPLOAD = 90


def days_since(timestamp: datetime, now: datetime) -> int:
    """Whole days elapsed between ``timestamp`` and ``now`` (floored)."""
    return int((now - timestamp).total_seconds() // 86400)


def evaluate_gate(
    candidate: Candidate,
    *,
    now: datetime,
    min_subscribers: int = MIN_SUBSCRIBERS,
    max_days: int = MAX_DAYS_SINCE_UPLOAD,
) -> GateOutcome:
    """Reach check first, then recency; the first failing check decides."""
    channel = candidate.channel
    if not channel.reach_hidden and channel.subscriber_count < min_subscribers:
        return GateOutcome(
            passed=False,
            reason=GateReason.LOW_REACH,
            detail=f"FAIL: {channel.subscriber_count:,} subs < {min_subscribers:,} min",
        )

    if candidate.last_upload_at is None:
        return GateOutcome(passed=False, reason=GateReason.NO_UPLOADS, detail="FAIL: No recent uploads found")

    elapsed = days_since(candidate.last_upload_at, now)
    if elapsed > max_days:
        return GateOutcome(
            passed=False,
            reason=GateReason.INACTIVE,
            detail=f"FAIL: Last upload {elapsed} days ago > {max_days} max",
        )

    reach = "hidden" if channel.reach_hidden else f"{channel.subscriber_count:,}"
    return GateOutcome(passed=True, detail=f"PASS ({reach} subs, last upload {elapsed}d ago)")
