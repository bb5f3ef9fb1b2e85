"""Capture and replay pipeline runs for demo mode."""

from __future__ import annotations

import json
import logging
import math
import time
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from app.models.run import PipelineRunResult, ProgressEvent
from pipelines.discovery.queries import DISCOVERY_QUERIES

logger = logging.getLogger("pipelines.snapshot")

REPLAY_TICKS = 12


class SnapshotError(RuntimeError):
    """Raised when a demo snapshot is missing or unreadable."""

    def __init__(self, message: str, code: str = "SNAPSHOT_ERROR") -> None:
        super().__init__(message)
        self.code = code


def save_snapshot(result: PipelineRunResult, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "captured_at": datetime.now(UTC).isoformat(),
        "result": result.model_dump(mode="json"),
    }
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    logger.info("Saved demo snapshot with %s candidates to %s", len(result.candidates), path)
    return path


def load_snapshot(path: Path) -> PipelineRunResult:
    if not path.exists():
        raise SnapshotError(
            f"Demo mode is enabled but no snapshot exists at {path}. Run the pipeline with --snapshot first.",
            code="SNAPSHOT_NOT_FOUND",
        )
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        return PipelineRunResult.model_validate(payload["result"])
    except (ValueError, KeyError, TypeError, ValidationError) as exc:
        raise SnapshotError(f"Demo snapshot at {path} is invalid: {exc}", code="SNAPSHOT_INVALID") from exc


def replay_events(
    result: PipelineRunResult,
    *,
    delay: float = 0.0,
    sleep: Callable[[float], None] | None = None,
) -> Iterator[ProgressEvent]:
    """Re-emit a captured run as the event sequence a live run would produce."""
    sleeper = sleep or time.sleep

    def pause() -> None:
        if delay > 0:
            sleeper(delay)

    stats = result.stats
    yield ProgressEvent(type="phase", phase=1, label="Discovering channels on YouTube...")
    pause()
    yield ProgressEvent(
        type="phase",
        phase=1,
        label=f"Searching dermatologist content across {len(DISCOVERY_QUERIES)} queries...",
    )
    pause()
    yield ProgressEvent(type="phase", phase=1, label=f"Discovered {stats.discovered} channels", count=stats.discovered)

    yield ProgressEvent(type="phase", phase=2, label="Filtering and identifying doctors...")
    step = max(1, math.ceil(stats.discovered / REPLAY_TICKS))
    for processed in range(step, stats.discovered + step, step):
        pause()
        yield ProgressEvent(type="progress", phase=2, processed=min(processed, stats.discovered), total=stats.discovered)
    yield ProgressEvent(
        type="phase",
        phase=2,
        label=f"{stats.identified} doctors identified, {stats.gated} filtered",
        count=stats.identified,
    )

    yield ProgressEvent(type="phase", phase=3, label="Verifying credentials and finding contact info...")
    total = len(result.candidates)
    for index, candidate in enumerate(result.candidates, start=1):
        pause()
        yield ProgressEvent(
            type="progress",
            phase=3,
            processed=index,
            total=total,
            candidate=candidate.identity.display_name or candidate.channel.title,
            tier=candidate.verification.tier.value,
        )
    yield ProgressEvent(type="complete", result=result)
