"""API endpoint that runs the discovery pipeline, streamed as SSE or returned as JSON."""

from __future__ import annotations

import json
import logging
import queue
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from app.config import Settings, settings
from app.models.run import PipelineRunResult, ProgressEvent
from pipelines.orchestrator import (
    PipelineError,
    PipelineOptions,
    PipelineProviders,
    PipelineRunner,
    start_streaming_run,
)
from pipelines.snapshot import SnapshotError, load_snapshot, replay_events

router = APIRouter()
logger = logging.getLogger(__name__)

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}

RunnerFactory = Callable[[int | None], PipelineRunner]


class PipelineRunRequest(BaseModel):
    """Request payload for a pipeline run."""

    max_queries: int | None = Field(default=None, ge=1, description="Catalog queries to run; capped at the catalog size.")
    stream: bool = Field(default=True, description="Stream progress as Server-Sent Events.")


def get_settings() -> Settings:
    return settings


def get_runner_factory(config: Settings = Depends(get_settings)) -> RunnerFactory:
    def _build(max_queries: int | None) -> PipelineRunner:
        return PipelineRunner(
            PipelineProviders.from_settings(config),
            options=PipelineOptions.from_settings(config, max_queries=max_queries),
        )

    return _build


def encode_event(event: ProgressEvent) -> str:
    return f"data: {json.dumps(event.as_payload())}\n\n"


@router.post("/pipeline/run", response_model=PipelineRunResult)
def run_pipeline(
    payload: PipelineRunRequest | None = None,
    config: Settings = Depends(get_settings),
    build_runner: RunnerFactory = Depends(get_runner_factory),
):
    """Run the full pipeline, or replay the demo snapshot when demo mode is on."""
    payload = payload or PipelineRunRequest()
    if config.demo_mode:
        return _serve_demo(Path(config.demo_snapshot_path), stream=payload.stream)

    runner = build_runner(payload.max_queries)
    if payload.stream:
        return StreamingResponse(
            _stream_run(runner, timeout=config.run_timeout_seconds),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    try:
        return runner.run()
    except PipelineError as exc:
        logger.error("pipeline.api_error", extra={"code": exc.code})
        raise HTTPException(status_code=_map_error_code(exc.code), detail=str(exc)) from exc
    except Exception as exc:  # noqa: BLE001 - surfaced as a single JSON error
        logger.exception("pipeline.api_error")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc) or "Pipeline failed") from exc
    finally:
        runner.close()


def _stream_run(runner: PipelineRunner, *, timeout: float) -> Iterator[str]:
    channel = start_streaming_run(runner)
    try:
        for event in channel.drain(timeout=timeout):
            yield encode_event(event)
    except queue.Empty:
        logger.error("pipeline.timeout", extra={"timeout_seconds": timeout})
        yield encode_event(
            ProgressEvent(type="error", error=f"Pipeline exceeded {timeout:.0f}s", code="PIPELINE_TIMEOUT")
        )
    finally:
        runner.close()


def _serve_demo(path: Path, *, stream: bool):
    try:
        result = load_snapshot(path)
    except SnapshotError as exc:
        logger.error("pipeline.demo_error", extra={"code": exc.code})
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    if not stream:
        return result
    return StreamingResponse(
        _encode_all(replay_events(result)),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


def _encode_all(events: Iterable[ProgressEvent]) -> Iterator[str]:
    for event in events:
        yield encode_event(event)


def _map_error_code(code: str) -> int:
    if code.endswith("_NOT_CONFIGURED"):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    if code == "PIPELINE_ERROR":
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_502_BAD_GATEWAY

