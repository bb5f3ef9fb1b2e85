"""Queue-backed progress channel between the run loop and a consumer."""

from __future__ import annotations

import logging
import queue
from collections.abc import Iterator

from app.models.run import ProgressEvent

logger = logging.getLogger("pipelines.progress")

_CLOSED = object()


class ProgressChannel:
    """Ordered, unbounded event stream; ``close()`` ends iteration for the consumer."""

    def __init__(self) -> None:
        self._queue: queue.Queue[object] = queue.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event: ProgressEvent) -> None:
        if self._closed:
            raise RuntimeError("Cannot publish to a closed progress channel.")
        logger.debug("pipeline.event", extra={"type": event.type, "phase": event.phase})
        self._queue.put(event)

    def emit(self, type_: str, **fields: object) -> None:
        self.publish(ProgressEvent(type=type_, **fields))

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put(_CLOSED)

    def drain(self, timeout: float | None = None) -> Iterator[ProgressEvent]:
        """Yield events in emission order until the channel is closed.

        ``timeout`` bounds the wait for each event; ``queue.Empty`` propagates when exceeded.
        """
        while True:
            item = self._queue.get(timeout=timeout)
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]


class NullProgress(ProgressChannel):
    """Discards events; used by non-streaming callers."""

    def publish(self, event: ProgressEvent) -> None:
        return None
