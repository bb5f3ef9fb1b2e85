from __future__ import annotations

import logging
import secrets
from typing import Any

from statsd import StatsClient

from app.config import Settings, settings

logger = logging.getLogger("app.metrics")


class MetricsReporter:
    """Provider call metrics emitted to the log stream and optionally StatsD."""

    def __init__(self, config: Settings | None = None) -> None:
        config = config or settings
        self._disabled = config.metrics_disable
        self._namespace = config.metrics_namespace or "derm_scout"
        self._backend = (config.metrics_backend or "stdout").lower()
        self._sample_rate = max(0.0, min(config.metrics_sample_rate, 1.0))
        self._statsd: StatsClient | None = None
        if self._backend == "statsd" and not self._disabled:
            try:
                self._statsd = StatsClient(
                    host=config.metrics_statsd_host,
                    port=config.metrics_statsd_port,
                    prefix="",
                )
            except OSError as exc:  # pragma: no cover - socket setup failure
                self._log_backend_error("statsd.init", exc)

    def timing(self, metric: str, value_ms: float, *, tags: dict[str, Any] | None = None) -> None:
        self._emit("timing", metric, value_ms, tags=tags)

    def gauge(self, metric: str, value: float, *, tags: dict[str, Any] | None = None) -> None:
        self._emit("gauge", metric, value, tags=tags)

    def increment(
        self, metric: str, value: float = 1.0, *, tags: dict[str, Any] | None = None
    ) -> None:
        self._emit("counter", metric, value, tags=tags)

    def _emit(
        self, metric_type: str, metric: str, value: float, *, tags: dict[str, Any] | None
    ) -> None:
        if self._disabled or value is None:
            return
        sampled = metric_type != "gauge" and self._sample_rate < 1.0
        sample_rate = self._sample_rate if sampled else 1.0
        if sampled:
            roll = secrets.randbelow(1_000_000) / 1_000_000
            if roll > sample_rate:
                return
        name = self._normalize_metric(metric)
        payload = {
            "metric": name,
            "value": round(float(value), 4),
            "type": metric_type,
            "tags": tags or {},
        }
        if sampled:
            payload["sample_rate"] = round(sample_rate, 4)
        logger.debug("derm_scout.metric", extra={"metrics": payload})
        if self._statsd is not None:
            try:
                if metric_type == "timing":
                    self._statsd.timing(name, value, rate=sample_rate)
                elif metric_type == "gauge":
                    self._statsd.gauge(name, value)
                else:
                    self._statsd.incr(name, value, rate=sample_rate)
            except OSError as exc:  # pragma: no cover - socket failures
                self._log_backend_error(name, exc)

    def _normalize_metric(self, metric: str) -> str:
        trimmed = (metric or "").strip()
        if trimmed.startswith(f"{self._namespace}."):
            return trimmed
        return f"{self._namespace}.{trimmed}" if trimmed else self._namespace

    def _log_backend_error(self, metric: str, exc: Exception) -> None:
        logger.warning(
            "metrics.backend_error",
            extra={"metric": metric, "backend": self._backend, "error": type(exc).__name__},
        )


metrics = MetricsReporter()
