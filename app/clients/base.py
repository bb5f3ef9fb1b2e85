"""Shared HTTP plumbing for the JSON provider clients."""

from __future__ import annotations

import time
from typing import Any

import httpx

from app.clients.errors import (
    ProviderConfigError,
    ProviderError,
    ProviderRateLimitError,
    ProviderSchemaError,
    ProviderTimeoutError,
)
from app.observability.metrics import MetricsReporter, metrics


class JsonProviderClient:
    """Minimal JSON-over-HTTP client with typed errors and latency metrics."""

    provider = "provider"
    api_key_env = "API_KEY"

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str,
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
        metrics_reporter: MetricsReporter | None = None,
    ) -> None:
        self._api_key = api_key or ""
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)
        self._metrics = metrics_reporter or metrics

    def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._owns_http_client:
            self._http.close()

    def _require_api_key(self) -> str:
        if not self._api_key:
            raise ProviderConfigError(self.provider, self.api_key_env)
        return self._api_key

    def _request_json(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        tags = {"provider": self.provider, "path": path}
        start = time.perf_counter()
        try:
            response = self._http.request(method, path, params=params, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            self._record_error("TIMEOUT", tags)
            raise ProviderTimeoutError(
                f"{self.provider} request timed out", code=self._code("TIMEOUT"), provider=self.provider
            ) from exc
        except httpx.HTTPError as exc:
            self._record_error("HTTP", tags)
            raise ProviderError(
                f"HTTP error calling {self.provider}: {exc}", code=self._code("HTTP"), provider=self.provider
            ) from exc
        finally:
            self._metrics.timing("provider.latency_ms", (time.perf_counter() - start) * 1000, tags=tags)

        if response.status_code == 429:
            self._record_error("429", tags)
            raise ProviderRateLimitError(
                f"Rate limited by {self.provider}", code=self._code("429"), provider=self.provider
            )
        if response.status_code in (408, 504):
            self._record_error("TIMEOUT", tags)
            raise ProviderTimeoutError(
                f"{self.provider} request timed out", code=self._code("TIMEOUT"), provider=self.provider
            )
        if response.status_code >= 400:
            self._record_error(str(response.status_code), tags)
            detail = response.text[:200]
            raise ProviderError(
                f"{self.provider} request failed: {response.status_code} - {detail}",
                code=self._code(str(response.status_code)),
                provider=self.provider,
            )

        try:
            data = response.json()
        except ValueError as exc:
            self._record_error("SCHEMA", tags)
            raise ProviderSchemaError(
                f"Failed to decode {self.provider} response JSON.", code=self._code("SCHEMA_ERR"), provider=self.provider
            ) from exc
        if not isinstance(data, dict):
            self._record_error("SCHEMA", tags)
            raise ProviderSchemaError(
                f"{self.provider} response must be a JSON object.", code=self._code("SCHEMA_ERR"), provider=self.provider
            )
        return data

    def _code(self, suffix: str) -> str:
        return f"{self.provider.upper()}_{suffix}"

    def _record_error(self, code: str, tags: dict[str, Any]) -> None:
        self._metrics.increment("provider.errors", tags={**tags, "code": code})

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
