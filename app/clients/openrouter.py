"""OpenRouter chat completions through the OpenAI SDK.

This is the only provider boundary that retries: rate limits (429) and server
errors (5xx) are retried with exponential backoff plus jitter, everything else
is raised immediately as a typed ``ProviderError``.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Final

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    InternalServerError,
    OpenAI,
    RateLimitError,
)

from app.clients.backoff import exponential_backoff
from app.clients.errors import (
    ProviderConfigError,
    ProviderError,
    ProviderRateLimitError,
    ProviderSchemaError,
    ProviderTimeoutError,
)
from app.observability.metrics import MetricsReporter, metrics

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL: Final[str] = "https://openrouter.ai/api/v1"
APP_REFERER: Final[str] = "https://futureclinic.com"
APP_TITLE: Final[str] = "Derm Scout"

# USD per 1M tokens: (input, output)
MODEL_COSTS: Final[dict[str, tuple[float, float]]] = {
    "anthropic/claude-haiku-4.5": (0.80, 4.00),
    "anthropic/claude-sonnet-4.5": (3.00, 15.00),
}


@dataclass(frozen=True)
class LLMResponse:
    """Completion text plus token usage for cost accounting."""

    content: str
    model: str
    input_tokens: int
    output_tokens: int


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Price a completion from the per-model token rate table."""
    rates = MODEL_COSTS.get(model)
    if rates is None:
        logger.warning("llm.unpriced_model", extra={"model": model})
        return 0.0
    input_rate, output_rate = rates
    return (input_tokens * input_rate + output_tokens * output_rate) / 1_000_000


class OpenRouterClient:
    """Thin wrapper around the OpenAI SDK pointed at OpenRouter."""

    provider = "openrouter"

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str = OPENROUTER_BASE_URL,
        timeout: float = 30.0,
        max_retries: int = 2,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] | None = None,
        metrics_reporter: MetricsReporter | None = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._api_key = api_key or ""
        self._base_url = base_url
        self._timeout = timeout
        self._max_retries = max_retries
        self._http_client = http_client
        self._sleep = sleep or time.sleep
        self._metrics = metrics_reporter or metrics
        self._client: OpenAI | None = None

    @classmethod
    def from_env(cls) -> "OpenRouterClient":
        """Instantiate the client using the OPENROUTER_API_KEY environment variable."""
        return cls(os.getenv("OPENROUTER_API_KEY", ""))

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def complete(
        self,
        *,
        prompt: str,
        model: str,
        system_prompt: str | None = None,
        temperature: float = 0.1,
        json_mode: bool = False,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        """Run one chat completion, retrying 429/5xx responses."""
        client = self._ensure_client()
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        request: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}
            request["extra_body"] = {"plugins": [{"id": "response-healing"}]}

        max_attempts = self._max_retries + 1
        tags = {"provider": self.provider, "model": model}
        for attempt, delay in exponential_backoff(max_attempts=max_attempts, base_delay=1.0, jitter=0.5):
            start = time.perf_counter()
            try:
                completion = client.chat.completions.create(**request)
            except (RateLimitError, InternalServerError) as exc:
                code = "OPENROUTER_429" if isinstance(exc, RateLimitError) else f"OPENROUTER_{exc.status_code}"
                self._metrics.increment("provider.errors", tags={**tags, "code": code})
                if attempt >= max_attempts:
                    error_cls = ProviderRateLimitError if isinstance(exc, RateLimitError) else ProviderError
                    raise error_cls(f"OpenRouter {model} failed after {attempt} attempts", code=code, provider=self.provider) from exc
                logger.warning(
                    "llm.retry",
                    extra={
                        "provider": self.provider,
                        "code": code,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "delay_ms": round(delay * 1000, 2),
                    },
                )
                self._sleep(delay)
                continue
            except APIStatusError as exc:
                code = f"OPENROUTER_{exc.status_code}"
                self._metrics.increment("provider.errors", tags={**tags, "code": code})
                raise ProviderError(f"OpenRouter {model} failed: {exc.status_code}", code=code, provider=self.provider) from exc
            except APITimeoutError as exc:
                self._metrics.increment("provider.errors", tags={**tags, "code": "OPENROUTER_TIMEOUT"})
                raise ProviderTimeoutError("OpenRouter request timed out", code="OPENROUTER_TIMEOUT", provider=self.provider) from exc
            except APIConnectionError as exc:
                self._metrics.increment("provider.errors", tags={**tags, "code": "OPENROUTER_HTTP"})
                raise ProviderError(f"HTTP error calling OpenRouter: {exc}", code="OPENROUTER_HTTP", provider=self.provider) from exc
            finally:
                self._metrics.timing("provider.latency_ms", (time.perf_counter() - start) * 1000, tags=tags)

            return _to_response(completion, model)

        raise ProviderError(f"OpenRouter {model} failed after retries", code="OPENROUTER_ERROR", provider=self.provider)

    def _ensure_client(self) -> OpenAI:
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise ProviderConfigError(self.provider, "OPENROUTER_API_KEY")
        self._client = OpenAI(
            api_key=self._api_key,
            base_url=self._base_url,
            timeout=self._timeout,
            max_retries=0,
            http_client=self._http_client,
            default_headers={"HTTP-Referer": APP_REFERER, "X-Title": APP_TITLE},
        )
        return self._client


def _to_response(completion: Any, requested_model: str) -> LLMResponse:
    choices = getattr(completion, "choices", None) or []
    content = choices[0].message.content if choices else None
    if not isinstance(content, str) or not content:
        raise ProviderSchemaError(
            f"OpenRouter returned empty response from {requested_model}",
            code="OPENROUTER_SCHEMA_ERR",
            provider="openrouter",
        )
    usage = getattr(completion, "usage", None)
    return LLMResponse(
        content=content,
        model=getattr(completion, "model", None) or requested_model,
        input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        output_tokens=getattr(usage, "completion_tokens", 0) or 0,
    )
