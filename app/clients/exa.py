"""Client for interacting with the Exa semantic search API."""

from __future__ import annotations

import os
from collections.abc import Sequence
from typing import Any

import httpx

from app.clients.base import JsonProviderClient
from app.clients.errors import ProviderSchemaError
from app.observability.metrics import MetricsReporter


class ExaClient(JsonProviderClient):
    """Minimal Exa API client."""

    provider = "exa"
    api_key_env = "EXA_API_KEY"

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str = "https://api.exa.ai",
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
        metrics_reporter: MetricsReporter | None = None,
    ) -> None:
        super().__init__(
            api_key,
            base_url=base_url,
            timeout=timeout,
            http_client=http_client,
            metrics_reporter=metrics_reporter,
        )

    @classmethod
    def from_env(cls) -> "ExaClient":
        """Instantiate the client using the EXA_API_KEY environment variable."""
        return cls(os.getenv("EXA_API_KEY", ""))

    def search(
        self,
        *,
        query: str,
        num_results: int = 5,
        search_type: str = "auto",
        category: str | None = None,
        include_domains: Sequence[str] | None = None,
        exclude_domains: Sequence[str] | None = None,
        contents: dict[str, Any] | None = None,
        autoprompt: bool = True,
    ) -> list[dict[str, Any]]:
        """Run an Exa search and return the raw result objects."""
        if num_results <= 0:
            raise ValueError("num_results must be a positive integer.")

        payload: dict[str, Any] = {
            "query": query,
            "numResults": num_results,
            "useAutoprompt": autoprompt,
            "type": search_type,
        }
        if include_domains:
            payload["includeDomains"] = list(include_domains)
        if exclude_domains:
            payload["excludeDomains"] = list(exclude_domains)
        if category:
            payload["category"] = category
        if contents:
            payload["contents"] = contents
        headers = {"x-api-key": self._require_api_key()}

        data = self._request_json("POST", "/search", json=payload, headers=headers)
        results = data.get("results")

        if not isinstance(results, list):
            raise ProviderSchemaError("`results` missing from Exa response.", code="EXA_SCHEMA_ERR", provider="exa")

        if not all(isinstance(entry, dict) for entry in results):
            raise ProviderSchemaError(
                "Entries in `results` must be JSON objects.", code="EXA_SCHEMA_ERR", provider="exa"
            )

        return results
