"""Client for the public NPI Registry API (no authentication)."""

from __future__ import annotations

from typing import Any

import httpx

from app.clients.base import JsonProviderClient
from app.observability.metrics import MetricsReporter

API_VERSION = "2.1"
INDIVIDUAL_ENUMERATION = "NPI-1"
DEFAULT_LIMIT = 10


class NPIClient(JsonProviderClient):
    """Search individual providers by name, state, and taxonomy."""

    provider = "npi"

    def __init__(
        self,
        *,
        base_url: str = "https://npiregistry.cms.hhs.gov",
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
        metrics_reporter: MetricsReporter | None = None,
    ) -> None:
        super().__init__(
            None,
            base_url=base_url,
            timeout=timeout,
            http_client=http_client,
            metrics_reporter=metrics_reporter,
        )

    def search(
        self,
        *,
        first_name: str,
        last_name: str,
        state: str | None = None,
        taxonomy_description: str | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> tuple[list[dict[str, Any]], int]:
        """Return raw result records and the registry-reported result count."""
        params: dict[str, Any] = {
            "version": API_VERSION,
            "first_name": first_name,
            "last_name": last_name,
            "enumeration_type": INDIVIDUAL_ENUMERATION,
            "limit": limit,
        }
        if state and len(state) == 2:
            params["state"] = state.upper()
        if taxonomy_description:
            params["taxonomy_description"] = taxonomy_description

        data = self._request_json("GET", "/api/", params=params)
        results = data.get("results")
        if not isinstance(results, list):
            results = []
        records = [record for record in results if isinstance(record, dict)]
        try:
            total = int(data.get("result_count") or 0)
        except (TypeError, ValueError):
            total = len(records)
        return records, total
