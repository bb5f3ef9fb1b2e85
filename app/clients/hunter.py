"""Client for the Hunter.io email finder."""

from __future__ import annotations

import os
from dataclasses import dataclass

import httpx

from app.clients.base import JsonProviderClient
from app.observability.metrics import MetricsReporter


@dataclass(frozen=True)
class EmailFinding:
    """Email resolved by a domain-based finder."""

    email: str
    score: float | None = None
    detail: str | None = None


class HunterClient(JsonProviderClient):
    """Domain + name email lookup."""

    provider = "hunter"
    api_key_env = "HUNTER_API_KEY"

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str = "https://api.hunter.io/v2",
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
    def from_env(cls) -> "HunterClient":
        """Instantiate the client using the HUNTER_API_KEY environment variable."""
        return cls(os.getenv("HUNTER_API_KEY", ""))

    def find_email(self, *, domain: str, first_name: str, last_name: str) -> EmailFinding | None:
        """Return the most likely address at ``domain`` or ``None``."""
        params = {
            "domain": domain,
            "first_name": first_name,
            "last_name": last_name,
            "api_key": self._require_api_key(),
        }
        data = self._request_json("GET", "/email-finder", params=params)
        result = data.get("data")
        if not isinstance(result, dict) or not result.get("email"):
            return None
        return EmailFinding(
            email=str(result["email"]),
            score=result.get("score") or 0,
            detail=result.get("position"),
        )
