"""Client for the Snov.io email finder (OAuth client credentials)."""

from __future__ import annotations

import os
import time
from collections.abc import Callable

import httpx

from app.clients.base import JsonProviderClient
from app.clients.errors import ProviderConfigError, ProviderSchemaError
from app.clients.hunter import EmailFinding
from app.observability.metrics import MetricsReporter

TOKEN_TTL_SECONDS = 50 * 60


class SnovClient(JsonProviderClient):
    """Domain + name email lookup with a cached access token."""

    provider = "snov"

    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        *,
        base_url: str = "https://api.snov.io",
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
        metrics_reporter: MetricsReporter | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(
            None,
            base_url=base_url,
            timeout=timeout,
            http_client=http_client,
            metrics_reporter=metrics_reporter,
        )
        self._client_id = client_id or ""
        self._client_secret = client_secret or ""
        self._clock = clock
        self._token: str | None = None
        self._token_expires_at = 0.0

    @classmethod
    def from_env(cls) -> "SnovClient":
        """Instantiate the client using SNOV_CLIENT_ID / SNOV_CLIENT_SECRET."""
        return cls(os.getenv("SNOV_CLIENT_ID", ""), os.getenv("SNOV_CLIENT_SECRET", ""))

    def find_email(self, *, domain: str, first_name: str, last_name: str) -> EmailFinding | None:
        """Return the first address Snov reports for the name at ``domain``."""
        payload = {
            "access_token": self._access_token(),
            "firstName": first_name,
            "lastName": last_name,
            "domain": domain,
        }
        data = self._request_json("POST", "/v1/get-emails-from-names", json=payload)
        body = data.get("data")
        emails = body.get("emails") if isinstance(body, dict) else None
        if not isinstance(emails, list) or not emails:
            return None
        first = emails[0]
        if not isinstance(first, dict) or not first.get("email"):
            return None
        return EmailFinding(email=str(first["email"]), detail=first.get("status"))

    def _access_token(self) -> str:
        if self._token and self._clock() < self._token_expires_at:
            return self._token
        if not self._client_id or not self._client_secret:
            raise ProviderConfigError(self.provider, "SNOV_CLIENT_ID/SNOV_CLIENT_SECRET")
        data = self._request_json(
            "POST",
            "/v1/oauth/access_token",
            json={
                "grant_type": "client_credentials",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            },
        )
        token = data.get("access_token")
        if not token:
            raise ProviderSchemaError("Snov returned no access_token.", code="SNOV_SCHEMA_ERR", provider="snov")
        self._token = str(token)
        self._token_expires_at = self._clock() + TOKEN_TTL_SECONDS
        return self._token
