"""Error types shared by every external provider client."""

from __future__ import annotations


class ProviderError(RuntimeError):
    """Base error for a failed provider call."""

    def __init__(self, message: str, code: str = "PROVIDER_ERROR", *, provider: str = "provider") -> None:
        super().__init__(message)
        self.code = code
        self.provider = provider


class ProviderRateLimitError(ProviderError):
    """Raised when a provider responds with HTTP 429."""


class ProviderTimeoutError(ProviderError):
    """Raised when a provider request times out."""


class ProviderSchemaError(ProviderError):
    """Raised when a provider response does not have the expected shape."""


class ProviderConfigError(RuntimeError):
    """Raised when required provider credentials are missing.

    Deliberately not a ``ProviderError``: boundaries that degrade provider
    failures to empty results must let configuration faults abort the run.
    """

    def __init__(self, provider: str, env_var: str) -> None:
        super().__init__(f"{env_var} is required to call {provider}.")
        self.code = f"{provider.upper()}_NOT_CONFIGURED"
        self.provider = provider
        self.env_var = env_var
