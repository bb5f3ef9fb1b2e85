from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Derm Scout"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Providers
    youtube_api_key: str | None = None
    openrouter_api_key: str | None = None
    exa_api_key: str | None = None
    hunter_api_key: str | None = None
    snov_client_id: str | None = None
    snov_client_secret: str | None = None

    # Identity extraction
    identity_model: str = "anthropic/claude-haiku-4.5"
    llm_temperature: float = 0.1
    llm_max_retries: int = 2
    llm_max_tokens: int = 1024

    # Runtime
    provider_timeout_seconds: float = 10.0
    run_timeout_seconds: float = 300.0
    default_max_queries: int = 3
    search_page_size: int = 50
    recent_video_count: int = 5

    # Demo mode serves a captured run instead of calling providers
    demo_mode: bool = False
    demo_snapshot_path: str = "fixtures/demo_snapshot.json"

    # Sentry
    sentry_dsn: str | None = None

    # Metrics
    metrics_backend: str = "stdout"
    metrics_namespace: str = "derm_scout"
    metrics_disable: bool = False
    metrics_sample_rate: float = 1.0
    metrics_statsd_host: str = "127.0.0.1"
    metrics_statsd_port: int = 8125

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = []  # Empty by default for security

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
