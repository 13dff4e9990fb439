from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "CRM Contracts Service"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Database
    database_url: str | None = None
    db_pool_min_size: int = 1
    db_pool_max_size: int = 5

    # Lead pipeline
    signed_stage: int = 60
    success_stage: int = 100
    new_lead_search_limit: int = 50
    legacy_lead_search_limit: int = 20

    # Security
    cors_origins: list[str] = []  # Empty by default for security

    # Sentry
    sentry_dsn: str | None = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Metrics
    metrics_backend: str = "stdout"
    metrics_namespace: str = "contracts"
    metrics_disable: bool = False
    metrics_sample_rate: float = 1.0
    metrics_statsd_host: str = "127.0.0.1"
    metrics_statsd_port: int = 8125

    @property
    def search_limits(self) -> tuple[int, int]:
        """Return the (new, legacy) row caps applied to report searches."""
        return max(self.new_lead_search_limit, 0), max(self.legacy_lead_search_limit, 0)

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
