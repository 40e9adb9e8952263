"""Runtime configuration.

Every field can be set from the environment with the ``STOREPULSE_``
prefix, e.g. ``STOREPULSE_MEMORY_LIMIT=1G`` or
``STOREPULSE_ALERTING__SLACK_WEBHOOK_URL=https://hooks.slack.com/...``.
"""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from storepulse.core.units import parse_bytes


class AlertingSettings(BaseModel):
    """Alert channel configuration."""

    slack_webhook_url: str | None = None
    webhook_url: str | None = None
    smtp_host: str | None = None
    smtp_port: int = 25
    email_from: str = "storepulse@localhost"
    email_to: list[str] = Field(default_factory=list)
    http_timeout: float = 5.0


class MonitoringSettings(BaseSettings):
    """Monitoring configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STOREPULSE_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    # Platform layout
    root_path: Path = Path(".")
    storage_path: Path = Path("storage")
    plugins_path: Path = Path("plugins")
    sessions_path: Path | None = None
    error_log: Path | None = None
    app_log_path: Path | None = None
    version_file: Path = Path("VERSION")
    environment: str = "production"
    debug: bool = False
    timezone: str = "UTC"
    locale: str = "en_US"

    # Limits
    memory_limit: str = "512M"
    max_execution_time: float = 30.0
    upload_max_size: str = "8M"
    post_max_size: str = "8M"
    max_file_uploads: int = 20

    # Backends
    cache_db: Path = Path("storage/cache/monitoring.db")
    log_db: Path | None = None
    redis_url: str | None = None
    database_dsn: str | None = None
    slow_query_ms: float = 1000.0

    # Manager
    metrics_ttl: float = 300
    custom_metric_ttl: float = 3600
    alerts_ttl: float = 3600
    histogram_size: int = 1000
    max_workers: int = 4
    collector_timeout: float = 10.0
    probe_timeout: float = 2.0
    export_prefix: str = "storepulse_"
    log_buffer_size: int = 1000

    # Cache benchmark
    benchmark_iterations: int = 100
    benchmark_payload_bytes: int = 1024
    benchmark_deadline: float = 1.0

    # Application health check
    required_modules: list[str] = Field(
        default_factory=lambda: ["storepulse.core.manager"]
    )

    alerting: AlertingSettings = Field(default_factory=AlertingSettings)

    @property
    def memory_limit_bytes(self) -> int | None:
        return parse_bytes(self.memory_limit)

    def resolve(self, path: Path | None) -> Path | None:
        """Resolve a configured path against ``root_path``."""
        if path is None:
            return None
        return path if path.is_absolute() else self.root_path / path
