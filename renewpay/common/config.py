"""Central environment-driven settings for the webhook service.

The process loads this once at startup. Behavior is controlled by environment
variables (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "portone-webhook"
    log_level: str = "INFO"
    postgres_dsn: str
    # Optional at load time; every Paid/Cancelled request fails fast without it.
    portone_api_secret: str | None = None
    portone_api_url: str = "https://api.portone.io"
    provider_timeout_seconds: float = 10.0
    schedule_currency: str = "KRW"
    otel_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
