from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "impact-analyzer-core"
    environment: str = "dev"
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.1:8b"
    ollama_timeout: int = 180_000
    auto_analysis_delay_seconds: float = 60.0
    otp_ttl_seconds: int = 600
    otp_max_attempts: int = 5
    otp_resend_cooldown_seconds: int = 60
    otp_reaper_interval_seconds: float = 60.0
    email_service: str = "gmail"
    email_user: str | None = None
    email_pass: str | None = None
    email_smtp_host: str | None = None
    email_smtp_port: int | None = None
    email_timeout_seconds: float = 15.0
    otel_enabled: bool = True
    otel_service_name: str = "impact-analyzer-core"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_exporter_otlp_metrics_endpoint: str | None = None
    otel_metric_export_interval_ms: int = 60_000
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    @property
    def ollama_timeout_seconds(self) -> float:
        return max(self.ollama_timeout, 1) / 1000.0


@lru_cache
def get_settings() -> Settings:
    return Settings()
