from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderName = Literal["openai", "gemini", "grok"]


class Settings(BaseSettings):
    app_name: str = "scholarbridge"
    environment: str = "dev"
    log_level: str = "INFO"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    ai_provider: ProviderName = "grok"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = "https://api.openai.com/v1"
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    grok_api_key: str | None = None
    grok_model: str = "grok-3-latest"
    grok_base_url: str = "https://api.x.ai/v1"
    provider_timeout_seconds: float = 120.0
    query_delay_seconds: float = 2.0
    link_check_timeout_seconds: float = 8.0
    link_check_concurrency: int = 5
    link_check_user_agent: str = "Mozilla/5.0 (compatible; ScholarBridge/1.0; +https://scholarbridge.com)"
    fetch_interval_seconds: float = 6 * 60 * 60
    initial_delay_seconds: float = 3.0
    max_backoff_seconds: float = 300.0
    otel_enabled: bool = True
    otel_service_name: str = "scholarbridge"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="SB_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
