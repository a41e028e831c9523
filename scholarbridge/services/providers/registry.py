from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

import httpx

from scholarbridge.core.config import ProviderName, Settings
from scholarbridge.services.providers.base import ProviderNotConfiguredError, SearchProvider
from scholarbridge.services.providers.gemini import GeminiProvider
from scholarbridge.services.providers.grok import GrokProvider
from scholarbridge.services.providers.openai import OpenAIProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[SearchProvider]] = {
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
    "grok": GrokProvider,
}


@dataclass(frozen=True, slots=True)
class ProviderSettings:
    api_key: str | None
    model: str
    base_url: str


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    provider: ProviderName
    providers: dict[str, ProviderSettings]
    timeout_seconds: float = 120.0

    @classmethod
    def from_settings(cls, settings: Settings) -> ProviderConfig:
        return cls(
            provider=settings.ai_provider,
            providers={
                "openai": ProviderSettings(settings.openai_api_key, settings.openai_model, settings.openai_base_url),
                "gemini": ProviderSettings(settings.gemini_api_key, settings.gemini_model, settings.gemini_base_url),
                "grok": ProviderSettings(settings.grok_api_key, settings.grok_model, settings.grok_base_url),
            },
            timeout_seconds=settings.provider_timeout_seconds,
        )

    def has_key(self, name: str) -> bool:
        entry = self.providers.get(name)
        return bool(entry and entry.api_key and entry.api_key.strip())


def build_provider(config: ProviderConfig, *, client: httpx.AsyncClient | None = None) -> SearchProvider:
    """Instantiate the configured provider or fail loudly."""
    provider_class = PROVIDER_CLASSES.get(config.provider)
    entry = config.providers.get(config.provider)
    if provider_class is None or entry is None:
        raise ProviderNotConfiguredError(f"unknown provider: {config.provider}")

    if not config.has_key(config.provider):
        available = [name for name in PROVIDER_CLASSES if config.has_key(name)]
        if available:
            hint = f"available providers: {', '.join(available)}; switch SB_AI_PROVIDER to one of them"
        else:
            hint = "no API keys found; set one of SB_OPENAI_API_KEY, SB_GEMINI_API_KEY, SB_GROK_API_KEY"
        raise ProviderNotConfiguredError(f"failed to initialize provider {config.provider}: {hint}")

    provider = provider_class(
        api_key=entry.api_key,
        model=entry.model,
        base_url=entry.base_url,
        timeout_seconds=config.timeout_seconds,
        client=client,
    )
    logger.info("initialized search provider=%s model=%s", provider.name(), entry.model)
    return provider


def available_providers(config: ProviderConfig) -> list[dict[str, Any]]:
    return [
        {
            "provider": name,
            "configured": config.has_key(name),
            "current": name == config.provider,
        }
        for name in PROVIDER_CLASSES
    ]
