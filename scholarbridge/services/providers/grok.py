from __future__ import annotations

from typing import Any

from scholarbridge.services.providers.base import (
    ProviderResponseError,
    SearchProvider,
    build_system_prompt,
    build_user_prompt,
)


class GrokProvider(SearchProvider):
    """xAI chat completions with live web search enabled."""

    provider_name = "Grok"

    def _endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _build_payload(self, query: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": 4096,
            "messages": [
                {"role": "system", "content": build_system_prompt()},
                {"role": "user", "content": build_user_prompt(query)},
            ],
            "search_parameters": {"mode": "on"},
        }

    def _extract_text(self, payload: Any) -> str:
        if not isinstance(payload, dict):
            raise ProviderResponseError("response is not a JSON object")
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise ProviderResponseError("response has no choices")
        message = choices[0].get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise ProviderResponseError("response message has no text content")
        return content
