from __future__ import annotations

from typing import Any
from urllib.parse import quote

from scholarbridge.services.providers.base import (
    ProviderResponseError,
    SearchProvider,
    build_system_prompt,
    build_user_prompt,
)


class GeminiProvider(SearchProvider):
    """Gemini ``generateContent`` grounded with Google Search."""

    provider_name = "Gemini"

    def _endpoint(self) -> str:
        return f"{self.base_url}/models/{quote(self.model)}:generateContent"

    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self.api_key or ""}

    def _build_payload(self, query: str) -> dict[str, Any]:
        return {
            "systemInstruction": {"parts": [{"text": build_system_prompt()}]},
            "contents": [{"role": "user", "parts": [{"text": build_user_prompt(query)}]}],
            "tools": [{"google_search": {}}],
            "generationConfig": {"temperature": 0.0},
        }

    def _extract_text(self, payload: Any) -> str:
        if not isinstance(payload, dict):
            raise ProviderResponseError("response is not a JSON object")
        candidates = payload.get("candidates")
        if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
            raise ProviderResponseError("response has no candidates")
        content = candidates[0].get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            raise ProviderResponseError("response has no content parts")
        texts = [part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)]
        if not texts:
            raise ProviderResponseError("response has no text parts")
        return "".join(texts)
