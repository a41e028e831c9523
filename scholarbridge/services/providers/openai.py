from __future__ import annotations

from typing import Any

from scholarbridge.services.providers.base import (
    ProviderResponseError,
    SearchProvider,
    build_system_prompt,
    build_user_prompt,
)


class OpenAIProvider(SearchProvider):
    """OpenAI Responses API with the hosted ``web_search`` tool."""

    provider_name = "OpenAI"

    def _endpoint(self) -> str:
        return f"{self.base_url}/responses"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _build_payload(self, query: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "tools": [{"type": "web_search"}],
            "instructions": build_system_prompt(),
            "input": build_user_prompt(query),
        }

    def _extract_text(self, payload: Any) -> str:
        if not isinstance(payload, dict):
            raise ProviderResponseError("response is not a JSON object")

        output_text = payload.get("output_text")
        if isinstance(output_text, str) and output_text.strip():
            return output_text

        output = payload.get("output")
        if not isinstance(output, list):
            raise ProviderResponseError("response has no output items")

        chunks: list[str] = []
        for item in output:
            if not isinstance(item, dict) or item.get("type") != "message":
                continue
            content = item.get("content")
            if not isinstance(content, list):
                continue
            for part in content:
                if isinstance(part, dict) and part.get("type") == "output_text":
                    text = part.get("text")
                    if isinstance(text, str):
                        chunks.append(text)
        if not chunks:
            raise ProviderResponseError("response has no output_text content")
        return "\n".join(chunks)
