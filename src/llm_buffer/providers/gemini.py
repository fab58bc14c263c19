"""Google Gemini ``streamGenerateContent`` adapter."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from llm_buffer.config import ProviderConfig
from llm_buffer.types import RequestSpec

from .base import SSEDataAdapter, compose_prompt, dig


class GeminiAdapter(SSEDataAdapter):
    """The API key travels as a query parameter; there is no system field,
    so the instructions are folded into the single text part."""

    name = "gemini"
    default_url = "https://generativelanguage.googleapis.com"

    def build_request(
        self, prompt: str, context: str, config: ProviderConfig,
    ) -> RequestSpec:
        path = (
            f"/v1beta/models/{quote(config.model, safe='')}:streamGenerateContent"
            f"?alt=sse&key={quote(config.credential, safe='')}"
        )
        instructions = config.system_prompt.strip()
        text = compose_prompt(prompt, context)
        if instructions:
            text = f"{instructions}\n\n{text}"
        return RequestSpec(
            method="POST",
            url=self.endpoint(config, path),
            headers={"Content-Type": "application/json"},
            body={"contents": {"parts": {"text": text}}},
        )

    def extract_text(self, data: Any) -> Any:
        return dig(data, "candidates", 0, "content", "parts", 0, "text")
