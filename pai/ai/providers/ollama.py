"""Self-hosted Ollama via its OpenAI-compatible endpoint (no auth)."""

from __future__ import annotations

import httpx

from pai.ai.errors import ProviderError
from pai.ai.providers.base import HTTPProvider, openai_payload, parse_openai_response
from pai.ai.schemas import CompletionRequest, CompletionResponse, ModelInfo

DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"


class OllamaProvider(HTTPProvider):
    name = "ollama"
    default_base_url = DEFAULT_OLLAMA_BASE_URL
    default_model = "llama3:8b"

    def __init__(
        self,
        base_url: str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        models: list[ModelInfo] | None = None,
    ) -> None:
        super().__init__(base_url=base_url, http_client=http_client, models=models)

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        payload = openai_payload(request, self.resolve_model(request), include_temperature=False)
        data = await self._post_json(
            f"{self.base_url}/v1/chat/completions",
            payload,
            headers={"Content-Type": "application/json"},
        )
        return parse_openai_response(self.name, data)

    def default_models(self) -> list[ModelInfo]:
        return [ModelInfo("llama3:8b", "Llama 3 8B", 8192, "Free self-hosted model via Ollama")]

    async def health_check(self) -> None:
        try:
            await self._request("GET", f"{self.base_url}/api/tags")
        except ProviderError as e:
            raise ProviderError(self.name, f"health check failed: {e}", e.status_code) from e
