"""OpenAI and OpenAI-compatible chat completion APIs (DeepSeek, Groq, etc.)."""

from __future__ import annotations

import httpx

from pai.ai.errors import ProviderError
from pai.ai.providers.base import HTTPProvider, openai_payload, parse_openai_response
from pai.ai.schemas import CompletionRequest, CompletionResponse, ModelInfo

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_DEEPSEEK_BASE_URL = "https://api.deepseek.com"


class OpenAIProvider(HTTPProvider):
    """Bearer-authenticated ``POST {base}/chat/completions``.

    The base URL is configurable so any OpenAI-compatible endpoint can be
    reached; pass ``name`` to tell multiple instances apart in logs.
    """

    name = "openai"
    default_base_url = DEFAULT_OPENAI_BASE_URL
    default_model = "gpt-4o-mini"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        models: list[ModelInfo] | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(base_url=base_url, http_client=http_client, models=models, name=name)
        self._api_key = api_key

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        payload = openai_payload(request, self.resolve_model(request))
        data = await self._post_json(
            f"{self.base_url}/chat/completions", payload, headers=self._headers()
        )
        return parse_openai_response(self.name, data)

    def default_models(self) -> list[ModelInfo]:
        return [
            ModelInfo("gpt-4o", "GPT-4o", 128000, "Most capable OpenAI model"),
            ModelInfo("gpt-4o-mini", "GPT-4o Mini", 128000, "Fast, affordable OpenAI model"),
        ]

    async def health_check(self) -> None:
        try:
            await self._request("GET", f"{self.base_url}/models", headers=self._headers())
        except ProviderError as e:
            raise ProviderError(self.name, f"health check failed: {e}", e.status_code) from e


def deepseek_provider(api_key: str, **kwargs) -> OpenAIProvider:
    """OpenAIProvider preconfigured for the DeepSeek API."""
    kwargs.setdefault("base_url", DEFAULT_DEEPSEEK_BASE_URL)
    kwargs.setdefault("name", "deepseek")
    return OpenAIProvider(api_key, **kwargs)
