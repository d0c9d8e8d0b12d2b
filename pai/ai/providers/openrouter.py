"""OpenRouter: OpenAI-compatible API plus app attribution headers."""

from __future__ import annotations

import httpx

from pai.ai.errors import ProviderError
from pai.ai.providers.base import HTTPProvider, openai_payload, parse_openai_response
from pai.ai.schemas import CompletionRequest, CompletionResponse, ModelInfo

DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

APP_REFERER = "https://pandai.org"
APP_TITLE = "P&AI Bot"


class OpenRouterProvider(HTTPProvider):
    name = "openrouter"
    default_base_url = DEFAULT_OPENROUTER_BASE_URL
    default_model = "qwen/qwen-2.5-72b-instruct"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        models: list[ModelInfo] | None = None,
    ) -> None:
        super().__init__(base_url=base_url, http_client=http_client, models=models)
        self._api_key = api_key

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
            "HTTP-Referer": APP_REFERER,
            "X-Title": APP_TITLE,
        }

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        payload = openai_payload(request, self.resolve_model(request))
        data = await self._post_json(
            f"{self.base_url}/chat/completions", payload, headers=self._headers()
        )
        return parse_openai_response(self.name, data)

    def default_models(self) -> list[ModelInfo]:
        return [
            ModelInfo(
                "qwen/qwen-2.5-72b-instruct",
                "Qwen 2.5 72B",
                32768,
                "Large open-weight model via OpenRouter",
            )
        ]

    async def health_check(self) -> None:
        try:
            await self._request(
                "GET",
                f"{self.base_url}/models",
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except ProviderError as e:
            raise ProviderError(self.name, f"health check failed: {e}", e.status_code) from e
