"""Registration-order fallback router over AI providers."""

from __future__ import annotations

import logging

from pai.ai.errors import AllProvidersFailedError
from pai.ai.schemas import CompletionRequest, CompletionResponse, Provider

logger = logging.getLogger(__name__)


class Router:
    """Tries registered providers in the order they were registered.

    The first provider to succeed wins. The request's task type travels
    along to the provider but does not change the order. The fallback list
    is built once at startup and only read afterwards.
    """

    def __init__(self) -> None:
        self._providers: dict[str, Provider] = {}
        self._fallback: list[str] = []

    def register(self, name: str, provider: Provider) -> None:
        """Add a provider to the end of the fallback chain.

        Re-registering a name replaces the provider in its original slot.
        """
        if name not in self._providers:
            self._fallback.append(name)
        self._providers[name] = provider
        logger.info("AI provider registered: %s", name)

    def has_provider(self) -> bool:
        return bool(self._providers)

    def provider_names(self) -> list[str]:
        return list(self._fallback)

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        errors: list[tuple[str, Exception]] = []
        for name in self._fallback:
            provider = self._providers[name]
            try:
                response = await provider.complete(request)
            except Exception as e:
                logger.warning("AI provider %s failed, trying next: %s", name, e)
                errors.append((name, e))
                continue

            logger.debug(
                "AI request completed: provider=%s model=%s task=%s in=%d out=%d",
                name,
                response.model,
                request.task,
                response.input_tokens,
                response.output_tokens,
            )
            return response

        raise AllProvidersFailedError(errors)

    async def health_check(self) -> dict[str, Exception | None]:
        """Run every provider's health check. Maps name -> error (None if healthy)."""
        results: dict[str, Exception | None] = {}
        for name in self._fallback:
            try:
                await self._providers[name].health_check()
                results[name] = None
            except Exception as e:
                results[name] = e
        return results

    async def aclose(self) -> None:
        for name in self._fallback:
            try:
                await self._providers[name].aclose()
            except Exception:
                logger.warning("Failed to close provider %s", name)
