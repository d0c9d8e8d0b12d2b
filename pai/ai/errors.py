"""Error types raised by the AI gateway."""

from __future__ import annotations


class ProviderError(Exception):
    """A single provider call failed (transport, non-2xx, or empty response)."""

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code
        self.body = body


class ProviderConfigError(ValueError):
    """A provider was constructed with unusable configuration."""


class AllProvidersFailedError(ProviderError):
    """Every provider in the fallback chain failed (or none is registered)."""

    def __init__(self, errors: list[tuple[str, Exception]]) -> None:
        if errors:
            message = "all AI providers failed"
        else:
            message = "no AI providers registered"
        super().__init__("router", message)
        self.errors = errors


class BudgetError(ValueError):
    """Invalid budget operation (e.g. negative token count)."""
