"""AI gateway: provider-agnostic completion with ordered fallback.

Public API: Router, InMemoryBudget, error types, and the neutral schemas.
"""

from pai.ai.budget import BudgetChecker, InMemoryBudget
from pai.ai.errors import (
    AllProvidersFailedError,
    BudgetError,
    ProviderConfigError,
    ProviderError,
)
from pai.ai.router import Router
from pai.ai.schemas import (
    CompletionRequest,
    CompletionResponse,
    Message,
    ModelInfo,
    Provider,
    Role,
    StreamChunk,
    TaskType,
)

__all__ = [
    "Router",
    # Budget
    "BudgetChecker",
    "InMemoryBudget",
    # Errors
    "AllProvidersFailedError",
    "BudgetError",
    "ProviderConfigError",
    "ProviderError",
    # Schemas
    "CompletionRequest",
    "CompletionResponse",
    "Message",
    "ModelInfo",
    "Provider",
    "Role",
    "StreamChunk",
    "TaskType",
]
