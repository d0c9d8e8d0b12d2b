"""Per-(tenant, user) token budget tracking.

Available to billing/admission layers; the Engine does not consult it.
"""

from __future__ import annotations

import threading
from typing import Protocol

from pai.ai.errors import BudgetError


class BudgetChecker(Protocol):
    def check(self, tenant_id: str, user_id: str) -> bool: ...

    def record(self, tenant_id: str, user_id: str, tokens: int) -> None: ...

    def usage(self, tenant_id: str, user_id: str) -> tuple[int, int | None]: ...


class InMemoryBudget:
    """In-memory budget tracker.

    No budget configured for a key means unlimited. Usage only grows;
    there is no reset.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._budgets: dict[tuple[str, str], int] = {}
        self._usage: dict[tuple[str, str], int] = {}

    def set_budget(self, tenant_id: str, user_id: str, tokens: int) -> None:
        if tokens < 0:
            raise BudgetError(f"budget must be non-negative, got {tokens}")
        with self._lock:
            self._budgets[(tenant_id, user_id)] = tokens

    def check(self, tenant_id: str, user_id: str) -> bool:
        """True if no budget is set or usage is still below it."""
        key = (tenant_id, user_id)
        with self._lock:
            budget = self._budgets.get(key)
            if budget is None:
                return True
            return self._usage.get(key, 0) < budget

    def record(self, tenant_id: str, user_id: str, tokens: int) -> None:
        if tokens < 0:
            raise BudgetError(f"tokens must be non-negative, got {tokens}")
        key = (tenant_id, user_id)
        with self._lock:
            self._usage[key] = self._usage.get(key, 0) + tokens

    def usage(self, tenant_id: str, user_id: str) -> tuple[int, int | None]:
        """Return (used, budget). budget is None when unlimited."""
        key = (tenant_id, user_id)
        with self._lock:
            return self._usage.get(key, 0), self._budgets.get(key)
