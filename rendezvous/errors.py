"""Exceptions raised by the planning engine."""
from __future__ import annotations


class PlannerError(Exception):
    """Base class for every error the engine raises on purpose."""


class InvalidInputError(PlannerError, ValueError):
    """Structural problem with the caller's input, raised before any adapter call."""


class ProviderAdapterError(PlannerError):
    """A provider call failed (network, timeout, quota).

    Adapters raise this; the aggregator retries and then degrades the adapter
    to an empty option list.
    """

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class CurrencyMismatchError(PlannerError):
    """Resolved routes quote more than one currency."""
