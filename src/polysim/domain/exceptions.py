"""Domain exceptions for polysim.

All domain-specific exceptions inherit from ``PolysimError`` so callers can
catch the full family with a single ``except`` clause when needed.
"""

from __future__ import annotations

from typing import Any


class PolysimError(Exception):
    """Base exception for all polysim errors."""

    def __init__(self, message: str = "", details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = details or {}


class LedgerError(PolysimError):
    """Raised inside a ledger store when a read or write cannot be completed.

    Stores convert it into a failed ``Result`` before it reaches the engine.
    """

    def __init__(
        self,
        message: str = "Ledger operation failed",
        operation: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.operation = operation


class MarketDataError(PolysimError):
    """Raised by a market data provider when prices or markets are unavailable."""

    def __init__(
        self,
        message: str = "Market data unavailable",
        source: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.source = source


class ReasoningError(PolysimError):
    """Raised when a reasoning generator cannot produce a narrative."""


class CycleError(PolysimError):
    """Raised when an analysis cycle fails with an unexpected error.

    The original exception is chained as ``__cause__``; no partial results are
    attached.
    """

    def __init__(
        self,
        message: str = "Analysis cycle failed",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
