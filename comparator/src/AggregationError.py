"""Errors that fail a whole price comparison.

Per-source problems never end up here; they are carried as Failure records.
Only two situations are fatal for a request: a symbol that cannot be resolved
(raised before any source is contacted) and a comparison in which no source
produced a usable quote.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum

from .Quote import Failure

SUGGESTED_SYMBOLS = "Try popular tokens: SOL, USDC, USDT, ETH, BTC"


class AggregationErrorReason(str, Enum):
    """Kinds of fatal comparison errors."""

    UNKNOWN_SYMBOL = "unknown_symbol"
    NO_VALID_QUOTES = "no_valid_quotes"


class AggregationError(Exception):
    """Base exception for a failed comparison.

    :ivar reason: Error category.
    :ivar failures: Per-source failures collected before giving up.
    :ivar suggestion: Optional hint for the user (e.g., known-good symbols).
    """

    reason: AggregationErrorReason

    def __init__(
        self,
        message: str,
        failures: Sequence[Failure] = (),
        suggestion: str | None = None,
    ):
        """Initialize the error.

        :param message: Error message shown to the user.
        :param failures: Per-source failures, in source registration order.
        :param suggestion: Optional hint shown alongside the message.
        """
        self.failures = tuple(failures)
        self.suggestion = suggestion
        super().__init__(message)

    def to_dict(self) -> dict:
        """Serialize as an error response body."""
        body: dict = {"success": False, "error": str(self), "reason": self.reason.value}
        if self.suggestion:
            body["tip"] = self.suggestion
        body["failures"] = [f.to_dict() for f in self.failures]
        return body


class UnknownSymbolError(AggregationError):
    """Raised when a token symbol cannot be resolved."""

    reason = AggregationErrorReason.UNKNOWN_SYMBOL

    def __init__(self, symbol: str, detail: str | None = None):
        """Initialize the error.

        :param symbol: The symbol that failed to resolve.
        :param detail: Optional extra context (e.g., token list download error).
        """
        self.symbol = symbol
        message = f'Token symbol "{symbol}" not found'
        if detail:
            message += f": {detail}"
        super().__init__(message, suggestion=SUGGESTED_SYMBOLS)


class NoValidQuotesError(AggregationError):
    """Raised when no source produced a valid quote."""

    reason = AggregationErrorReason.NO_VALID_QUOTES
