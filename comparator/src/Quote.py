"""Quote and Failure: the two terminal outcomes of a single source fetch.

Every fetcher call ends in exactly one of these. Failures are diagnostic only:
they never abort a comparison, they are carried alongside the result.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class FailureReason(str, Enum):
    """Why a source did not contribute a quote."""

    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    PARSE_ERROR = "parse_error"
    NO_DATA = "no_data"


@dataclass(frozen=True)
class Quote:
    """One source's price observation.

    :ivar source_name: Name of the source that produced the quote.
    :ivar price: Parsed price of one base token in quote tokens.
    :ivar liquidity: Liquidity reported by the source, if any.
    :ivar observed_at: Unix timestamp when the response was parsed.
    :ivar latency: Seconds between request start and parsed response.
    """

    source_name: str
    price: float
    liquidity: float | None = None
    observed_at: float = 0.0
    latency: float = 0.0

    def to_dict(self) -> dict:
        """Serialize for JSON output."""
        return {
            "dexName": self.source_name,
            "price": self.price,
            "liquidity": self.liquidity,
            "observedAt": self.observed_at,
            "responseTimeMs": round(self.latency * 1000),
        }


@dataclass(frozen=True)
class Failure:
    """A source that failed to produce a quote.

    :ivar source_name: Name of the failing source.
    :ivar reason: Failure category.
    :ivar detail: Human readable detail, never a stack trace.
    """

    source_name: str
    reason: FailureReason
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.source_name}: {self.reason.value} ({self.detail})"

    def to_dict(self) -> dict:
        """Serialize for JSON output."""
        return {
            "source": self.source_name,
            "reason": self.reason.value,
            "detail": self.detail,
        }
