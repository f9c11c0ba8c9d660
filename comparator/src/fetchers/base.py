"""Base fetcher interface and shared HTTP client management.

All price fetchers inherit from BaseFetcher and implement fetch_price().
BaseFetcher.fetch() wraps fetch_price() with the caller's deadline and turns
every outcome into either a Quote or a Failure, so a single misbehaving source
can never raise into the comparator.

A shared httpx.AsyncClient is used across all fetchers to reuse connections.

.. code-block:: python

    @register_fetcher
    class MyFetcher(BaseFetcher):
        name = "myfetcher"

        async def fetch_price(self, ctx: PairContext) -> tuple[float, float | None]:
            response = await self._get(f"https://api.example.com/{ctx.base.address}")
            data = response.json()
            if not data.get("price"):
                raise FetcherNoDataError(f"no price for {ctx}")
            return to_float(data["price"], "price"), None
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from contextvars import ContextVar
from typing import Any, Callable, ClassVar

import httpx

from ..PairContext import PairContext
from ..Quote import Failure, FailureReason, Quote

logger = logging.getLogger(__name__)

# HTTP timeout for the request(s) of the fetch running in the current task
_request_timeout: ContextVar[float | None] = ContextVar("request_timeout", default=None)


class FetcherError(Exception):
    """Base exception for fetcher errors."""

    pass


class FetcherConfigError(FetcherError):
    """Raised when fetcher configuration is invalid (e.g., missing API key)."""

    pass


class FetcherTimeoutError(FetcherError):
    """Raised when the HTTP transport gives up waiting for a response."""

    pass


class FetcherParseError(FetcherError):
    """Raised when a response body cannot be turned into a price."""

    pass


class FetcherNoDataError(FetcherError):
    """Raised when the source answered but has nothing for the pair."""

    pass


class FetcherHTTPError(FetcherError):
    """Raised when HTTP request fails.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


def to_float(value: Any, field: str) -> float:
    """Convert a JSON value to float.

    :param value: Raw value from a response body (number or numeric string).
    :param field: Field name used in the error message.
    :returns: The value as float.
    :raises FetcherParseError: If the value is missing or not numeric.
    """
    if value is None or isinstance(value, bool):
        raise FetcherParseError(f"'{field}' is not numeric: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise FetcherParseError(f"'{field}' is not numeric: {value!r}") from e


def optional_float(value: Any) -> float | None:
    """Best-effort float conversion for optional fields such as liquidity."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class BaseFetcher(ABC):
    """Abstract base class for price fetchers.

    Subclasses must implement:
        - name: Class variable identifying the source (e.g., "jupiter")
        - fetch_price(): Async method returning (price, liquidity) for a pair

    :cvar name: Unique identifier for this fetcher, also the quote's source name.
    :cvar DEFAULT_TIMEOUT: Default per-source budget in seconds.
    :ivar api_key: Optional API key for authenticated endpoints.
    :ivar timeout: Per-source budget in seconds.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    # Fetcher identification
    name: ClassVar[str] = ""

    # Per-source budget (seconds); the comparator may shorten it
    DEFAULT_TIMEOUT = 4.0

    USER_AGENT = "dex-price-comparator/1.0"

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the fetcher.

        :param api_key: Optional API key for authenticated endpoints.
        :param timeout: Per-source budget in seconds (default: 4).
        :param clock: Monotonic clock that deadlines are expressed in.
        """
        self.api_key = api_key
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.clock = clock

    @property
    def has_api_key(self) -> bool:
        """Check if this fetcher has an API key configured."""
        return self.api_key is not None and len(self.api_key) > 0

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        The client is shared across all fetcher instances to reuse connections.

        :returns: Shared httpx.AsyncClient instance.
        """
        client = BaseFetcher._shared_client
        if client is None or client.is_closed:
            client = httpx.AsyncClient(
                timeout=httpx.Timeout(10.0, connect=5.0),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                headers={"User-Agent": cls.USER_AGENT},
                follow_redirects=True,
            )
            BaseFetcher._shared_client = client
        return client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        client = BaseFetcher._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        BaseFetcher._shared_client = None

    @abstractmethod
    async def fetch_price(self, ctx: PairContext) -> tuple[float, float | None]:
        """Fetch and parse the current price for a pair.

        :param ctx: Resolved pair.
        :returns: Tuple of (price, liquidity or None).
        :raises FetcherNoDataError: If the source has nothing for the pair.
        :raises FetcherParseError: If the response cannot be parsed.
        :raises FetcherError: On network or HTTP errors.
        """

    async def fetch(self, ctx: PairContext, deadline: float) -> Quote | Failure:
        """Fetch a quote, giving up at the deadline.

        A request still running at the deadline is cancelled; its response,
        if any ever arrives, is dropped with the cancelled task.

        :param ctx: Resolved pair.
        :param deadline: Absolute time on ``self.clock`` to give up at.
        :returns: Quote on success, Failure otherwise.
        """
        started = self.clock()
        remaining = deadline - started
        if remaining <= 0:
            return Failure(self.name, FailureReason.TIMEOUT, "deadline already passed")

        # read back by _get/_post; scoped to this task
        token = _request_timeout.set(min(self.timeout, remaining))
        try:
            price, liquidity = await asyncio.wait_for(
                self.fetch_price(ctx), timeout=remaining
            )
        except (asyncio.TimeoutError, FetcherTimeoutError) as e:
            logger.warning(f"[{self.name}] Timeout fetching {ctx}")
            return Failure(self.name, FailureReason.TIMEOUT, str(e) or f"no response within {remaining:.2f}s")
        except FetcherNoDataError as e:
            logger.warning(f"[{self.name}] No data for {ctx}: {e}")
            return Failure(self.name, FailureReason.NO_DATA, str(e))
        except (FetcherParseError, KeyError, ValueError, TypeError, IndexError, AttributeError) as e:
            logger.warning(f"[{self.name}] Failed to parse response for {ctx}: {e}")
            return Failure(self.name, FailureReason.PARSE_ERROR, f"{type(e).__name__}: {e}")
        except FetcherError as e:
            logger.warning(f"[{self.name}] Failed to fetch {ctx}: {e}")
            return Failure(self.name, FailureReason.NETWORK_ERROR, str(e))
        finally:
            _request_timeout.reset(token)

        latency = self.clock() - started
        logger.debug(f"[{self.name}] {ctx} = {price} ({latency * 1000:.0f}ms)")
        return Quote(
            source_name=self.name,
            price=price,
            liquidity=liquidity,
            observed_at=time.time(),
            latency=latency,
        )

    @property
    def request_timeout(self) -> float:
        """HTTP timeout for the current call: the smaller of budget and time left."""
        timeout = _request_timeout.get()
        return self.timeout if timeout is None else timeout

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP GET request using the shared client.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises FetcherHTTPError: On non-2xx response.
        :raises FetcherTimeoutError: On transport timeout.
        :raises FetcherError: On other network errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.request_timeout,
            )
        except httpx.TimeoutException as e:
            raise FetcherTimeoutError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise FetcherError(f"Request failed: {e}") from e
        if not response.is_success:
            logger.debug(
                "HTTP GET %s failed with status %s: %s",
                url,
                response.status_code,
                response.text[:200],
            )
            raise FetcherHTTPError(response.status_code, response.text[:200])
        return response

    async def _post(
        self,
        url: str,
        *,
        json: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP POST request using the shared client.

        :param url: Request URL.
        :param json: Optional JSON body.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises FetcherHTTPError: On non-2xx response.
        :raises FetcherTimeoutError: On transport timeout.
        :raises FetcherError: On other network errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.post(
                url,
                json=json,
                headers=headers,
                timeout=self.request_timeout,
            )
        except httpx.TimeoutException as e:
            raise FetcherTimeoutError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise FetcherError(f"Request failed: {e}") from e
        if not response.is_success:
            logger.debug(
                "HTTP POST %s failed with status %s: %s",
                url,
                response.status_code,
                response.text[:200],
            )
            raise FetcherHTTPError(response.status_code, response.text[:200])
        return response


# Registry of available fetchers (populated by subclass imports)
FETCHER_REGISTRY: dict[str, type[BaseFetcher]] = {}


def register_fetcher(cls: type[BaseFetcher]) -> type[BaseFetcher]:
    """Decorator to register a fetcher class in the global registry.

    :param cls: Fetcher class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If fetcher has no name defined.
    """
    if not cls.name:
        raise ValueError(f"Fetcher {cls.__name__} must define a 'name' class variable")
    FETCHER_REGISTRY[cls.name] = cls
    return cls


def get_fetcher(
    name: str, api_key: str | None = None, timeout: float | None = None
) -> BaseFetcher:
    """Get a fetcher instance by name.

    :param name: Fetcher name (e.g., "jupiter", "birdeye").
    :param api_key: Optional API key.
    :param timeout: Optional per-source budget in seconds.
    :returns: Fetcher instance.
    :raises ValueError: If fetcher name is unknown.
    """
    if name not in FETCHER_REGISTRY:
        available = ", ".join(sorted(FETCHER_REGISTRY.keys()))
        raise ValueError(f"Unknown fetcher '{name}'. Available: {available}")
    return FETCHER_REGISTRY[name](api_key=api_key, timeout=timeout)


def get_available_fetchers() -> list[str]:
    """Get list of available fetcher names.

    :returns: Sorted list of registered fetcher names.
    """
    return sorted(FETCHER_REGISTRY.keys())
