"""Base fetcher interface and shared HTTP client management.

Price fetchers inherit from BaseFetcher and implement the fetch() method.
A shared httpx.AsyncClient is used across fetchers to avoid connection overhead.

Fetchers issue exactly one bounded request per fetch() call and never retry;
the oracle's update period is the retry cadence.

.. code-block:: python

    class MyFetcher(BaseFetcher):
        async def fetch(self) -> PriceSample:
            response = await self._get("https://api.example.com/price")
            data = self._parse_json(response)
            return PriceSample(value=self._to_decimal(data["price"]), fetched_at=utc_now())
"""

import json
import logging
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar

import httpx

from ..errors import FetchError
from ..models import PriceSample

logger = logging.getLogger(__name__)


class FetcherError(FetchError):
    """Raised on network or timeout errors while fetching."""

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


class FetcherParseError(FetchError):
    """Raised when the response body does not contain a usable price."""

    pass


class BaseFetcher(ABC):
    """Abstract base class for price fetchers.

    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :ivar timeout: Request timeout in seconds.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    # Default timeout for HTTP requests (seconds)
    DEFAULT_TIMEOUT = 10.0

    def __init__(self, timeout: float | None = None):
        """Initialize the fetcher.

        :param timeout: Request timeout in seconds (default: 10).
        """
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        :returns: Shared httpx.AsyncClient instance.
        """
        if cls._shared_client is None or cls._shared_client.is_closed:
            BaseFetcher._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                follow_redirects=True,
            )
        return BaseFetcher._shared_client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        client = BaseFetcher._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        BaseFetcher._shared_client = None

    @abstractmethod
    async def fetch(self) -> PriceSample:
        """Fetch one price observation.

        :returns: Price sample with full source precision.
        :raises FetchError: If no valid price could be obtained.
        """
        pass

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
        :raises FetcherError: On network/timeout errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise FetcherError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise FetcherError(f"Request failed: {e}") from e

        if not response.is_success:
            logger.debug(
                "HTTP GET %s failed with status %s: %s",
                url,
                response.status_code,
                response.text[:200],
            )
            raise FetcherHTTPError(
                response.status_code, response.reason_phrase or response.text[:200]
            )
        return response

    @staticmethod
    def _parse_json(response: httpx.Response) -> Any:
        """Decode a JSON body keeping decimal numbers as Decimal.

        :param response: HTTP response.
        :returns: Decoded body.
        :raises FetcherParseError: If the body is not valid JSON.
        """
        try:
            return json.loads(response.content, parse_float=Decimal)
        except ValueError as e:
            raise FetcherParseError(f"Error parsing JSON: {e}") from e

    @staticmethod
    def _to_decimal(raw: Any) -> Decimal:
        """Convert a JSON price value to a positive, finite Decimal.

        :param raw: Value from the decoded body (Decimal, int or numeric string).
        :returns: Price as Decimal.
        :raises FetcherParseError: If the value is not a usable price.
        """
        if isinstance(raw, bool) or not isinstance(raw, (Decimal, int, str)):
            raise FetcherParseError(f"Price is not numeric: {raw!r}")
        try:
            value = Decimal(raw) if not isinstance(raw, str) else Decimal(raw.strip())
        except InvalidOperation as e:
            raise FetcherParseError(f"Price is not numeric: {raw!r}") from e
        if not value.is_finite():
            raise FetcherParseError(f"Price is not finite: {raw!r}")
        if value <= 0:
            raise FetcherParseError(f"Price is not positive: {raw!r}")
        return value
