"""Unit tests for CoinGeckoFetcher."""

import asyncio
from decimal import Decimal
from typing import Callable

import httpx
import pytest

from oracle.src.errors import FetchError
from oracle.src.fetchers import (
    DEFAULT_API_URL,
    BaseFetcher,
    CoinGeckoFetcher,
    FetcherError,
    FetcherHTTPError,
    FetcherParseError,
    price_path_from_url,
)
from oracle.src.models import PriceSample


def run_fetch(
    fetcher: CoinGeckoFetcher, handler: Callable[[httpx.Request], httpx.Response]
) -> PriceSample:
    """Run fetcher.fetch() against a mocked transport."""

    async def scenario() -> PriceSample:
        BaseFetcher._shared_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        try:
            return await fetcher.fetch()
        finally:
            await BaseFetcher.close_shared_client()

    return asyncio.run(scenario())


def respond(status_code: int = 200, content: bytes = b"") -> Callable:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, content=content)

    return handler


class TestPricePath:
    """Test price path derivation from URLs."""

    def test_default_url(self) -> None:
        """The default URL points at xahau.usd."""
        assert price_path_from_url(DEFAULT_API_URL) == ("xahau", "usd")

    def test_custom_ids(self) -> None:
        """ids and vs_currencies should be used."""
        url = "https://api.coingecko.com/api/v3/simple/price?ids=Bitcoin,eth&vs_currencies=EUR"
        assert price_path_from_url(url) == ("bitcoin", "eur")

    def test_missing_query_falls_back(self) -> None:
        """URLs without a query fall back to the default path."""
        assert price_path_from_url("https://feed.example.com/price") == ("xahau", "usd")

    def test_explicit_path_wins(self) -> None:
        """An explicit price path overrides the URL."""
        fetcher = CoinGeckoFetcher(price_path=("data", "price"))
        assert fetcher.price_path == ("data", "price")


class TestCoinGeckoFetch:
    """Test fetch() success and failure modes."""

    def test_preserves_decimal_text(self) -> None:
        """0.0423 must not be rounded or pass through a binary float."""
        sample = run_fetch(CoinGeckoFetcher(), respond(content=b'{"xahau":{"usd":0.0423}}'))
        assert sample.value == Decimal("0.0423")
        assert sample.text == "0.0423"
        assert sample.fetched_at.tzinfo is not None

    def test_long_precision(self) -> None:
        """All source digits should be kept."""
        body = b'{"xahau":{"usd":0.012345678901234567890}}'
        sample = run_fetch(CoinGeckoFetcher(), respond(content=body))
        assert sample.text == "0.012345678901234567890"

    def test_exponent_is_rendered_plain(self) -> None:
        """Exponent notation in the body should render as plain text."""
        sample = run_fetch(CoinGeckoFetcher(), respond(content=b'{"xahau":{"usd":4.23e-7}}'))
        assert sample.text == "0.000000423"

    def test_integer_price(self) -> None:
        """Integer prices are valid."""
        sample = run_fetch(CoinGeckoFetcher(), respond(content=b'{"xahau":{"usd":2}}'))
        assert sample.text == "2"

    def test_numeric_string_price(self) -> None:
        """Numeric strings keep their text."""
        sample = run_fetch(CoinGeckoFetcher(), respond(content=b'{"xahau":{"usd":"0.0423"}}'))
        assert sample.text == "0.0423"

    def test_request_url(self) -> None:
        """The configured URL should be requested once."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b'{"xahau":{"usd":1.5}}')

        run_fetch(CoinGeckoFetcher(), handler)
        assert len(seen) == 1
        assert str(seen[0].url) == DEFAULT_API_URL

    def test_http_503(self) -> None:
        """Non-success status should raise FetcherHTTPError."""
        with pytest.raises(FetcherHTTPError) as exc_info:
            run_fetch(CoinGeckoFetcher(), respond(status_code=503))
        assert exc_info.value.status_code == 503
        assert isinstance(exc_info.value, FetchError)

    def test_http_503_is_not_retried(self) -> None:
        """A failed request is not retried within the same fetch."""
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(503)

        with pytest.raises(FetchError):
            run_fetch(CoinGeckoFetcher(), handler)
        assert len(calls) == 1

    def test_empty_object(self) -> None:
        """A body without the price field should raise FetcherParseError."""
        with pytest.raises(FetcherParseError, match="Price not found"):
            run_fetch(CoinGeckoFetcher(), respond(content=b"{}"))

    def test_missing_quote(self) -> None:
        """A body without the quote currency should raise."""
        with pytest.raises(FetcherParseError, match="xahau.usd"):
            run_fetch(CoinGeckoFetcher(), respond(content=b'{"xahau":{"eur":0.03}}'))

    def test_malformed_json(self) -> None:
        """Invalid JSON should raise with the cause attached."""
        with pytest.raises(FetcherParseError, match="Error parsing JSON") as exc_info:
            run_fetch(CoinGeckoFetcher(), respond(content=b"<html>oops"))
        assert exc_info.value.__cause__ is not None

    @pytest.mark.parametrize(
        "body",
        [
            b'{"xahau":{"usd":"abc"}}',
            b'{"xahau":{"usd":null}}',
            b'{"xahau":{"usd":true}}',
            b'{"xahau":{"usd":[1]}}',
            b'{"xahau":{"usd":NaN}}',
            b'{"xahau":{"usd":0}}',
            b'{"xahau":{"usd":-1.5}}',
        ],
    )
    def test_unusable_price(self, body: bytes) -> None:
        """Non-numeric, non-finite and non-positive prices are rejected."""
        with pytest.raises(FetcherParseError):
            run_fetch(CoinGeckoFetcher(), respond(content=body))

    def test_timeout(self) -> None:
        """Timeouts should raise FetcherError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(FetcherError, match="Request timeout"):
            run_fetch(CoinGeckoFetcher(timeout=0.5), handler)

    def test_transport_error(self) -> None:
        """Connection errors should raise FetcherError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(FetcherError, match="Request failed"):
            run_fetch(CoinGeckoFetcher(), handler)


class TestSharedClient:
    """Test shared client management."""

    def test_close_is_idempotent(self) -> None:
        """Closing twice should not fail."""

        async def scenario() -> None:
            BaseFetcher.get_shared_client()
            await BaseFetcher.close_shared_client()
            await BaseFetcher.close_shared_client()

        asyncio.run(scenario())
        assert BaseFetcher._shared_client is None

    def test_default_timeout(self) -> None:
        """Timeout should default to DEFAULT_TIMEOUT."""
        assert CoinGeckoFetcher().timeout == BaseFetcher.DEFAULT_TIMEOUT
        assert CoinGeckoFetcher(timeout=2.5).timeout == 2.5
