"""CoinGecko fetcher.

Endpoint: https://api.coingecko.com/api/v3/simple/price?ids={id}&vs_currencies={quote}
Rate Limit: 30 calls/min (free)
Response: {"xahau": {"usd": 0.0423}}
"""

import logging
from urllib.parse import parse_qs, urlsplit

from ..models import PriceSample, utc_now
from .base import BaseFetcher, FetcherParseError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = (
    "https://api.coingecko.com/api/v3/simple/price?ids=xahau&vs_currencies=usd"
)
DEFAULT_PRICE_PATH = ("xahau", "usd")


def price_path_from_url(url: str) -> tuple[str, ...]:
    """Derive the price location from a simple/price URL.

    Uses the first ``ids`` and ``vs_currencies`` query values.

    :param url: Price source URL.
    :returns: Key path into the response body, or the default path.
    """
    query = parse_qs(urlsplit(url).query)
    ids = query.get("ids", [""])[0].split(",")[0].strip().lower()
    quote = query.get("vs_currencies", [""])[0].split(",")[0].strip().lower()
    if ids and quote:
        return (ids, quote)
    return DEFAULT_PRICE_PATH


class CoinGeckoFetcher(BaseFetcher):
    """Fetcher for a CoinGecko style simple price endpoint.

    :ivar url: Full request URL including query parameters.
    :ivar price_path: Keys leading to the price in the response body.
    """

    def __init__(
        self,
        url: str = DEFAULT_API_URL,
        price_path: tuple[str, ...] | None = None,
        timeout: float | None = None,
    ):
        """Initialize the fetcher.

        :param url: Price source URL (default: XAH/USD on CoinGecko).
        :param price_path: Keys leading to the price. Derived from the URL if None.
        :param timeout: Request timeout in seconds (default: 10).
        """
        super().__init__(timeout=timeout)
        self.url = url
        self.price_path = price_path or price_path_from_url(url)

    async def fetch(self) -> PriceSample:
        """Fetch the price from the configured URL.

        :returns: Price sample.
        :raises FetchError: On HTTP, transport or parse failure.
        """
        response = await self._get(self.url)
        data = self._parse_json(response)

        node = data
        for key in self.price_path:
            if not isinstance(node, dict) or key not in node:
                path = ".".join(self.price_path)
                raise FetcherParseError(f"Price not found in response at '{path}'")
            node = node[key]

        sample = PriceSample(value=self._to_decimal(node), fetched_at=utc_now())
        logger.debug(f"[coingecko] {'.'.join(self.price_path)} = {sample.text}")
        return sample
