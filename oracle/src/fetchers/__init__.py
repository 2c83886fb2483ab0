"""
Price fetchers.

Usage:
    from oracle.src.fetchers import CoinGeckoFetcher

    fetcher = CoinGeckoFetcher(timeout=10.0)
    sample = await fetcher.fetch()
    print(sample.text)  # "0.0423"
"""

from .base import (
    BaseFetcher,
    FetcherError,
    FetcherHTTPError,
    FetcherParseError,
)
from .coingecko import (
    DEFAULT_API_URL,
    DEFAULT_PRICE_PATH,
    CoinGeckoFetcher,
    price_path_from_url,
)

__all__ = [
    # Base classes
    "BaseFetcher",
    "FetcherError",
    "FetcherHTTPError",
    "FetcherParseError",
    # Fetcher implementations
    "CoinGeckoFetcher",
    "DEFAULT_API_URL",
    "DEFAULT_PRICE_PATH",
    "price_path_from_url",
]
