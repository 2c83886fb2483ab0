"""OracleConfig: Validated runtime configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .errors import StartupConfigError
from .fetchers import DEFAULT_API_URL, price_path_from_url

logger = logging.getLogger(__name__)

DEFAULT_NETWORK = "wss://xahau-test.net"
KEY_ALGORITHMS = ("secp256k1", "ed25519")


@dataclass
class OracleConfig:
    """Oracle configuration.

    :ivar seed: Account secret. Required.
    :ivar object_id: Ledger object to update. Required.
    :ivar network: Websocket endpoint of the ledger network.
    :ivar api_url: Price source URL.
    :ivar price_path: Dotted path of the price in the response, derived from
        api_url when empty.
    :ivar update_period: Seconds between update cycles.
    :ivar reconnect_delay: Seconds to wait before a reconnect attempt.
    :ivar fetch_timeout: HTTP timeout in seconds.
    :ivar ledger_timeout: Ledger connect and request timeout in seconds.
    :ivar submit_timeout: Sign-and-broadcast timeout in seconds.
    :ivar key_algorithm: Account key algorithm.
    :ivar value_field: Ledger field name for the price.
    :ivar timestamp_field: Ledger field name for the update time.
    """

    seed: str | None
    object_id: str | None
    network: str = DEFAULT_NETWORK
    api_url: str = DEFAULT_API_URL
    price_path: str = ""
    update_period: float = 60.0
    reconnect_delay: float = 5.0
    fetch_timeout: float = 10.0
    ledger_timeout: float = 10.0
    submit_timeout: float = 30.0
    key_algorithm: str = "secp256k1"
    value_field: str = "XAH_PRICE_USD"
    timestamp_field: str = "LAST_UPDATE"

    def validate(self) -> None:
        """Check required options and value ranges.

        :raises StartupConfigError: On the first invalid option.
        """
        if not self.seed:
            raise StartupConfigError("SEED environment variable is required")
        if not self.object_id:
            raise StartupConfigError("OBJECT_ID environment variable is required")
        if not self.network.startswith(("ws://", "wss://")):
            raise StartupConfigError(f"NETWORK must be a websocket URL, got {self.network}")
        if not self.api_url.startswith(("http://", "https://")):
            raise StartupConfigError(f"API_URL must be an HTTP URL, got {self.api_url}")
        if self.update_period < 1:
            raise StartupConfigError("UPDATE_PERIOD must be at least 1 second")
        if self.reconnect_delay < 0:
            raise StartupConfigError("RECONNECT_DELAY must not be negative")
        for name in ("fetch_timeout", "ledger_timeout", "submit_timeout"):
            if getattr(self, name) <= 0:
                raise StartupConfigError(f"{name.upper()} must be positive")
        if self.key_algorithm not in KEY_ALGORITHMS:
            raise StartupConfigError(
                f"KEY_ALGORITHM must be one of {', '.join(KEY_ALGORITHMS)}"
            )
        if not self.value_field or not self.timestamp_field:
            raise StartupConfigError("VALUE_FIELD and TIMESTAMP_FIELD must not be empty")
        if self.price_path and not all(self.price_path.split(".")):
            raise StartupConfigError(f"Invalid PRICE_PATH: {self.price_path}")

    @property
    def price_keys(self) -> tuple[str, ...]:
        """Key path of the price in the response body."""
        if self.price_path:
            return tuple(self.price_path.split("."))
        return price_path_from_url(self.api_url)

    def log_summary(self) -> None:
        """Log the effective configuration, omitting the secret."""
        logger.info("=" * 60)
        logger.info("Xahau Price Oracle")
        logger.info("=" * 60)
        logger.info(f"Network:           {self.network}")
        logger.info(f"Object ID:         {self.object_id}")
        logger.info(f"API URL:           {self.api_url}")
        logger.info(f"Price Path:        {'.'.join(self.price_keys)}")
        logger.info(f"Update Period:     {self.update_period}s")
        logger.info(f"Reconnect Delay:   {self.reconnect_delay}s")
        logger.info(f"Fetch Timeout:     {self.fetch_timeout}s")
        logger.info(f"Ledger Timeout:    {self.ledger_timeout}s")
        logger.info(f"Submit Timeout:    {self.submit_timeout}s")
        logger.info(f"Fields:            {self.value_field}, {self.timestamp_field}")
        logger.info("=" * 60)
