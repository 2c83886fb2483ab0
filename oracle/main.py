#!/usr/bin/env python3
"""Xahau Price Oracle.

Fetches the XAH/USD price from an HTTP price feed and writes it, with the
update time, into the remarks of a ledger object on Xahau every update period.

Configure with env vars (or a .env file) and run with ``python -m oracle.main``.
"""

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

from .src.errors import StartupConfigError
from .src.fetchers import DEFAULT_API_URL
from .src.OracleConfig import DEFAULT_NETWORK, KEY_ALGORITHMS, OracleConfig
from .src.PriceOracle import PriceOracle

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser with defaults taken from the environment."""
    parser = argparse.ArgumentParser(
        description="Xahau Price Oracle: periodic price attestation to a ledger object",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Required settings from the environment
  SEED=sn... OBJECT_ID=ABCD... python -m oracle.main

  # Faster updates against a custom node
  python -m oracle.main --network wss://xahau.network --update-period 30

Environment variables (CLI args take precedence):
  SEED, OBJECT_ID, NETWORK, API_URL, PRICE_PATH, UPDATE_PERIOD,
  RECONNECT_DELAY, FETCH_TIMEOUT, LEDGER_TIMEOUT, SUBMIT_TIMEOUT,
  KEY_ALGORITHM, VALUE_FIELD, TIMESTAMP_FIELD
""",
    )

    parser.add_argument(
        "--seed",
        type=str,
        help="Account secret (family seed). Prefer the SEED env var",
        default=os.environ.get("SEED"),
    )

    parser.add_argument(
        "--object-id",
        dest="object_id",
        type=str,
        help="Identifier of the ledger object to update",
        default=os.environ.get("OBJECT_ID"),
    )

    parser.add_argument(
        "--network",
        type=str,
        help=f"Websocket endpoint of the ledger network (default: {DEFAULT_NETWORK})",
        default=os.environ.get("NETWORK") or DEFAULT_NETWORK,
    )

    parser.add_argument(
        "--api-url",
        dest="api_url",
        type=str,
        help="Price feed URL (default: CoinGecko XAH/USD)",
        default=os.environ.get("API_URL") or DEFAULT_API_URL,
    )

    parser.add_argument(
        "--price-path",
        dest="price_path",
        type=str,
        help="Dotted path of the price in the response (default: from --api-url query)",
        default=os.environ.get("PRICE_PATH") or "",
    )

    parser.add_argument(
        "--update-period",
        dest="update_period",
        type=float,
        help="Seconds between update cycles (minimum: 1, default: 60)",
        default=float(os.environ.get("UPDATE_PERIOD") or "60"),
    )

    parser.add_argument(
        "--reconnect-delay",
        dest="reconnect_delay",
        type=float,
        help="Seconds to wait before reconnecting (default: 5)",
        default=float(os.environ.get("RECONNECT_DELAY") or "5"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for price requests in seconds (default: 10.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "10.0"),
    )

    parser.add_argument(
        "--ledger-timeout",
        dest="ledger_timeout",
        type=float,
        help="Timeout for ledger connect and requests in seconds (default: 10.0)",
        default=float(os.environ.get("LEDGER_TIMEOUT") or "10.0"),
    )

    parser.add_argument(
        "--submit-timeout",
        dest="submit_timeout",
        type=float,
        help="Timeout for sign-and-broadcast in seconds (default: 30.0)",
        default=float(os.environ.get("SUBMIT_TIMEOUT") or "30.0"),
    )

    parser.add_argument(
        "--key-algorithm",
        dest="key_algorithm",
        type=str,
        choices=KEY_ALGORITHMS,
        help="Account key algorithm (default: secp256k1)",
        default=os.environ.get("KEY_ALGORITHM") or "secp256k1",
    )

    parser.add_argument(
        "--value-field",
        dest="value_field",
        type=str,
        help="Remark name for the price (default: XAH_PRICE_USD)",
        default=os.environ.get("VALUE_FIELD") or "XAH_PRICE_USD",
    )

    parser.add_argument(
        "--timestamp-field",
        dest="timestamp_field",
        type=str,
        help="Remark name for the update time (default: LAST_UPDATE)",
        default=os.environ.get("TIMESTAMP_FIELD") or "LAST_UPDATE",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    return parser


def config_from_args(args: argparse.Namespace) -> OracleConfig:
    """Build and validate the configuration from parsed arguments.

    :param args: Parsed CLI arguments.
    :returns: Validated configuration.
    :raises StartupConfigError: If a required option is missing or invalid.
    """
    config = OracleConfig(
        seed=args.seed,
        object_id=args.object_id,
        network=args.network,
        api_url=args.api_url,
        price_path=args.price_path,
        update_period=args.update_period,
        reconnect_delay=args.reconnect_delay,
        fetch_timeout=args.fetch_timeout,
        ledger_timeout=args.ledger_timeout,
        submit_timeout=args.submit_timeout,
        key_algorithm=args.key_algorithm,
        value_field=args.value_field,
        timestamp_field=args.timestamp_field,
    )
    config.validate()
    return config


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Xahau Price Oracle CLI."""
    load_dotenv()

    try:
        args = build_parser().parse_args(argv)
    except ValueError as e:
        # Non-numeric env defaults fail before argparse can report them
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = config_from_args(args)
        config.log_summary()
        price_oracle = PriceOracle.from_config(config)
    except StartupConfigError as e:
        logger.error(f"Error: {e}")
        logger.info("Add the missing settings to your environment or .env file")
        sys.exit(1)

    sys.exit(asyncio.run(price_oracle.run()))


if __name__ == "__main__":
    main()
