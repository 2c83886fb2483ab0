"""
Xahau Price Oracle - Periodic Ledger Attestation Module

This module publishes an off-chain price into a ledger object:
- OracleSession: Ledger connection lifecycle and reconnection
- fetchers: HTTP price source clients
- UpdateSubmitter: Update record construction and submission
- PriceOracle: Main orchestrator for the update loop
"""

from .errors import (
    FatalRuntimeError,
    FetchError,
    LedgerConnectionError,
    LedgerError,
    OracleError,
    StartupConfigError,
    SubmitError,
)
from .models import ConnectionState, OracleStats, PriceSample, UpdateAttempt
from .OracleConfig import OracleConfig
from .OracleSession import OracleSession
from .PriceOracle import PriceOracle
from .UpdateSubmitter import ACCEPTED_ENGINE_RESULT, UpdateSubmitter

__all__ = [
    "ACCEPTED_ENGINE_RESULT",
    "ConnectionState",
    "FatalRuntimeError",
    "FetchError",
    "LedgerConnectionError",
    "LedgerError",
    "OracleConfig",
    "OracleError",
    "OracleSession",
    "OracleStats",
    "PriceOracle",
    "PriceSample",
    "StartupConfigError",
    "SubmitError",
    "UpdateAttempt",
    "UpdateSubmitter",
]
