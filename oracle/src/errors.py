"""Error taxonomy for the price oracle.

Per-tick errors (LedgerConnectionError, FetchError, SubmitError) are caught at
the tick boundary and never stop the process. StartupConfigError and
FatalRuntimeError are terminal.
"""


class OracleError(Exception):
    """Base exception for oracle errors."""

    pass


class StartupConfigError(OracleError):
    """Raised when required configuration is missing or invalid."""

    pass


class LedgerConnectionError(OracleError):
    """Raised when the ledger network cannot be reached."""

    pass


class LedgerError(OracleError):
    """Raised when a ledger request returns an error response."""

    pass


class FetchError(OracleError):
    """Raised when a price observation cannot be obtained."""

    pass


class SubmitError(OracleError):
    """Raised when an update is not accepted by the ledger.

    :ivar engine_result: Engine result code, if the ledger returned one.
    :ivar engine_result_message: Human-readable engine result message.
    :ivar tx_hash: Transaction hash, if the transaction was broadcast.
    """

    def __init__(
        self,
        message: str,
        engine_result: str | None = None,
        engine_result_message: str | None = None,
        tx_hash: str | None = None,
    ):
        """Initialize the submit error.

        :param message: Error message.
        :param engine_result: Engine result code.
        :param engine_result_message: Engine result message.
        :param tx_hash: Transaction hash.
        """
        self.engine_result = engine_result
        self.engine_result_message = engine_result_message
        self.tx_hash = tx_hash
        super().__init__(message)


class FatalRuntimeError(OracleError):
    """Raised for faults outside any update cycle; triggers shutdown."""

    exit_code = 1
