"""LedgerUtility: Abstract base class for ledger network interaction."""

from abc import abstractmethod

from .errors import LedgerConnectionError
from .models import LedgerAccount, NetworkValues, SubmitResult, UpdateRecord


class LedgerUtility:
    """Abstract base class for ledger utility implementations.

    Provides the interface for connection management, account derivation,
    network value lookup and transaction submission.

    :ivar endpoint: Network endpoint the utility connects to.
    """

    endpoint: str = ""

    @abstractmethod
    async def connect(self) -> None:
        """Open a connection to the ledger network.

        :raises LedgerConnectionError: If the handshake fails.
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection if one is open."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Check whether the underlying connection is still open."""
        pass

    def is_connection_fault(self, error: BaseException) -> bool:
        """Check whether an error reported outside any request is a dropped connection.

        Such errors are recovered by the next reconnect instead of stopping the
        oracle.

        :param error: Exception reported by the event loop.
        """
        return isinstance(error, LedgerConnectionError)

    @abstractmethod
    def derive_account(self, secret: str, algorithm: str) -> LedgerAccount:
        """Derive the account credential from a secret.

        :param secret: Account secret (family seed).
        :param algorithm: Key algorithm name (e.g., "secp256k1").
        :returns: Derived account.
        :raises ValueError: If the secret or algorithm is invalid.
        """
        pass

    @abstractmethod
    async def fetch_network_values(self, account: LedgerAccount) -> NetworkValues:
        """Fetch fresh sequencing and fee values for the account.

        :param account: Submitting account.
        :returns: Values valid for a single submission.
        """
        pass

    @abstractmethod
    async def sign_and_submit(
        self,
        record: UpdateRecord,
        values: NetworkValues,
        account: LedgerAccount,
    ) -> SubmitResult:
        """Sign an update record and broadcast it.

        :param record: Update to apply to the ledger object.
        :param values: Network values for this submission.
        :param account: Signing account.
        :returns: Engine result and transaction hash.
        """
        pass
