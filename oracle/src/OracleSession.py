"""OracleSession: Ledger connection lifecycle and health state.

State machine::

    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTING   -> DISCONNECTED              (handshake failed)
    CONNECTED    -> DISCONNECTED              (connection dropped or released)
    DISCONNECTED -> RECONNECTING -> CONNECTING (reconnect attempt)
    RECONNECTING -> DISCONNECTED              (oracle stopped during the delay)

Network failures never raise out of connect() or ensure_connected(); callers
get a boolean and can inspect last_error.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from .errors import LedgerConnectionError, StartupConfigError
from .LedgerUtility import LedgerUtility
from .models import ConnectionState, LedgerAccount, NetworkValues, StateChange

logger = logging.getLogger(__name__)

StateListener = Callable[[StateChange], None]

ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset(
        {ConnectionState.CONNECTING, ConnectionState.RECONNECTING}
    ),
    ConnectionState.RECONNECTING: frozenset(
        {ConnectionState.CONNECTING, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.CONNECTED: frozenset({ConnectionState.DISCONNECTED}),
}


class OracleSession:
    """Owns the ledger connection and the derived account.

    :ivar ledger: Ledger utility performing the network operations.
    :ivar account: Account derived from the secret.
    :ivar reconnect_delay: Seconds to wait before a reconnect attempt.
    :ivar state: Current connection state.
    :ivar last_error: Most recent connection failure, if any.
    """

    DEFAULT_RECONNECT_DELAY = 5.0

    def __init__(
        self,
        ledger: LedgerUtility,
        secret: str,
        key_algorithm: str = "secp256k1",
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        should_reconnect: Callable[[], bool] | None = None,
    ) -> None:
        """Initialize the session and derive the account.

        :param ledger: Ledger utility for the target network.
        :param secret: Account secret.
        :param key_algorithm: Key derivation algorithm (default: secp256k1).
        :param reconnect_delay: Delay before reconnecting (default: 5.0).
        :param should_reconnect: Callable telling whether reconnecting is still
            wanted; reconnects are always attempted if None.
        :raises StartupConfigError: If the account cannot be derived.
        """
        self.ledger = ledger
        self.reconnect_delay = reconnect_delay
        self.should_reconnect = should_reconnect or (lambda: True)
        self.state = ConnectionState.DISCONNECTED
        self.last_error: LedgerConnectionError | None = None
        self._listeners: list[StateListener] = []

        try:
            self.account: LedgerAccount = ledger.derive_account(secret, key_algorithm)
        except ValueError as e:
            raise StartupConfigError(f"Cannot derive account: {e}") from e

    @property
    def endpoint(self) -> str:
        """Network endpoint of the ledger utility."""
        return self.ledger.endpoint

    @property
    def is_connected(self) -> bool:
        """True when in CONNECTED state."""
        return self.state is ConnectionState.CONNECTED

    def subscribe(self, listener: StateListener) -> None:
        """Register a listener for state changes.

        :param listener: Called with a StateChange after every transition.
        """
        self._listeners.append(listener)

    def unsubscribe(self, listener: StateListener) -> None:
        """Remove a previously registered listener."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _transition(self, new_state: ConnectionState, reason: str = "") -> None:
        """Move to a new state along an allowed edge and notify listeners.

        :raises RuntimeError: If the edge is not allowed.
        """
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Invalid session transition {self.state.value} -> {new_state.value}"
            )
        change = StateChange(previous=self.state, current=new_state, reason=reason)
        self.state = new_state
        for listener in list(self._listeners):
            listener(change)

    async def _open(self) -> bool:
        """Perform one handshake from CONNECTING."""
        try:
            await self.ledger.connect()
        except LedgerConnectionError as e:
            self.last_error = e
            self._transition(ConnectionState.DISCONNECTED, str(e))
            return False
        except Exception as e:  # Client raised outside its contract
            self.last_error = LedgerConnectionError(f"Unexpected connect failure: {e}")
            self.last_error.__cause__ = e
            self._transition(ConnectionState.DISCONNECTED, str(self.last_error))
            return False

        self.last_error = None
        self._transition(ConnectionState.CONNECTED, self.endpoint)
        return True

    async def connect(self) -> bool:
        """Connect to the ledger network.

        :returns: True if the session is connected.
        """
        if self.state is ConnectionState.CONNECTED:
            return True
        self._transition(ConnectionState.CONNECTING, self.endpoint)
        return await self._open()

    async def ensure_connected(self) -> bool:
        """Guarantee an active connection with at most one reconnect attempt.

        No network operation is performed if the session is connected and the
        client still reports an open connection. Otherwise a single reconnect
        is attempted after reconnect_delay, unless should_reconnect() is false.

        :returns: True if the session is connected.
        """
        if self.state is ConnectionState.CONNECTED:
            if self.ledger.is_connected():
                return True
            self._transition(ConnectionState.DISCONNECTED, "connection lost")

        if not self.should_reconnect():
            return False

        self._transition(ConnectionState.RECONNECTING, f"retry in {self.reconnect_delay}s")
        await self._release()
        await asyncio.sleep(self.reconnect_delay)

        if not self.should_reconnect():
            self._transition(ConnectionState.DISCONNECTED, "reconnect cancelled")
            return False

        self._transition(ConnectionState.CONNECTING, self.endpoint)
        return await self._open()

    async def _release(self) -> None:
        """Close the underlying client, logging failures."""
        try:
            await self.ledger.disconnect()
        except Exception as e:  # Release never raises
            logger.warning(f"Error during disconnect: {e}")

    async def disconnect(self) -> None:
        """Release the connection. Safe to call from any state."""
        await self._release()
        if self.state is ConnectionState.CONNECTED:
            self._transition(ConnectionState.DISCONNECTED, "released")

    async def network_values(self) -> NetworkValues:
        """Fetch fresh sequencing and fee values for this account.

        :returns: Network values for a single submission.
        :raises LedgerConnectionError: If the session is not connected.
        """
        if not self.is_connected:
            raise LedgerConnectionError(f"Session not connected ({self.state.value})")
        return await self.ledger.fetch_network_values(self.account)
