"""Unit tests for OracleSession."""

import asyncio

import pytest

from oracle.src.errors import LedgerConnectionError, StartupConfigError
from oracle.src.models import ConnectionState
from oracle.src.OracleSession import OracleSession
from oracle.tests.fakes import FakeLedger


def make_session(ledger: FakeLedger, running: bool = True) -> tuple[OracleSession, list]:
    changes: list = []
    session = OracleSession(
        ledger,
        secret="sTestSeed",
        reconnect_delay=0,
        should_reconnect=lambda: running,
    )
    session.subscribe(changes.append)
    return session, changes


def edges(changes: list) -> list[tuple[ConnectionState, ConnectionState]]:
    return [(c.previous, c.current) for c in changes]


class TestSessionInit:
    """Test session construction."""

    def test_derives_account(self) -> None:
        """Account should be derived from the secret."""
        session, _ = make_session(FakeLedger())
        assert session.account.address == "rOracleTestAccount"
        assert session.state is ConnectionState.DISCONNECTED
        assert session.endpoint == "wss://ledger.test"

    def test_invalid_secret(self) -> None:
        """An underivable secret is a startup error."""
        with pytest.raises(StartupConfigError, match="Cannot derive account"):
            OracleSession(FakeLedger(), secret="invalid")


class TestSessionConnect:
    """Test connect()."""

    def test_connect_passes_through_connecting(self) -> None:
        """Connect should go DISCONNECTED -> CONNECTING -> CONNECTED."""
        ledger = FakeLedger()
        session, changes = make_session(ledger)

        assert asyncio.run(session.connect()) is True
        assert session.state is ConnectionState.CONNECTED
        assert edges(changes) == [
            (ConnectionState.DISCONNECTED, ConnectionState.CONNECTING),
            (ConnectionState.CONNECTING, ConnectionState.CONNECTED),
        ]

    def test_connect_failure_returns_false(self) -> None:
        """A failed handshake should not raise and should record the error."""
        ledger = FakeLedger()
        ledger.fail_connects = 1
        session, changes = make_session(ledger)

        assert asyncio.run(session.connect()) is False
        assert session.state is ConnectionState.DISCONNECTED
        assert isinstance(session.last_error, LedgerConnectionError)
        assert changes[-1].current is ConnectionState.DISCONNECTED

    def test_unexpected_connect_exception_is_contained(self) -> None:
        """Unexpected client exceptions should become a connection error."""
        ledger = FakeLedger()

        async def broken_connect() -> None:
            raise OSError("socket exploded")

        ledger.connect = broken_connect
        session, _ = make_session(ledger)

        assert asyncio.run(session.connect()) is False
        assert isinstance(session.last_error, LedgerConnectionError)
        assert isinstance(session.last_error.__cause__, OSError)

    def test_connect_when_connected_is_noop(self) -> None:
        """Connecting twice should perform a single handshake."""
        ledger = FakeLedger()
        session, _ = make_session(ledger)

        async def scenario() -> None:
            await session.connect()
            await session.connect()

        asyncio.run(scenario())
        assert ledger.connect_calls == 1


class TestEnsureConnected:
    """Test ensure_connected()."""

    def test_noop_when_connected(self) -> None:
        """No network operation should happen while connected."""
        ledger = FakeLedger()
        session, changes = make_session(ledger)

        async def scenario() -> bool:
            await session.connect()
            return await session.ensure_connected()

        assert asyncio.run(scenario()) is True
        assert ledger.connect_calls == 1
        assert ledger.disconnect_calls == 0
        assert len(changes) == 2

    def test_reconnects_after_drop(self) -> None:
        """A dropped connection should be reopened via RECONNECTING and CONNECTING."""
        ledger = FakeLedger()
        session, changes = make_session(ledger)

        async def scenario() -> bool:
            await session.connect()
            ledger.connected = False
            return await session.ensure_connected()

        assert asyncio.run(scenario()) is True
        assert ledger.connect_calls == 2
        assert session.state is ConnectionState.CONNECTED
        assert edges(changes)[2:] == [
            (ConnectionState.CONNECTED, ConnectionState.DISCONNECTED),
            (ConnectionState.DISCONNECTED, ConnectionState.RECONNECTING),
            (ConnectionState.RECONNECTING, ConnectionState.CONNECTING),
            (ConnectionState.CONNECTING, ConnectionState.CONNECTED),
        ]

    def test_single_attempt_per_call(self) -> None:
        """A failed reconnect should not be retried within the same call."""
        ledger = FakeLedger()
        session, _ = make_session(ledger)

        async def scenario() -> bool:
            await session.connect()
            ledger.connected = False
            ledger.fail_connects = 5
            return await session.ensure_connected()

        assert asyncio.run(scenario()) is False
        assert ledger.connect_calls == 2
        assert session.state is ConnectionState.DISCONNECTED

    def test_no_reconnect_when_stopped(self) -> None:
        """When reconnecting is not wanted the session stays disconnected."""
        ledger = FakeLedger()
        session, _ = make_session(ledger, running=False)

        async def scenario() -> bool:
            await session.connect()
            ledger.connected = False
            return await session.ensure_connected()

        assert asyncio.run(scenario()) is False
        assert ledger.connect_calls == 1
        assert session.state is ConnectionState.DISCONNECTED

    def test_reconnect_waits_for_delay(self) -> None:
        """The reconnect attempt should happen after the reconnect delay."""
        ledger = FakeLedger()
        session, _ = make_session(ledger)
        session.reconnect_delay = 0.05

        async def scenario() -> float:
            loop = asyncio.get_running_loop()
            started = loop.time()
            await session.ensure_connected()
            return loop.time() - started

        assert asyncio.run(scenario()) >= 0.04
        assert session.state is ConnectionState.CONNECTED

    def test_never_disconnected_to_connected(self) -> None:
        """Every path into CONNECTED should come from CONNECTING."""
        ledger = FakeLedger()
        session, changes = make_session(ledger)

        async def scenario() -> None:
            await session.connect()
            for _ in range(3):
                ledger.connected = False
                await session.ensure_connected()
            await session.disconnect()

        asyncio.run(scenario())
        for change in changes:
            if change.current is ConnectionState.CONNECTED:
                assert change.previous is ConnectionState.CONNECTING


class TestDisconnect:
    """Test disconnect()."""

    def test_disconnect_is_idempotent(self) -> None:
        """Disconnect should be safe from any state, any number of times."""
        ledger = FakeLedger()
        session, changes = make_session(ledger)

        async def scenario() -> None:
            await session.disconnect()
            await session.connect()
            await session.disconnect()
            await session.disconnect()

        asyncio.run(scenario())
        assert session.state is ConnectionState.DISCONNECTED
        assert ledger.connected is False
        assert edges(changes)[-1] == (
            ConnectionState.CONNECTED,
            ConnectionState.DISCONNECTED,
        )

    def test_disconnect_swallows_close_errors(self) -> None:
        """Errors while closing should be logged, not raised."""
        ledger = FakeLedger()

        async def broken_disconnect() -> None:
            raise RuntimeError("close failed")

        session, _ = make_session(ledger)

        async def scenario() -> None:
            await session.connect()
            ledger.disconnect = broken_disconnect
            await session.disconnect()

        asyncio.run(scenario())
        assert session.state is ConnectionState.DISCONNECTED


class TestNetworkValues:
    """Test network_values()."""

    def test_requires_connection(self) -> None:
        """Network values need a connected session."""
        session, _ = make_session(FakeLedger())
        with pytest.raises(LedgerConnectionError, match="not connected"):
            asyncio.run(session.network_values())

    def test_values_are_fresh(self) -> None:
        """Each call should query the ledger again."""
        ledger = FakeLedger()
        session, _ = make_session(ledger)

        async def scenario() -> tuple:
            await session.connect()
            return await session.network_values(), await session.network_values()

        first, second = asyncio.run(scenario())
        assert ledger.network_calls == 2
        assert first.sequence != second.sequence

    def test_invalid_transition_raises(self) -> None:
        """Jumping from DISCONNECTED to CONNECTED is a programming error."""
        session, _ = make_session(FakeLedger())
        with pytest.raises(RuntimeError, match="Invalid session transition"):
            session._transition(ConnectionState.CONNECTED)
