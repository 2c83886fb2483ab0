"""PriceOracle: Periodic fetch-then-submit control loop.

This module drives the oracle's update cycles (ticks) and owns its lifecycle.

Architecture:
    - One immediate tick after connecting, then one tick per update_period
    - The next tick is scheduled only after the current one completes
    - Errors inside a tick are logged and the cycle counts as failed
    - Errors outside any tick are fatal: stop, then exit status 1
    - Dropped ledger connections reported outside a tick wait for the next reconnect
    - SIGINT / SIGTERM stop the oracle, then exit status 0
    - An in-flight tick is never cancelled; it finishes or fails naturally
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import TYPE_CHECKING, Any

from .errors import FatalRuntimeError, FetchError, SubmitError
from .fetchers import BaseFetcher, CoinGeckoFetcher
from .LedgerUtilityXrpl import XrplLedgerUtility
from .models import ConnectionState, OracleStats, StateChange, UpdateAttempt
from .OracleSession import OracleSession
from .UpdateSubmitter import UpdateSubmitter

if TYPE_CHECKING:
    from .OracleConfig import OracleConfig

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class PriceOracle:
    """Oracle loop controller.

    Fetches a price each tick, makes sure the ledger session is connected and
    submits the update. Cumulative statistics are kept in stats.

    :ivar session: Ledger session.
    :ivar fetcher: Price fetcher.
    :ivar submitter: Update submitter.
    :ivar update_period: Seconds between the end of a tick and the next tick.
    :ivar stats: Cumulative statistics.
    """

    DEFAULT_UPDATE_PERIOD = 60.0

    def __init__(
        self,
        session: OracleSession,
        fetcher: BaseFetcher,
        submitter: UpdateSubmitter,
        update_period: float = DEFAULT_UPDATE_PERIOD,
    ) -> None:
        """Initialize the price oracle.

        :param session: Ledger session (not yet connected).
        :param fetcher: Price fetcher.
        :param submitter: Update submitter.
        :param update_period: Seconds between ticks (default: 60.0).
        """
        self.session = session
        self.fetcher = fetcher
        self.submitter = submitter
        self.update_period = update_period
        self.stats = OracleStats()

        self.session.should_reconnect = lambda: self.stats.is_running
        self.session.subscribe(self._on_session_state)

        self._loop: asyncio.AbstractEventLoop | None = None
        self._stopped: asyncio.Event | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._tick_task: asyncio.Task | None = None
        self._shutdown_task: asyncio.Task | None = None
        self._installed_signals: list[signal.Signals] = []
        self._exit_code = 0

    @classmethod
    def from_config(cls, config: OracleConfig) -> PriceOracle:
        """Build an oracle with the xrpl ledger utility and CoinGecko fetcher.

        :param config: Validated configuration.
        :returns: Configured PriceOracle.
        :raises StartupConfigError: If the account cannot be derived.
        """
        ledger = XrplLedgerUtility(config.network, request_timeout=config.ledger_timeout)
        session = OracleSession(
            ledger,
            secret=config.seed or "",
            key_algorithm=config.key_algorithm,
            reconnect_delay=config.reconnect_delay,
        )
        fetcher = CoinGeckoFetcher(
            url=config.api_url,
            price_path=config.price_keys,
            timeout=config.fetch_timeout,
        )
        submitter = UpdateSubmitter(
            object_id=config.object_id or "",
            value_field=config.value_field,
            timestamp_field=config.timestamp_field,
            submit_timeout=config.submit_timeout,
        )
        return cls(session, fetcher, submitter, update_period=config.update_period)

    def get_stats(self) -> dict[str, Any]:
        """Return a snapshot of the cumulative statistics."""
        return {
            "is_running": self.stats.is_running,
            "update_count": self.stats.update_count,
            "last_price": self.stats.last_price,
            "object_id": self.submitter.object_id,
        }

    def _on_session_state(self, change: StateChange) -> None:
        """Log session state transitions."""
        reason = f" ({change.reason})" if change.reason else ""
        message = f"Ledger session {change.previous.value} -> {change.current.value}{reason}"
        if change.current is ConnectionState.DISCONNECTED and self.stats.is_running:
            logger.warning(message)
        else:
            logger.info(message)

    async def tick(self) -> UpdateAttempt | None:
        """Run one fetch-then-submit cycle.

        Never raises: failures are logged and leave stats unchanged.

        :returns: The successful attempt, or None if the cycle failed.
        """
        try:
            logger.info("Fetching price...")
            try:
                sample = await self.fetcher.fetch()
            except FetchError as e:
                logger.error(f"Error fetching price: {e}. Will retry on next cycle")
                return None
            logger.info(f"Fetched price {sample.text}")

            if not await self.session.ensure_connected():
                logger.error(
                    f"Ledger unavailable ({self.session.last_error or self.session.state.value}). "
                    "Will retry on next cycle"
                )
                return None

            try:
                attempt = await self.submitter.submit(self.session, sample)
            except SubmitError as e:
                logger.error(
                    f"Update not accepted: {e} (engine_result={e.engine_result}, "
                    f"hash={e.tx_hash}). Will retry on next cycle"
                )
                return None
        except Exception as e:
            logger.exception(f"Unexpected error during update cycle: {e}")
            return None

        self.stats.update_count += 1
        self.stats.last_price = sample.value
        logger.info(
            f"Price updated: {sample.text} (hash={attempt.tx_hash}, "
            f"engine_result={attempt.engine_result}, update #{self.stats.update_count})"
        )
        return attempt

    def _spawn_tick(self) -> None:
        """Start a tick task unless the oracle has stopped."""
        self._timer = None
        if not self.stats.is_running:
            return
        assert self._loop is not None
        self._tick_task = self._loop.create_task(self._tick_and_reschedule())
        self._tick_task.add_done_callback(self._on_tick_task_done)

    async def _tick_and_reschedule(self) -> None:
        await self.tick()
        if self.stats.is_running:
            assert self._loop is not None
            self._timer = self._loop.call_later(self.update_period, self._spawn_tick)

    def _on_tick_task_done(self, task: asyncio.Task) -> None:
        """Treat an exception escaping the tick task as fatal."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            error = FatalRuntimeError(f"Update scheduling failed: {exc}")
            error.__cause__ = exc
            self._fatal(error)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _install_handlers(self) -> None:
        """Register signal handlers and the out-of-band error handler."""
        assert self._loop is not None
        for sig in SHUTDOWN_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self._handle_signal, sig)
                self._installed_signals.append(sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                logger.warning(f"Cannot install handler for {sig.name}: {e}")
        self._loop.set_exception_handler(self._handle_loop_exception)

    def _remove_handlers(self) -> None:
        if self._loop is None:
            return
        for sig in self._installed_signals:
            self._loop.remove_signal_handler(sig)
        self._installed_signals = []
        self._loop.set_exception_handler(None)

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}, stopping oracle...")
        self._request_shutdown(0)

    def _handle_loop_exception(
        self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
    ) -> None:
        """Event loop exception handler.

        Dropped ledger connections are left to the next reconnect; any other
        fault reaching it is fatal.
        """
        exc = context.get("exception")
        message = context.get("message", "Unhandled error")
        if exc is not None and self.session.ledger.is_connection_fault(exc):
            logger.warning(f"Ledger connection lost outside an update cycle: {exc!r}")
            return
        error = FatalRuntimeError(f"{message}: {exc}" if exc else message)
        error.__cause__ = exc
        self._fatal(error)

    def _fatal(self, error: FatalRuntimeError) -> None:
        logger.critical(f"Uncaught exception: {error}", exc_info=error.__cause__)
        self._request_shutdown(error.exit_code)

    def _request_shutdown(self, exit_code: int) -> None:
        """Stop the loop from a synchronous handler; the first request wins."""
        if self._shutdown_task is not None:
            return
        assert self._loop is not None
        self._exit_code = exit_code
        self.stats.is_running = False
        self._cancel_timer()
        self._shutdown_task = self._loop.create_task(self.stop())

    async def start(self) -> bool:
        """Connect, install handlers and begin the update cycles.

        :returns: False if the initial connection failed (nothing was started).
        """
        self._loop = asyncio.get_running_loop()
        self._stopped = asyncio.Event()

        logger.info(f"Starting price oracle, updates every {self.update_period}s")
        if not await self.session.connect():
            logger.error(f"Could not connect: {self.session.last_error}. Aborting...")
            return False
        logger.info(f"Connected to {self.session.endpoint}")
        logger.info(f"Account: {self.session.account.address}")
        logger.info(f"Object to update: {self.submitter.object_id}")

        self.stats.is_running = True
        self._install_handlers()
        self._spawn_tick()
        logger.info("Oracle started. Press Ctrl+C to stop.")
        return True

    async def stop(self) -> None:
        """Stop scheduling ticks and release the session. Idempotent."""
        self.stats.is_running = False
        self._cancel_timer()
        await self.session.disconnect()
        logger.info(f"Oracle stopped ({self.stats.update_count} updates)")
        if self._stopped is not None:
            self._stopped.set()

    async def run(self) -> int:
        """Run the oracle until stopped.

        :returns: Process exit code (0 after a signal, 1 after a fatal error
            or failed startup connection).
        """
        try:
            if not await self.start():
                return 1
            assert self._stopped is not None
            await self._stopped.wait()

            if self._tick_task is not None and not self._tick_task.done():
                logger.info("Waiting for in-flight update to finish...")
                await asyncio.wait({self._tick_task})
        finally:
            self._remove_handlers()
            await self.session.disconnect()
            await self.fetcher.close_shared_client()
        return self._exit_code
