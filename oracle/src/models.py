"""Data model shared by the session, fetcher, submitter and controller."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def iso_timestamp(moment: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with milliseconds (e.g. ``2024-01-01T00:00:00.000Z``)."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


class ConnectionState(str, Enum):
    """Lifecycle state of the ledger session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class StateChange:
    """Notification emitted on every session state transition."""

    previous: ConnectionState
    current: ConnectionState
    reason: str = ""


@dataclass(frozen=True)
class PriceSample:
    """One price observation.

    :ivar value: Price with the full precision of the source.
    :ivar fetched_at: UTC time the observation was taken.
    """

    value: Decimal
    fetched_at: datetime

    @property
    def text(self) -> str:
        """Plain decimal text of the value, without exponent notation."""
        return format(self.value, "f")


@dataclass(frozen=True)
class LedgerAccount:
    """Account credential derived from the account secret."""

    address: str
    public_key: str
    private_key: str = field(repr=False)


@dataclass(frozen=True)
class NetworkValues:
    """Sequencing and fee values for a single submission."""

    sequence: int
    fee: str
    last_ledger_sequence: int
    network_id: int | None = None


@dataclass(frozen=True)
class UpdateRecord:
    """Ledger-neutral update of a ledger object.

    :ivar object_id: Identifier of the ledger object to update.
    :ivar fields: Ordered mapping of field name to text value.
    """

    object_id: str
    fields: dict[str, str]


@dataclass(frozen=True)
class SubmitResult:
    """Result of a sign-and-broadcast call."""

    engine_result: str
    engine_result_message: str = ""
    tx_hash: str | None = None


@dataclass
class UpdateAttempt:
    """Outcome of one submission; logged and discarded."""

    sample: PriceSample
    engine_result: str
    tx_hash: str | None = None
    succeeded_at: datetime | None = None


@dataclass
class OracleStats:
    """Cumulative statistics, mutated only by the controller."""

    update_count: int = 0
    last_price: Decimal | None = None
    is_running: bool = False
