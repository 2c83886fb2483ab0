"""LedgerUtilityXrpl: Ledger utility for Xahau / XRPL networks via xrpl-py."""

import asyncio
import logging
from typing import Any

from websockets.exceptions import ConnectionClosed
from xrpl.asyncio.clients import AsyncWebsocketClient
from xrpl.constants import CryptoAlgorithm, XRPLException
from xrpl.core.binarycodec import encode, encode_for_signing
from xrpl.core.keypairs import sign
from xrpl.models.requests import (
    AccountInfo,
    Fee,
    ServerDefinitions,
    ServerInfo,
    SubmitOnly,
)
from xrpl.models.requests.request import Request
from xrpl.wallet import Wallet

from . import codec_definitions
from .errors import LedgerConnectionError, LedgerError
from .LedgerUtility import LedgerUtility
from .models import LedgerAccount, NetworkValues, SubmitResult, UpdateRecord

logger = logging.getLogger(__name__)

# Ledgers a submitted transaction stays valid for.
LAST_LEDGER_OFFSET = 20

# Networks with an ID above this value require NetworkID in transactions.
LEGACY_NETWORK_ID_MAX = 1024


def to_hex(text: str) -> str:
    """Encode text as upper-case UTF-8 hex, the ledger's blob representation.

    :param text: Text to encode.
    :returns: Hex string (e.g., "0.0423" -> "302E30343233").
    """
    return text.encode("utf-8").hex().upper()


def build_remarks_transaction(record: UpdateRecord) -> dict[str, Any]:
    """Render an update record as a Xahau SetRemarks transaction.

    Each record field becomes a mutable remark with hex-encoded name and value.

    :param record: Update record.
    :returns: Unsigned transaction JSON without account or network values.
    """
    return {
        "TransactionType": "SetRemarks",
        "ObjectID": record.object_id,
        "Remarks": [
            {
                "Remark": {
                    "RemarkName": to_hex(name),
                    "RemarkValue": to_hex(value),
                    "Flags": 0,  # Mutable
                }
            }
            for name, value in record.fields.items()
        ],
    }


def sign_transaction(tx_json: dict[str, Any], account: LedgerAccount) -> str:
    """Sign a transaction locally and return the submittable blob.

    :param tx_json: Transaction JSON including account and network values.
        TxnSignature is added in place.
    :param account: Signing account.
    :returns: Hex-encoded signed transaction.
    :raises LedgerError: If the codec cannot encode the transaction.
    """
    tx_type = tx_json.get("TransactionType")
    if not codec_definitions.has_transaction_type(tx_type):
        raise LedgerError(
            f"Cannot encode transaction: {tx_type} is not in the codec definitions"
        )
    try:
        signing_blob = bytes.fromhex(encode_for_signing(tx_json))
        tx_json["TxnSignature"] = sign(signing_blob, account.private_key)
        return encode(tx_json)
    except (KeyError, TypeError, ValueError, XRPLException) as e:
        raise LedgerError(f"Cannot encode transaction: {e!r}") from e


def _retrieve_handler_error(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Websocket handler ended: {task.exception()!r}")


async def _close_client(client: AsyncWebsocketClient) -> None:
    """Close a client that may already have lost its websocket.

    xrpl-py only closes open clients and leaves the failure of its message
    handler task unretrieved; both are handled here.
    """
    handler = client._handler_task
    if handler is not None:
        handler.add_done_callback(_retrieve_handler_error)
    if handler is None or client._websocket is None or client._messages is None:
        return
    try:
        await client._do_close()
    except Exception as e:
        logger.warning(f"Error closing websocket: {e!r}")


class XrplLedgerUtility(LedgerUtility):
    """Ledger utility backed by an xrpl-py websocket client.

    :ivar endpoint: Websocket URL of the network (e.g., "wss://xahau-test.net").
    :ivar request_timeout: Upper bound in seconds for connect and each request.
    """

    def __init__(self, endpoint: str, request_timeout: float = 10.0) -> None:
        """Initialize the utility.

        :param endpoint: Websocket URL of the network.
        :param request_timeout: Timeout for connect and requests (default: 10.0).
        """
        self.endpoint = endpoint
        self.request_timeout = request_timeout
        self._client: AsyncWebsocketClient | None = None

    async def connect(self) -> None:
        """Open a websocket connection to the network.

        :raises LedgerConnectionError: If the handshake fails or times out.
        """
        await self.disconnect()
        client = AsyncWebsocketClient(self.endpoint)
        try:
            await asyncio.wait_for(client.open(), timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            await _close_client(client)
            raise LedgerConnectionError(
                f"Connection to {self.endpoint} timed out after {self.request_timeout}s"
            ) from e
        except Exception as e:
            await _close_client(client)
            raise LedgerConnectionError(f"Connection to {self.endpoint} failed: {e}") from e
        self._client = client

        try:
            await self._load_definitions()
        except LedgerConnectionError:
            await self.disconnect()
            raise

    async def _load_definitions(self) -> None:
        """Merge the node's codec definitions into xrpl-py.

        A node without server_definitions leaves the bundled definitions in
        place; transactions it lacks then fail to encode at submission.
        """
        try:
            result = await self._request(ServerDefinitions())
        except LedgerError as e:
            logger.warning(f"Server definitions unavailable, using bundled codec: {e}")
            return
        try:
            changed = codec_definitions.merge_definitions(result)
        except ValueError as e:
            logger.warning(f"Ignoring server definitions: {e}")
            return
        if changed:
            logger.info(f"Loaded {changed} codec definitions from {self.endpoint}")

    async def disconnect(self) -> None:
        """Tear down the client, whether or not its websocket is still open."""
        client, self._client = self._client, None
        if client is not None:
            await _close_client(client)

    def is_connection_fault(self, error: BaseException) -> bool:
        """Closed-websocket errors raised in the client's background tasks."""
        return isinstance(error, (LedgerConnectionError, ConnectionClosed))

    def is_connected(self) -> bool:
        """Check whether the websocket is still open."""
        return self._client is not None and self._client.is_open()

    def derive_account(self, secret: str, algorithm: str) -> LedgerAccount:
        """Derive the account from a family seed.

        :param secret: Family seed (e.g., "sn...").
        :param algorithm: "secp256k1" or "ed25519".
        :returns: Derived account.
        :raises ValueError: If the seed or algorithm is invalid.
        """
        try:
            wallet = Wallet.from_seed(secret, algorithm=CryptoAlgorithm(algorithm))
        except XRPLException as e:
            raise ValueError(f"Invalid account secret: {e}") from e
        return LedgerAccount(
            address=wallet.address,
            public_key=wallet.public_key,
            private_key=wallet.private_key,
        )

    async def _request(self, request: Request) -> dict[str, Any]:
        """Send a request over the open connection.

        :param request: xrpl-py request model.
        :returns: Result dict of a successful response.
        :raises LedgerConnectionError: If not connected or the request times out.
        :raises LedgerError: If the ledger returns an error response.
        """
        if not self.is_connected():
            raise LedgerConnectionError(f"Not connected to {self.endpoint}")
        assert self._client is not None
        try:
            response = await asyncio.wait_for(
                self._client.request(request), timeout=self.request_timeout
            )
        except asyncio.TimeoutError as e:
            raise LedgerConnectionError(
                f"{request.method.value} request timed out after {self.request_timeout}s"
            ) from e
        except Exception as e:  # Includes KeyError when the client closes mid-request
            raise LedgerConnectionError(
                f"{request.method.value} request failed: {e!r}"
            ) from e

        if not response.is_successful():
            result = response.result
            message = result.get("error_message") or result.get("error") or result
            raise LedgerError(f"{request.method.value} request rejected: {message}")
        return response.result

    async def fetch_network_values(self, account: LedgerAccount) -> NetworkValues:
        """Fetch sequence, fee, last ledger sequence and network ID.

        :param account: Submitting account.
        :returns: Values for a single submission.
        """
        account_info = await self._request(
            AccountInfo(account=account.address, ledger_index="current")
        )
        fee_info = await self._request(Fee())
        server_info = await self._request(ServerInfo())

        drops = fee_info["drops"]
        fee = max(int(drops["base_fee"]), int(drops.get("open_ledger_fee", 0)))
        current_ledger = int(fee_info["ledger_current_index"])
        network_id = server_info.get("info", {}).get("network_id")

        values = NetworkValues(
            sequence=int(account_info["account_data"]["Sequence"]),
            fee=str(fee),
            last_ledger_sequence=current_ledger + LAST_LEDGER_OFFSET,
            network_id=int(network_id) if network_id is not None else None,
        )
        logger.debug(f"Network values for {account.address}: {values}")
        return values

    async def sign_and_submit(
        self,
        record: UpdateRecord,
        values: NetworkValues,
        account: LedgerAccount,
    ) -> SubmitResult:
        """Sign the record as a SetRemarks transaction and submit the blob.

        :param record: Update record.
        :param values: Network values for this submission.
        :param account: Signing account.
        :returns: Engine result, message and transaction hash.
        """
        tx_json = build_remarks_transaction(record)
        tx_json.update(
            {
                "Account": account.address,
                "Sequence": values.sequence,
                "Fee": values.fee,
                "LastLedgerSequence": values.last_ledger_sequence,
                "SigningPubKey": account.public_key,
            }
        )
        if values.network_id is not None and values.network_id > LEGACY_NETWORK_ID_MAX:
            tx_json["NetworkID"] = values.network_id

        tx_blob = sign_transaction(tx_json, account)
        result = await self._request(SubmitOnly(tx_blob=tx_blob))
        return SubmitResult(
            engine_result=result.get("engine_result", ""),
            engine_result_message=result.get("engine_result_message", ""),
            tx_hash=result.get("tx_json", {}).get("hash"),
        )
