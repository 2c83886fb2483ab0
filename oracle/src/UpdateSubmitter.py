"""UpdateSubmitter: Builds the ledger update for a price sample and submits it.

A submission is binary: the engine result either equals the accepted code and
the attempt succeeded, or SubmitError is raised. Network values are fetched
fresh for every submission so sequence numbers are never stale.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .errors import LedgerConnectionError, LedgerError, SubmitError
from .models import PriceSample, UpdateAttempt, UpdateRecord, iso_timestamp, utc_now

if TYPE_CHECKING:
    from .OracleSession import OracleSession

logger = logging.getLogger(__name__)

# Engine result of a provisionally accepted transaction.
ACCEPTED_ENGINE_RESULT = "tesSUCCESS"


class UpdateSubmitter:
    """Submits price updates for one ledger object.

    :ivar object_id: Ledger object to update.
    :ivar value_field: Field name holding the price text.
    :ivar timestamp_field: Field name holding the ISO-8601 update time.
    :ivar submit_timeout: Upper bound in seconds for sign-and-broadcast.
    """

    DEFAULT_VALUE_FIELD = "XAH_PRICE_USD"
    DEFAULT_TIMESTAMP_FIELD = "LAST_UPDATE"
    DEFAULT_SUBMIT_TIMEOUT = 30.0

    def __init__(
        self,
        object_id: str,
        value_field: str = DEFAULT_VALUE_FIELD,
        timestamp_field: str = DEFAULT_TIMESTAMP_FIELD,
        submit_timeout: float = DEFAULT_SUBMIT_TIMEOUT,
    ) -> None:
        """Initialize the submitter.

        :param object_id: Ledger object to update.
        :param value_field: Field name for the price (default: XAH_PRICE_USD).
        :param timestamp_field: Field name for the timestamp (default: LAST_UPDATE).
        :param submit_timeout: Sign-and-broadcast timeout (default: 30.0).
        """
        self.object_id = object_id
        self.value_field = value_field
        self.timestamp_field = timestamp_field
        self.submit_timeout = submit_timeout

    def build_record(self, sample: PriceSample, timestamp: str) -> UpdateRecord:
        """Build the update record for a sample.

        :param sample: Price sample.
        :param timestamp: ISO-8601 update time.
        :returns: Update record with value and timestamp fields.
        """
        return UpdateRecord(
            object_id=self.object_id,
            fields={self.value_field: sample.text, self.timestamp_field: timestamp},
        )

    async def submit(self, session: OracleSession, sample: PriceSample) -> UpdateAttempt:
        """Submit a sample to the ledger object.

        :param session: Connected ledger session.
        :param sample: Price sample to publish.
        :returns: Successful update attempt.
        :raises SubmitError: If the update was not accepted.
        """
        try:
            values = await session.network_values()
        except (LedgerConnectionError, LedgerError) as e:
            raise SubmitError(f"Cannot obtain network values: {e}") from e
        except Exception as e:
            raise SubmitError(f"Cannot obtain network values: {e!r}") from e

        record = self.build_record(sample, iso_timestamp(utc_now()))
        logger.debug(f"Submitting {record} with sequence {values.sequence}")

        try:
            result = await asyncio.wait_for(
                session.ledger.sign_and_submit(record, values, session.account),
                timeout=self.submit_timeout,
            )
        except asyncio.TimeoutError as e:
            raise SubmitError(
                f"Submission timed out after {self.submit_timeout}s"
            ) from e
        except (LedgerConnectionError, LedgerError) as e:
            raise SubmitError(f"Submission failed: {e}") from e
        except Exception as e:
            raise SubmitError(f"Submission failed: {e!r}") from e

        if result.engine_result != ACCEPTED_ENGINE_RESULT:
            raise SubmitError(
                f"Transaction failed: {result.engine_result or 'Unknown'} "
                f"({result.engine_result_message or 'No message'})",
                engine_result=result.engine_result,
                engine_result_message=result.engine_result_message,
                tx_hash=result.tx_hash,
            )

        return UpdateAttempt(
            sample=sample,
            engine_result=result.engine_result,
            tx_hash=result.tx_hash,
            succeeded_at=utc_now(),
        )
