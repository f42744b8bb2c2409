"""
Flight Oracle Relay Response Submitter

Performs one submitOracleResponse attempt on behalf of one oracle.

Each attempt draws a fresh status code uniformly from the five FlightStatus
buckets; oracles are meant to disagree so the contract's consensus logic has
something to resolve. Attempts are fire-and-forget: failures are logged and
discarded, never retried, and never reported back to the dispatcher. The
ledger decides which responses count.
"""

from __future__ import annotations

import logging
import random
from typing import Optional

from ..ledger.gateway import LedgerGateway
from ..models import (
    RESPONSE_METHOD,
    STATUS_CODES,
    FailureKind,
    RequestEvent,
    ResponseAttempt,
    SubmissionResult,
)


logger = logging.getLogger(__name__)


class ResponseSubmitter:
    """Submits oracle responses to the ledger with per-attempt isolation."""

    def __init__(self, gateway: LedgerGateway, rng: Optional[random.Random] = None):
        """
        Initialize the submitter.

        Args:
            gateway: Ledger gateway used to send responses
            rng: Random source for status codes (seed it for reproducibility)
        """
        self._gateway = gateway
        self._rng = rng or random.Random()

        self.submitted_count = 0
        self.failed_count = 0

    def draw_status_code(self) -> int:
        return self._rng.choice(STATUS_CODES)

    def build_attempt(self, index: int, event: RequestEvent) -> ResponseAttempt:
        """Create an attempt for one index with a freshly drawn status code."""
        return ResponseAttempt(
            index=index,
            event=event,
            status_code=self.draw_status_code(),
        )

    async def submit(self, attempt: ResponseAttempt, sender: str) -> SubmissionResult:
        """
        Send one response transaction from `sender`.

        Never raises.
        """
        try:
            result = await self._gateway.send(
                RESPONSE_METHOD,
                attempt.to_args(),
                sender=sender,
            )
        except Exception as e:
            return self._failed(attempt, sender, FailureKind.TRANSPORT_ERROR, str(e))

        if not result.get("success"):
            return self._failed(
                attempt,
                sender,
                FailureKind.TRANSACTION_FAILED,
                f"{result.get('error')} - {result.get('message')}",
            )

        self.submitted_count += 1
        logger.debug(
            f"Response submitted: oracle={sender} index={attempt.index} "
            f"flight={attempt.event.flight} status={attempt.status_code}"
        )
        return SubmissionResult(
            attempt=attempt,
            sender=sender,
            success=True,
            tx_hash=result.get("tx_hash"),
        )

    def _failed(
        self,
        attempt: ResponseAttempt,
        sender: str,
        failure: FailureKind,
        message: str,
    ) -> SubmissionResult:
        self.failed_count += 1
        logger.warning(
            f"Response rejected: oracle={sender} index={attempt.index} "
            f"flight={attempt.event.flight}: {message}"
        )
        return SubmissionResult(
            attempt=attempt,
            sender=sender,
            success=False,
            failure=failure,
            error_message=message,
        )
