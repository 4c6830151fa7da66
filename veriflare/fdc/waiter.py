"""
Finalization Waiter

Stage 3 of an attestation. Polls Relay.isFinalized(protocolId, round) until
the round is finalized or the deadline passes.

    submitted -> waiting -> finalized | failed (timeout / cancelled)

Defaults: poll every 10s for up to 5 minutes (~30 polls). A poll that raises
is logged and counted as "not yet"; only the deadline ends the loop.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from veriflare.fdc.errors import ErrorKind
from veriflare.utils.status_store import AttestationStatusStore
from veriflare_canonical.constants import FINALIZATION_MAX_WAIT_SECONDS, FINALIZATION_POLL_SECONDS

logger = logging.getLogger(__name__)


class FinalizationWaiter:
    def __init__(
        self,
        chain,
        store: AttestationStatusStore,
        max_wait: float = FINALIZATION_MAX_WAIT_SECONDS,
        poll_interval: float = FINALIZATION_POLL_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.chain = chain
        self.store = store
        self.max_wait = max_wait
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    async def wait(
        self,
        voting_round: int,
        attestation_id: str,
        max_wait: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> bool:
        """
        Returns:
            True once finalized, False when max_wait elapsed (record marked failed)

        Raises:
            asyncio.CancelledError: After marking the record failed/cancelled
            InvalidTransitionError: Record is not submitted (nothing is polled)
        """
        max_wait = self.max_wait if max_wait is None else max_wait
        poll_interval = self.poll_interval if poll_interval is None else poll_interval

        self.store.mark_waiting(attestation_id)
        deadline = self._clock() + max_wait
        polls = 0

        logger.info(f"[WAIT] {attestation_id}: waiting for round {voting_round} (max {max_wait:.0f}s)")

        try:
            while True:
                polls += 1
                try:
                    finalized = await self.chain.is_finalized(voting_round)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.warning(f"[WAIT] {attestation_id}: poll {polls} failed, retrying: {e}")
                    finalized = False

                if finalized:
                    logger.info(f"[WAIT] {attestation_id}: round {voting_round} finalized after {polls} poll(s)")
                    self.store.mark_finalized(attestation_id)
                    return True

                remaining = deadline - self._clock()
                if remaining <= 0:
                    break
                await self._sleep(min(poll_interval, remaining))

        except asyncio.CancelledError:
            self.store.fail_if_active(
                attestation_id, f"Cancelled while waiting for round {voting_round}", ErrorKind.CANCELLED
            )
            raise

        message = f"Round {voting_round} not finalized within {max_wait:.0f}s ({polls} polls)"
        logger.warning(f"[WAIT] {attestation_id}: {message}")
        self.store.mark_failed(attestation_id, message, ErrorKind.TIMEOUT)
        return False
