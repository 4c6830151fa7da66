"""
On-Chain Submitter

Stage 2 of an attestation:

1. Resolve FdcHub and Relay through the contract registry
2. Send FdcHub.requestAttestation(encoded_request) with the request fee
3. Wait for the receipt, read the confirming block's timestamp
4. Relay.getVotingRoundId(timestamp) -> the round this request belongs to

The round comes from the block timestamp, never from local wall clock: only
the block timestamp is agreed by consensus.
"""

import asyncio
import logging
from dataclasses import dataclass

from veriflare.fdc.errors import AttestationError, ErrorKind, ReceiptMissingError, SubmissionError
from veriflare.models.status import AttestationPhase
from veriflare.utils.status_store import AttestationStatusStore
from veriflare_canonical.constants import (
    DEFAULT_REQUEST_FEE_WEI,
    FDC_HUB_CONTRACT_NAME,
    RELAY_CONTRACT_NAME,
)

logger = logging.getLogger(__name__)


@dataclass
class SubmissionReceipt:
    tx_hash: str
    voting_round: int
    block_number: int


class OnChainSubmitter:
    def __init__(
        self,
        chain,
        store: AttestationStatusStore,
        fee_wei: int = DEFAULT_REQUEST_FEE_WEI,
        receipt_timeout: float = 120,
    ):
        self.chain = chain
        self.store = store
        self.fee_wei = fee_wei
        self.receipt_timeout = receipt_timeout

    async def submit(self, encoded_request: str, attestation_id: str) -> SubmissionReceipt:
        """
        Raises:
            ConfigurationError: Registry does not know FdcHub/Relay, or no signer key
            SubmissionError: Send failed, reverted, or not mined in time
            ReceiptMissingError: Node returned no receipt/block after success
            InvalidTransitionError: Record is not in phase preparing (nothing is sent)
        """
        self.store.check_transition(attestation_id, AttestationPhase.SUBMITTED)

        try:
            receipt = await self._submit(encoded_request, attestation_id)
        except AttestationError as e:
            e.attestation_id = attestation_id
            self.store.mark_failed(attestation_id, e.message, e.kind)
            raise
        except asyncio.CancelledError:
            self.store.fail_if_active(attestation_id, "Attestation cancelled during submission", ErrorKind.CANCELLED)
            raise
        except Exception as e:
            # RPC transport failures from registry/relay reads
            self.store.mark_failed(attestation_id, f"Chain RPC failed: {e}", ErrorKind.NETWORK)
            raise

        self.store.mark_submitted(attestation_id, receipt.voting_round, receipt.tx_hash)
        return receipt

    async def _submit(self, encoded_request: str, attestation_id: str) -> SubmissionReceipt:
        hub_address = await self.chain.resolve_address(FDC_HUB_CONTRACT_NAME)
        # Relay is resolved up front so a registry problem fails before any fee is paid
        await self.chain.resolve_address(RELAY_CONTRACT_NAME)

        logger.info(f"[SUBMIT] {attestation_id}: requestAttestation via FdcHub {hub_address} (fee {self.fee_wei} wei)")
        tx_hash = await self.chain.request_attestation(hub_address, encoded_request, self.fee_wei)
        logger.info(f"[SUBMIT] {attestation_id}: tx {tx_hash}")

        receipt = await self.chain.wait_for_receipt(tx_hash, timeout=self.receipt_timeout)
        if receipt is None:
            raise ReceiptMissingError(f"No receipt returned for transaction {tx_hash}")
        if receipt.get("status") == 0:
            raise SubmissionError(f"Transaction {tx_hash} reverted")

        block_number = receipt.get("blockNumber")
        if block_number is None:
            raise ReceiptMissingError(f"Receipt for {tx_hash} has no block number")

        timestamp = await self.chain.get_block_timestamp(block_number)
        if timestamp is None:
            raise ReceiptMissingError(f"Block {block_number} not found for transaction {tx_hash}")

        voting_round = await self.chain.get_voting_round_id(timestamp)
        logger.info(
            f"[SUBMIT] {attestation_id}: mined in block {block_number} (ts {timestamp}) -> voting round {voting_round}"
        )
        return SubmissionReceipt(tx_hash=tx_hash, voting_round=voting_round, block_number=block_number)
