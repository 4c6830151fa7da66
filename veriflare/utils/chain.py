"""
Flare Chain Client

web3 access to the three contracts the attestation flow touches:

- FlareContractRegistry: getContractAddressByName("FdcHub" | "Relay")
- FdcHub:                requestAttestation(bytes) payable
- Relay:                 getVotingRoundId / isFinalized / merkleRoots

web3's HTTP provider is blocking, so every call runs in a worker thread via
asyncio.to_thread and the event loop keeps serving status polls meanwhile.
"""

import asyncio
import logging
import threading
from typing import Any, Dict, Optional

from web3 import Web3
from web3.exceptions import BlockNotFound, TimeExhausted, TransactionNotFound, Web3Exception

from veriflare.fdc.errors import ConfigurationError, SubmissionError
from veriflare_canonical.constants import (
    FDC_HUB_ABI,
    FDC_PROTOCOL_ID,
    REGISTRY_ABI,
    RELAY_ABI,
    RELAY_CONTRACT_NAME,
    ZERO_ADDRESS,
)
from veriflare_canonical.encoding import hex_to_bytes

logger = logging.getLogger(__name__)


class FlareChainClient:
    def __init__(
        self,
        rpc_url: str,
        registry_address: str,
        private_key: Optional[str] = None,
        protocol_id: int = FDC_PROTOCOL_ID,
        web3: Optional[Web3] = None,
    ):
        self.web3 = web3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 30}))
        self.registry = self.web3.eth.contract(
            address=Web3.to_checksum_address(registry_address), abi=REGISTRY_ABI
        )
        self.protocol_id = protocol_id
        self._account = self.web3.eth.account.from_key(private_key) if private_key else None
        self._addresses: Dict[str, str] = {}
        self._address_lock = threading.Lock()
        # One signer, so nonce assignment must be serialized
        self._send_lock = threading.Lock()
        logger.debug(f"[CHAIN] Client initialized for {rpc_url}")

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    async def resolve_address(self, name: str) -> str:
        """
        Look up a contract by name in the registry (cached after first hit).

        Raises:
            ConfigurationError: Registry returned the zero address
        """
        with self._address_lock:
            cached = self._addresses.get(name)
        if cached:
            return cached

        address = await asyncio.to_thread(self.registry.functions.getContractAddressByName(name).call)
        if not address or int(address, 16) == int(ZERO_ADDRESS, 16):
            raise ConfigurationError(f"Contract '{name}' is not registered (registry returned zero address)")

        address = Web3.to_checksum_address(address)
        with self._address_lock:
            self._addresses[name] = address
        logger.info(f"[CHAIN] Resolved {name} -> {address}")
        return address

    async def _relay(self):
        address = await self.resolve_address(RELAY_CONTRACT_NAME)
        return self.web3.eth.contract(address=address, abi=RELAY_ABI)

    # ------------------------------------------------------------------
    # FdcHub
    # ------------------------------------------------------------------

    async def request_attestation(self, hub_address: str, encoded_request: str, fee_wei: int) -> str:
        """
        Sign and send FdcHub.requestAttestation(encoded_request) with the fee.

        Returns:
            Transaction hash (0x hex)

        Raises:
            ConfigurationError: No submitter key configured
            SubmissionError: Build/sign/send failed
        """
        if self._account is None:
            raise ConfigurationError("FDC_SUBMITTER_PRIVATE_KEY is not set")

        hub = self.web3.eth.contract(address=hub_address, abi=FDC_HUB_ABI)
        request_bytes = hex_to_bytes(encoded_request)

        def _send() -> str:
            with self._send_lock:
                nonce = self.web3.eth.get_transaction_count(self._account.address, "pending")
                tx = hub.functions.requestAttestation(request_bytes).build_transaction({
                    "from": self._account.address,
                    "value": fee_wei,
                    "nonce": nonce,
                })
                signed = self._account.sign_transaction(tx)
                tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
            return Web3.to_hex(tx_hash)

        try:
            return await asyncio.to_thread(_send)
        except (Web3Exception, ValueError, TypeError, OSError) as e:
            # RPC rejections: insufficient funds, revert during gas estimation, bad nonce
            raise SubmissionError(f"requestAttestation failed: {e}") from e

    async def wait_for_receipt(self, tx_hash: str, timeout: float = 120) -> Optional[Dict[str, Any]]:
        """
        Returns:
            Receipt, or None if the node has no receipt for a mined hash

        Raises:
            SubmissionError: Transaction not mined within timeout
        """
        def _wait():
            try:
                return self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
            except TransactionNotFound:
                return None

        try:
            return await asyncio.to_thread(_wait)
        except TimeExhausted as e:
            raise SubmissionError(f"Transaction {tx_hash} not mined within {timeout}s") from e

    async def get_block_timestamp(self, block_number: int) -> Optional[int]:
        def _block():
            try:
                return self.web3.eth.get_block(block_number)
            except BlockNotFound:
                return None

        block = await asyncio.to_thread(_block)
        if block is None:
            return None
        return int(block["timestamp"])

    # ------------------------------------------------------------------
    # Relay
    # ------------------------------------------------------------------

    async def get_voting_round_id(self, timestamp: int) -> int:
        relay = await self._relay()
        return int(await asyncio.to_thread(relay.functions.getVotingRoundId(timestamp).call))

    async def is_finalized(self, voting_round: int) -> bool:
        relay = await self._relay()
        return bool(await asyncio.to_thread(relay.functions.isFinalized(self.protocol_id, voting_round).call))

    async def get_merkle_root(self, voting_round: int) -> bytes:
        relay = await self._relay()
        return bytes(await asyncio.to_thread(relay.functions.merkleRoots(self.protocol_id, voting_round).call))
