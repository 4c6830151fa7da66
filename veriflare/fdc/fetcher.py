"""
Proof Fetcher

Stage 4 of an attestation. Pulls the Merkle proof and ABI-encoded response for
a finalized round from the DA layer and decodes it.

Finalization on the Relay does not mean the DA layer has indexed the round yet,
so the fetcher:

1. Sleeps a settle buffer (30s) before the first attempt
2. Makes up to 30 attempts, 10s apart
3. On every attempt tries each request-byte encoding in ENCODING_VARIANTS
   (hex, hex-no-prefix, base64); the first answer carrying `response_hex` wins

Non-2xx, a body without `response_hex` and network errors all mean "not ready
yet". A response that does not decode is fatal: retrying cannot fix a layout
mismatch.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from veriflare.fdc.errors import ErrorKind, ProofDecodeError, ProofUnavailableError
from veriflare.models.status import AttestationPhase, DecodedProof, Web2JsonResponse
from veriflare.utils.status_store import AttestationStatusStore
from veriflare_canonical.constants import DA_MAX_ATTEMPTS, DA_RETRY_SECONDS, DA_SETTLE_SECONDS
from veriflare_canonical.encoding import ENCODING_VARIANTS, EncodingVariant, decode_web2json_response, hex_to_bytes

logger = logging.getLogger(__name__)


def decode_proof(response_hex: str, merkle_proof: Optional[List[str]]) -> DecodedProof:
    """
    Raises:
        ProofDecodeError: response_hex does not match the Web2Json layout
    """
    try:
        fields = decode_web2json_response(hex_to_bytes(response_hex))
    except Exception as e:
        raise ProofDecodeError(f"Cannot decode Web2Json response: {e}") from e

    return DecodedProof(
        merkle_proof=list(merkle_proof or []),
        data=Web2JsonResponse(**fields),
    )


class ProofFetcher:
    def __init__(
        self,
        da_client,
        store: AttestationStatusStore,
        settle_seconds: float = DA_SETTLE_SECONDS,
        max_attempts: int = DA_MAX_ATTEMPTS,
        retry_seconds: float = DA_RETRY_SECONDS,
        variants: Sequence[EncodingVariant] = ENCODING_VARIANTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.da_client = da_client
        self.store = store
        self.settle_seconds = settle_seconds
        self.max_attempts = max_attempts
        self.retry_seconds = retry_seconds
        self.variants = list(variants)
        self._sleep = sleep

    async def fetch(self, encoded_request: str, voting_round: int, attestation_id: str) -> DecodedProof:
        """
        Raises:
            ProofUnavailableError: No variant produced a proof within the attempt budget
            ProofDecodeError: DA layer answered with undecodable bytes
            asyncio.CancelledError: After marking the record failed/cancelled
            InvalidTransitionError: Record is not finalized (the DA layer is never queried)
        """
        self.store.check_transition(attestation_id, AttestationPhase.PROOF_READY)

        try:
            proof = await self._poll(encoded_request, voting_round, attestation_id)
        except asyncio.CancelledError:
            self.store.fail_if_active(
                attestation_id, f"Cancelled while fetching proof for round {voting_round}", ErrorKind.CANCELLED
            )
            raise
        except (ProofUnavailableError, ProofDecodeError) as e:
            e.attestation_id = attestation_id
            self.store.mark_failed(attestation_id, e.message, e.kind)
            raise

        self.store.mark_proof_ready(attestation_id, proof)
        return proof

    async def _poll(self, encoded_request: str, voting_round: int, attestation_id: str) -> DecodedProof:
        logger.info(f"[PROOF] {attestation_id}: waiting {self.settle_seconds:.0f}s for DA layer to index round {voting_round}")
        await self._sleep(self.settle_seconds)

        for attempt in range(1, self.max_attempts + 1):
            for variant in self.variants:
                result = await self._try_variant(variant, encoded_request, voting_round, attestation_id)
                if result is None:
                    continue
                logger.info(
                    f"[PROOF] {attestation_id}: proof for round {voting_round} on attempt {attempt} "
                    f"(encoding {variant.name})"
                )
                return decode_proof(result["response_hex"], result.get("proof"))

            logger.info(f"[PROOF] {attestation_id}: round {voting_round} not available (attempt {attempt}/{self.max_attempts})")
            if attempt < self.max_attempts:
                await self._sleep(self.retry_seconds)

        raise ProofUnavailableError(
            f"No proof for round {voting_round} after {self.max_attempts} attempts "
            f"({len(self.variants)} encodings each)"
        )

    async def _try_variant(self, variant: EncodingVariant, encoded_request: str, voting_round: int, attestation_id: str):
        try:
            request_bytes = variant.transform(encoded_request)
        except ValueError as e:
            logger.debug(f"[PROOF] {attestation_id}: cannot encode request as {variant.name}: {e}")
            return None

        try:
            result = await self.da_client.fetch_proof(voting_round, request_bytes)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"[PROOF] {attestation_id}: {variant.name} request failed: {e}")
            return None

        if not isinstance(result, dict) or not result.get("response_hex"):
            return None
        return result
