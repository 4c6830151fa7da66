"""
Attestation Status Models
=========================

Lifecycle record for one attestation attempt and the decoded proof it ends
with.

Phase order:
    preparing -> submitted -> waiting -> finalized -> proof-ready
Any phase may move to `failed`; `proof-ready` and `failed` are terminal.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from veriflare_canonical.encoding import hex_to_bytes, web2json_response_tuple


class AttestationPhase(str, Enum):
    PREPARING = "preparing"
    SUBMITTED = "submitted"
    WAITING = "waiting"
    FINALIZED = "finalized"
    PROOF_READY = "proof-ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AttestationPhase.PROOF_READY, AttestationPhase.FAILED)


class RequestBody(BaseModel):
    """The Web2Json request as the verifier echoed it back."""

    url: str
    http_method: str
    headers: str
    query_params: str
    body: str
    post_process_jq: str
    abi_signature: str


class ResponseBody(BaseModel):
    abi_encoded_data: str  # 0x hex, ABI encoded per abi_signature


class Web2JsonResponse(BaseModel):
    attestation_type: str  # bytes32 hex
    source_id: str  # bytes32 hex
    voting_round: int
    lowest_used_timestamp: int
    request_body: RequestBody
    response_body: ResponseBody


class DecodedProof(BaseModel):
    """
    Merkle proof plus the decoded attestation response.

    `merkle_proof` is the sibling path (leaf level first) that folds
    keccak(abi.encode(data)) into the round's Merkle root.
    """

    merkle_proof: List[str] = Field(default_factory=list)
    data: Web2JsonResponse

    def to_contract_args(self) -> tuple:
        """
        Shape accepted by a Solidity `IWeb2Json.Proof` parameter:
        (bytes32[] merkleProof, Response data)
        """
        proof = [hex_to_bytes(p) for p in self.merkle_proof]
        return (proof, web2json_response_tuple(self.data.model_dump()))


class AttestationStatus(BaseModel):
    """
    One attestation attempt.

    Invariants kept by AttestationStatusStore:
    - voting_round is set once the submission confirmed (kept after a later failure)
    - proof is set only in proof-ready
    - error/error_kind are set only in failed
    """

    id: str
    phase: AttestationPhase = AttestationPhase.PREPARING
    voting_round: Optional[int] = None
    tx_hash: Optional[str] = None
    proof: Optional[DecodedProof] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    created_at: str
    updated_at: str

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal
