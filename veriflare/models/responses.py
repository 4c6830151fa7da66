"""
Gateway Response Models
======================

Pydantic models for API responses.
"""

from typing import Optional

from pydantic import BaseModel

from veriflare.models.status import DecodedProof


class PrepareResponse(BaseModel):
    attestation_id: str
    encoded_request: str  # 0x hex, submit this to FdcHub
    source_url: Optional[str] = None  # set when the data went through the source cache


class SubmitResponse(BaseModel):
    attestation_id: str
    tx_hash: str
    voting_round: int
    block_number: int


class WaitResponse(BaseModel):
    attestation_id: str
    voting_round: int
    finalized: bool


class AttestationResponse(BaseModel):
    """Result of a completed attestation chain"""

    attestation_id: str
    voting_round: int
    tx_hash: str
    proof: DecodedProof


class AttestationAcceptedResponse(BaseModel):
    """Background attestation was started; poll GET /api/fdc/attestation/{id}"""

    attestation_id: str
    status_url: str


class VerifyProofResponse(BaseModel):
    valid: bool
    voting_round: int
    leaf: str
    computed_root: str
    stored_root: str


class PublicUrlResponse(BaseModel):
    public_url: str


class ErrorResponse(BaseModel):
    """Error response"""

    error: str
    kind: Optional[str] = None
    attestation_id: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response"""

    service: str
    status: str
    build_id: str
    github_commit: str
    timestamp: str
