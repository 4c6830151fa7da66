"""
Gateway Request Models
======================

Pydantic models for API request bodies.
"""

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field

from veriflare.models.status import DecodedProof


class PrepareRequest(BaseModel):
    """
    Body for /prepare, /attest and /attestations.

    Exactly one of `url` or `data` is given. With `data`, the payload is
    published through the source cache and the verifier fetches it from there.
    Filter and schema are required for /prepare; the full-chain endpoints fall
    back to a whole-document filter when both are omitted.
    """
    url: Optional[str] = None
    data: Optional[Any] = None
    http_method: str = "GET"
    post_process_jq: Optional[str] = Field(None, description="jq filter applied by the verifier")
    abi_signature: Optional[Union[str, Dict[str, Any]]] = Field(
        None, description="ABI tuple of the filter result (JSON string or object)"
    )
    headers: Optional[Dict[str, Any]] = None
    query_params: Optional[Dict[str, Any]] = None
    body: Optional[Dict[str, Any]] = None


class AttestationStartRequest(PrepareRequest):
    timeout_seconds: Optional[float] = Field(None, gt=0, description="Overall budget for the attestation")


class SubmitRequest(BaseModel):
    encoded_request: str
    attestation_id: str


class WaitRequest(BaseModel):
    voting_round: int = Field(..., ge=0)
    attestation_id: str
    max_wait: Optional[float] = Field(None, gt=0)
    poll_interval: Optional[float] = Field(None, gt=0)


class ProofRequest(BaseModel):
    encoded_request: str
    voting_round: int = Field(..., ge=0)
    attestation_id: str


class CommitAttestationRequest(BaseModel):
    repo_full_name: str = Field(..., description="owner/repo")
    commit_sha: str
    background: bool = False


class VerifyProofRequest(BaseModel):
    proof: DecodedProof


class SetPublicUrlRequest(BaseModel):
    url: str
