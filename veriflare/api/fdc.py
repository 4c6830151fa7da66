"""
FDC Attestation Endpoints
=========================

HTTP surface of the attestation engine. Each pipeline stage is exposed on its
own (for callers driving the flow step by step, e.g. a wallet paying the fee
itself) alongside the full chain and a background mode.

ENDPOINTS (prefix /api/fdc):
- POST   /prepare              - Stage 1: verifier -> abiEncodedRequest
- POST   /submit               - Stage 2: FdcHub submission -> voting round
- POST   /wait                 - Stage 3: wait for round finalization
- POST   /proof                - Stage 4: DA layer proof, decoded
- POST   /attest               - Full chain, returns the proof (slow: minutes)
- POST   /attest-commit        - Full chain for a GitHub commit (optionally background)
- POST   /attestations         - Full chain in background, returns an id (202)
- GET    /attestation/{id}     - Status record
- DELETE /attestation/{id}     - Cancel a background attestation
- POST   /verify-proof         - Check a proof against the Relay's Merkle root
- POST   /set-public-url       - Register the public URL the verifier can reach

ERROR STATUS CODES:
- 400 bad request body, 404 unknown attestation id
- 500 configuration, 502 upstream / network / submission / decode
- 504 timeout, 409 cancelled or not cancellable
- 409 also for a stage called out of order
  (/submit needs a preparing record, /wait a submitted one, /proof a
  finalized one; /wait and /proof also need the record's own voting round)
"""

import asyncio
from typing import Awaitable, Callable, Optional

import aiohttp
from fastapi import APIRouter, Depends, HTTPException, Request, Response

from veriflare.fdc.errors import AttestationError, ErrorKind
from veriflare.fdc.orchestrator import AttestationEngine, AttestationOutcome
from veriflare.models.requests import (
    AttestationStartRequest,
    CommitAttestationRequest,
    PrepareRequest,
    ProofRequest,
    SetPublicUrlRequest,
    SubmitRequest,
    VerifyProofRequest,
    WaitRequest,
)
from veriflare.models.responses import (
    AttestationAcceptedResponse,
    AttestationResponse,
    ErrorResponse,
    PrepareResponse,
    PublicUrlResponse,
    SubmitResponse,
    VerifyProofResponse,
    WaitResponse,
)
from veriflare.models.status import AttestationPhase, AttestationStatus
from veriflare.utils.status_store import InvalidTransitionError, can_transition
from veriflare_canonical.constants import DEFAULT_POST_PROCESS_JQ, VALUE_ABI_SIGNATURE


router = APIRouter(prefix="/api/fdc", tags=["fdc"])

ERROR_STATUS = {
    ErrorKind.CONFIGURATION: 500,
    ErrorKind.UPSTREAM_REJECTED: 502,
    ErrorKind.NETWORK: 502,
    ErrorKind.SUBMISSION: 502,
    ErrorKind.RECEIPT_MISSING: 502,
    ErrorKind.DECODE: 502,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.CANCELLED: 409,
}


def get_engine(request: Request) -> AttestationEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail={"error": "Attestation engine not initialized"})
    return engine


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, AttestationError):
        return HTTPException(
            status_code=ERROR_STATUS.get(e.kind, 502),
            detail=ErrorResponse(error=e.message, kind=e.kind, attestation_id=e.attestation_id).model_dump(),
        )
    # aiohttp / timeout from a one-shot upstream call
    error = ErrorResponse(error=f"Upstream unreachable: {str(e) or type(e).__name__}", kind=ErrorKind.NETWORK)
    return HTTPException(status_code=502, detail=error.model_dump())


async def _call(coro):
    try:
        return await coro
    except InvalidTransitionError as e:
        # Another request moved the record first
        raise HTTPException(status_code=409, detail={"error": str(e), "attestation_id": e.attestation_id})
    except (AttestationError, aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise _http_error(e)


def _require_record(engine: AttestationEngine, attestation_id: str) -> AttestationStatus:
    record = engine.status(attestation_id)
    if record is None:
        raise HTTPException(status_code=404, detail={"error": f"Attestation {attestation_id} not found"})
    return record


def _require_phase(
    engine: AttestationEngine, attestation_id: str, target: AttestationPhase, voting_round: Optional[int] = None
) -> AttestationStatus:
    """404 for unknown ids, 409 when the record cannot move to `target` yet."""
    record = _require_record(engine, attestation_id)
    if not can_transition(record.phase, target):
        raise HTTPException(
            status_code=409,
            detail={
                "error": f"Attestation is {record.phase.value}, cannot move to {target.value}",
                "attestation_id": attestation_id,
            },
        )
    if voting_round is not None and record.voting_round != voting_round:
        raise HTTPException(
            status_code=409,
            detail={
                "error": f"Attestation was submitted in round {record.voting_round}, not {voting_round}",
                "attestation_id": attestation_id,
            },
        )
    return record


def _check_source(body: PrepareRequest):
    if (body.url is None) == (body.data is None):
        raise HTTPException(status_code=400, detail={"error": "Provide exactly one of 'url' or 'data'"})
    if (body.post_process_jq is None) != (body.abi_signature is None):
        raise HTTPException(
            status_code=400, detail={"error": "'post_process_jq' and 'abi_signature' must be given together"}
        )


def _chain_runner(engine: AttestationEngine, body: PrepareRequest) -> Callable[..., Awaitable[AttestationOutcome]]:
    """Pick the engine entry point for a request body."""
    _check_source(body)

    if body.data is not None:
        filter_expression = body.post_process_jq
        result_schema = body.abi_signature
        if filter_expression is None:
            filter_expression, result_schema = DEFAULT_POST_PROCESS_JQ, VALUE_ABI_SIGNATURE
        return lambda attestation_id=None: engine.attest_proxied(
            body.data, filter_expression, result_schema, attestation_id=attestation_id
        )

    if body.post_process_jq is None:
        return lambda attestation_id=None: engine.attest_url(body.url, attestation_id=attestation_id)

    return lambda attestation_id=None: engine.attest(
        body.url,
        body.http_method,
        body.post_process_jq,
        body.abi_signature,
        headers=body.headers,
        query_params=body.query_params,
        body=body.body,
        attestation_id=attestation_id,
    )


def _outcome_response(outcome: AttestationOutcome) -> AttestationResponse:
    return AttestationResponse(
        attestation_id=outcome.attestation_id,
        voting_round=outcome.voting_round,
        tx_hash=outcome.tx_hash,
        proof=outcome.proof,
    )


def _accepted(request: Request, attestation_id: str) -> AttestationAcceptedResponse:
    return AttestationAcceptedResponse(
        attestation_id=attestation_id,
        status_url=str(request.url_for("get_attestation", attestation_id=attestation_id)),
    )


# ============================================================
# Individual Stages
# ============================================================

@router.post("/prepare", response_model=PrepareResponse)
async def prepare(body: PrepareRequest, engine: AttestationEngine = Depends(get_engine)):
    """Stage 1: exchange a Web2Json request with the verifier for encoded bytes."""
    _check_source(body)
    if body.post_process_jq is None:
        raise HTTPException(status_code=400, detail={"error": "'post_process_jq' and 'abi_signature' are required"})

    if body.data is not None:
        prepared = await _call(
            engine.preparer.prepare_proxied(body.data, body.post_process_jq, body.abi_signature)
        )
    else:
        prepared = await _call(
            engine.preparer.prepare(
                body.url,
                body.http_method,
                body.post_process_jq,
                body.abi_signature,
                headers=body.headers,
                query_params=body.query_params,
                body=body.body,
            )
        )

    return PrepareResponse(
        attestation_id=prepared.attestation_id,
        encoded_request=prepared.encoded_request,
        source_url=prepared.source_url,
    )


@router.post("/submit", response_model=SubmitResponse)
async def submit(body: SubmitRequest, engine: AttestationEngine = Depends(get_engine)):
    """Stage 2: pay the fee and submit to FdcHub."""
    _require_phase(engine, body.attestation_id, AttestationPhase.SUBMITTED)
    receipt = await _call(engine.submitter.submit(body.encoded_request, body.attestation_id))
    return SubmitResponse(
        attestation_id=body.attestation_id,
        tx_hash=receipt.tx_hash,
        voting_round=receipt.voting_round,
        block_number=receipt.block_number,
    )


@router.post("/wait", response_model=WaitResponse)
async def wait(body: WaitRequest, engine: AttestationEngine = Depends(get_engine)):
    """Stage 3: poll the Relay until the round is finalized (finalized=false on timeout)."""
    _require_phase(engine, body.attestation_id, AttestationPhase.WAITING, body.voting_round)
    finalized = await _call(
        engine.waiter.wait(
            body.voting_round, body.attestation_id, max_wait=body.max_wait, poll_interval=body.poll_interval
        )
    )
    return WaitResponse(attestation_id=body.attestation_id, voting_round=body.voting_round, finalized=finalized)


@router.post("/proof")
async def proof(body: ProofRequest, engine: AttestationEngine = Depends(get_engine)):
    """Stage 4: fetch and decode the Merkle proof from the DA layer."""
    _require_phase(engine, body.attestation_id, AttestationPhase.PROOF_READY, body.voting_round)
    decoded = await _call(engine.fetcher.fetch(body.encoded_request, body.voting_round, body.attestation_id))
    return {"attestation_id": body.attestation_id, "proof": decoded}


# ============================================================
# Full Chain
# ============================================================

@router.post("/attest", response_model=AttestationResponse)
async def attest(body: PrepareRequest, engine: AttestationEngine = Depends(get_engine)):
    """
    Run prepare -> submit -> wait -> proof and return the decoded proof.

    Takes several minutes (round finalization + DA indexing). Use
    POST /attestations for a non-blocking variant.
    """
    runner = _chain_runner(engine, body)
    outcome = await _call(runner())
    return _outcome_response(outcome)


@router.post("/attestations", response_model=AttestationAcceptedResponse, status_code=202)
async def start_attestation(
    body: AttestationStartRequest,
    request: Request,
    engine: AttestationEngine = Depends(get_engine),
):
    """Start the full chain in the background. Poll GET /attestation/{id}."""
    runner = _chain_runner(engine, body)
    attestation_id = engine.start(runner, timeout=body.timeout_seconds)
    return _accepted(request, attestation_id)


@router.post("/attest-commit")
async def attest_commit(
    body: CommitAttestationRequest,
    request: Request,
    response: Response,
    engine: AttestationEngine = Depends(get_engine),
):
    """Attest sha, tree hash and author of a GitHub commit via the source cache."""
    if "/" not in body.repo_full_name:
        raise HTTPException(status_code=400, detail={"error": "repo_full_name must be 'owner/repo'"})

    if body.background:
        attestation_id = engine.start(
            lambda attestation_id: engine.attest_github_commit(
                body.repo_full_name, body.commit_sha, attestation_id=attestation_id
            )
        )
        response.status_code = 202
        return _accepted(request, attestation_id)

    outcome = await _call(engine.attest_github_commit(body.repo_full_name, body.commit_sha))
    return _outcome_response(outcome)


# ============================================================
# Status / Cancellation
# ============================================================

@router.get("/attestation/{attestation_id}", response_model=AttestationStatus)
async def get_attestation(attestation_id: str, engine: AttestationEngine = Depends(get_engine)):
    return _require_record(engine, attestation_id)


@router.delete("/attestation/{attestation_id}")
async def cancel_attestation(attestation_id: str, engine: AttestationEngine = Depends(get_engine)):
    record = _require_record(engine, attestation_id)
    if record.is_terminal:
        raise HTTPException(
            status_code=409,
            detail={"error": f"Attestation already {record.phase.value}", "attestation_id": attestation_id},
        )
    if not engine.cancel(attestation_id):
        raise HTTPException(
            status_code=409,
            detail={"error": "Attestation is not running in the background", "attestation_id": attestation_id},
        )
    return {"attestation_id": attestation_id, "cancelled": True}


# ============================================================
# Proof Verification / Public URL
# ============================================================

@router.post("/verify-proof", response_model=VerifyProofResponse)
async def verify_proof(body: VerifyProofRequest, engine: AttestationEngine = Depends(get_engine)):
    """Recompute the Merkle root from a proof and compare it with the Relay's."""
    try:
        result = await engine.verify_proof(body.proof)
    except AttestationError as e:
        raise _http_error(e)
    except Exception as e:
        raise HTTPException(status_code=502, detail={"error": f"Relay query failed: {e}", "kind": ErrorKind.NETWORK})

    return VerifyProofResponse(
        valid=result.valid,
        voting_round=result.voting_round,
        leaf=result.leaf,
        computed_root=result.computed_root,
        stored_root=result.stored_root,
    )


@router.post("/set-public-url", response_model=PublicUrlResponse)
async def set_public_url(body: SetPublicUrlRequest, engine: AttestationEngine = Depends(get_engine)):
    """Register the public base URL (e.g. a tunnel) the verifier uses to reach the source cache."""
    if not body.url.startswith(("http://", "https://")):
        raise HTTPException(status_code=400, detail={"error": "url must start with http:// or https://"})

    engine.set_public_url(body.url)
    return PublicUrlResponse(public_url=engine.preparer.public_base_url)
