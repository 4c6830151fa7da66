"""
Attestation Engine

Chains the four stages for one logical attestation:

    RequestPreparer -> OnChainSubmitter -> FinalizationWaiter -> ProofFetcher

The engine adds no retries of its own; the first hard failure aborts the chain
(there is no resume-from-middle). Every stage has already written its failure
to the status store by the time the exception reaches the caller.

Background mode runs a chain as an asyncio task and hands back the id right
away; callers poll status(id) or cancel(id).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import aiohttp

from veriflare.fdc.errors import (
    AttestationError,
    ConfigurationError,
    ErrorKind,
    FinalizationTimeoutError,
)
from veriflare.fdc.fetcher import ProofFetcher
from veriflare.fdc.preparer import PreparedRequest, RequestPreparer
from veriflare.fdc.submitter import OnChainSubmitter
from veriflare.fdc.waiter import FinalizationWaiter
from veriflare.models.status import AttestationPhase, AttestationStatus, DecodedProof
from veriflare.utils.github import fetch_commit_summary
from veriflare.utils.status_store import AttestationStatusStore
from veriflare_canonical.constants import (
    COMMIT_ABI_SIGNATURE,
    COMMIT_POST_PROCESS_JQ,
    DEFAULT_POST_PROCESS_JQ,
    VALUE_ABI_SIGNATURE,
)
from veriflare_canonical.encoding import bytes_to_hex, encode_web2json_response
from veriflare_canonical.merkle import compute_root, leaf_hash

logger = logging.getLogger(__name__)

Schema = Union[str, Dict[str, Any]]
CommitFetcher = Callable[[str, str], Awaitable[Dict[str, Any]]]


@dataclass
class AttestationOutcome:
    attestation_id: str
    voting_round: int
    tx_hash: str
    proof: DecodedProof


@dataclass
class ProofVerification:
    valid: bool
    voting_round: int
    leaf: str
    computed_root: str
    stored_root: str


class AttestationEngine:
    def __init__(
        self,
        preparer: RequestPreparer,
        submitter: OnChainSubmitter,
        waiter: FinalizationWaiter,
        fetcher: ProofFetcher,
        store: AttestationStatusStore,
        chain=None,
        commit_fetcher: CommitFetcher = fetch_commit_summary,
        default_timeout: Optional[float] = None,
    ):
        self.preparer = preparer
        self.submitter = submitter
        self.waiter = waiter
        self.fetcher = fetcher
        self.store = store
        self.chain = chain
        self.commit_fetcher = commit_fetcher
        self.default_timeout = default_timeout
        self._tasks: Dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Full chain
    # ------------------------------------------------------------------

    async def _complete(self, prepared: PreparedRequest) -> AttestationOutcome:
        attestation_id = prepared.attestation_id

        receipt = await self.submitter.submit(prepared.encoded_request, attestation_id)

        finalized = await self.waiter.wait(receipt.voting_round, attestation_id)
        if not finalized:
            record = self.store.get(attestation_id)
            message = record.error if record and record.error else f"Round {receipt.voting_round} not finalized"
            raise FinalizationTimeoutError(message, attestation_id=attestation_id)

        proof = await self.fetcher.fetch(prepared.encoded_request, receipt.voting_round, attestation_id)

        logger.info(f"✅ Attestation {attestation_id} complete (round {receipt.voting_round})")
        return AttestationOutcome(
            attestation_id=attestation_id,
            voting_round=receipt.voting_round,
            tx_hash=receipt.tx_hash,
            proof=proof,
        )

    async def attest(
        self,
        target_url: str,
        http_method: str,
        filter_expression: str,
        result_schema: Schema,
        headers: Optional[Dict[str, Any]] = None,
        query_params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        attestation_id: Optional[str] = None,
    ) -> AttestationOutcome:
        """Prepare, submit, wait and fetch for a URL the verifier can reach directly."""
        prepared = await self.preparer.prepare(
            target_url,
            http_method,
            filter_expression,
            result_schema,
            headers=headers,
            query_params=query_params,
            body=body,
            attestation_id=attestation_id,
        )
        return await self._complete(prepared)

    async def attest_proxied(
        self,
        payload: Any,
        filter_expression: str,
        result_schema: Schema,
        attestation_id: Optional[str] = None,
    ) -> AttestationOutcome:
        """Same as attest(), but the verifier reads `payload` from the source cache."""
        prepared = await self.preparer.prepare_proxied(
            payload, filter_expression, result_schema, attestation_id=attestation_id
        )
        return await self._complete(prepared)

    async def attest_url(
        self,
        url: str,
        filter_expression: Optional[str] = None,
        result_schema: Optional[Schema] = None,
        attestation_id: Optional[str] = None,
    ) -> AttestationOutcome:
        """
        Attest a public JSON URL. Without a filter, the whole document is
        attested as a single JSON string field `value`.
        """
        if filter_expression is None and result_schema is None:
            filter_expression, result_schema = DEFAULT_POST_PROCESS_JQ, VALUE_ABI_SIGNATURE
        elif filter_expression is None or result_schema is None:
            raise ValueError("filter_expression and result_schema must be given together")

        return await self.attest(url, "GET", filter_expression, result_schema, attestation_id=attestation_id)

    async def attest_github_commit(
        self,
        repo_full_name: str,
        commit_sha: str,
        attestation_id: Optional[str] = None,
    ) -> AttestationOutcome:
        """
        Attest sha, tree hash and author login of a GitHub commit.

        The commit is pre-fetched here and republished through the source cache,
        reduced to the three fields the commit filter reads.
        """
        if not attestation_id or attestation_id not in self.store:
            attestation_id = self.store.create(attestation_id).id
        else:
            self.store.check_transition(attestation_id, AttestationPhase.SUBMITTED)

        try:
            summary = await self.commit_fetcher(repo_full_name, commit_sha)
        except AttestationError as e:
            e.attestation_id = attestation_id
            self.store.mark_failed(attestation_id, e.message, e.kind)
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.store.mark_failed(attestation_id, f"GitHub unreachable: {str(e) or type(e).__name__}", ErrorKind.NETWORK)
            raise

        return await self.attest_proxied(
            summary, COMMIT_POST_PROCESS_JQ, COMMIT_ABI_SIGNATURE, attestation_id=attestation_id
        )

    # ------------------------------------------------------------------
    # Background mode
    # ------------------------------------------------------------------

    def start(
        self,
        runner: Callable[[str], Awaitable[AttestationOutcome]],
        timeout: Optional[float] = None,
    ) -> str:
        """
        Run `runner(attestation_id)` as a background task.

        The record is created before this returns, so status(id) works at once.
        Must be called from a running event loop.
        """
        attestation_id = self.store.create().id
        timeout = timeout if timeout is not None else self.default_timeout

        task = asyncio.create_task(self._run_background(attestation_id, runner, timeout))
        self._tasks[attestation_id] = task
        logger.info(f"🚀 Attestation {attestation_id} started in background")
        return attestation_id

    async def _run_background(
        self,
        attestation_id: str,
        runner: Callable[[str], Awaitable[AttestationOutcome]],
        timeout: Optional[float],
    ):
        chain_task = asyncio.create_task(self._run_chain(attestation_id, runner))
        try:
            done, _ = await asyncio.wait({chain_task}, timeout=timeout or None)
            if not done:
                # Recorded before the stages see their cancellation
                self.store.fail_if_active(attestation_id, f"Attestation exceeded {timeout:.0f}s", ErrorKind.TIMEOUT)
                logger.warning(f"⏱️  Attestation {attestation_id} timed out after {timeout:.0f}s")
                chain_task.cancel()
                await asyncio.gather(chain_task, return_exceptions=True)
        except asyncio.CancelledError:
            self.store.fail_if_active(attestation_id, "Attestation cancelled", ErrorKind.CANCELLED)
            logger.info(f"🛑 Attestation {attestation_id} cancelled")
            chain_task.cancel()
            await asyncio.gather(chain_task, return_exceptions=True)
            raise
        finally:
            self._tasks.pop(attestation_id, None)

    async def _run_chain(self, attestation_id: str, runner: Callable[[str], Awaitable[AttestationOutcome]]):
        try:
            await runner(attestation_id)
        except AttestationError as e:
            # Already recorded by the failing stage
            logger.error(f"❌ Attestation {attestation_id} failed ({e.kind}): {e.message}")
        except Exception as e:
            # Includes an upstream asyncio.TimeoutError; only the overall deadline counts as timeout
            self.store.fail_if_active(attestation_id, str(e) or type(e).__name__, ErrorKind.NETWORK)
            logger.error(f"❌ Attestation {attestation_id} failed: {str(e) or type(e).__name__}")

    def cancel(self, attestation_id: str) -> bool:
        """Cancel a background attestation. False if it is not running."""
        task = self._tasks.get(attestation_id)
        if task is None or task.done():
            return False
        task.cancel()
        # A task cancelled before its first step never reaches its own handler
        self.store.fail_if_active(attestation_id, "Attestation cancelled", ErrorKind.CANCELLED)
        return True

    async def shutdown(self):
        """Cancel every background attestation and wait for them to unwind."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            print(f"🛑 Cancelled {len(tasks)} running attestation(s)")

    @property
    def running(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status(self, attestation_id: str) -> Optional[AttestationStatus]:
        return self.store.get(attestation_id)

    def set_public_url(self, url: str):
        self.preparer.public_base_url = url
        logger.info(f"[PREPARE] Public URL set to {self.preparer.public_base_url}")

    async def verify_proof(self, proof: DecodedProof) -> ProofVerification:
        """
        Check a proof against the Merkle root the Relay stored for its round.

        Raises:
            ConfigurationError: Engine has no chain client
        """
        if self.chain is None:
            raise ConfigurationError("No chain client configured for proof verification")

        voting_round = proof.data.voting_round
        leaf = leaf_hash(encode_web2json_response(proof.data.model_dump()))
        computed = compute_root(leaf, proof.merkle_proof)
        stored = await self.chain.get_merkle_root(voting_round)

        return ProofVerification(
            valid=computed == stored,
            voting_round=voting_round,
            leaf=bytes_to_hex(leaf),
            computed_root=bytes_to_hex(computed),
            stored_root=bytes_to_hex(stored),
        )
