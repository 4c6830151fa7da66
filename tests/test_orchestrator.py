"""End-to-end tests of the attestation engine over fake collaborators."""

import asyncio

import pytest
from eth_utils import keccak

from veriflare.fdc.errors import (
    ConfigurationError,
    FinalizationTimeoutError,
    SubmissionError,
    UpstreamRejectedError,
)
from veriflare.models.status import AttestationPhase, DecodedProof, Web2JsonResponse
from veriflare_canonical.constants import (
    COMMIT_POST_PROCESS_JQ,
    DEFAULT_POST_PROCESS_JQ,
)
from veriflare_canonical.encoding import encode_web2json_response
from veriflare_canonical.merkle import build_tree, leaf_hash, proof_for_index
from fakes import (
    BLOCK_TIMESTAMP,
    ENCODED_REQUEST,
    TX_HASH,
    VOTING_ROUND,
    FakeChain,
    FakeDA,
    FakeVerifier,
    sample_fields,
    sample_response_hex,
)


async def _block_forever(attestation_id):
    await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_full_chain_reaches_proof_ready(make_engine, store):
    chain = FakeChain()
    engine = make_engine(chain=chain)

    outcome = await engine.attest("https://api.example.org/item", "GET", ".item", "{}")

    assert outcome.tx_hash == TX_HASH
    assert outcome.voting_round == VOTING_ROUND
    assert outcome.proof.data.voting_round == outcome.voting_round
    assert chain.sent == [{"hub": chain.addresses["FdcHub"], "request": ENCODED_REQUEST, "fee": 10**18}]
    assert chain.round_lookups == [BLOCK_TIMESTAMP]

    record = store.get(outcome.attestation_id)
    assert record.phase == AttestationPhase.PROOF_READY
    assert record.voting_round == VOTING_ROUND
    assert record.tx_hash == TX_HASH
    assert record.proof == outcome.proof
    assert record.error is None


@pytest.mark.asyncio
async def test_first_da_request_uses_prefixed_hex(make_engine):
    chain = FakeChain()
    engine = make_engine(chain=chain)
    da = engine.fetcher.da_client

    await engine.attest("https://api.example.org/item", "GET", ".item", "{}")

    assert da.calls[0] == (VOTING_ROUND, ENCODED_REQUEST)


@pytest.mark.asyncio
async def test_unfinalized_round_fails_without_fetching(make_engine, store, clock):
    da = FakeDA(lambda n, b: None)
    engine = make_engine(chain=FakeChain(finalize_on_poll=None), da=da)

    with pytest.raises(FinalizationTimeoutError) as exc_info:
        await engine.attest("https://api.example.org/item", "GET", ".item", "{}")

    assert da.calls == []
    record = store.get(exc_info.value.attestation_id)
    assert record.phase == AttestationPhase.FAILED
    assert record.error_kind == "timeout"
    assert record.voting_round == VOTING_ROUND
    assert record.proof is None


@pytest.mark.asyncio
async def test_prepare_failure_stops_chain(make_engine, store):
    chain = FakeChain()
    verifier = FakeVerifier(error=UpstreamRejectedError("Verifier returned HTTP 400: bad", status=400, body="bad"))
    engine = make_engine(verifier=verifier, chain=chain)

    with pytest.raises(UpstreamRejectedError) as exc_info:
        await engine.attest("https://api.example.org/item", "GET", ".item", "{}")

    assert chain.sent == []
    record = store.get(exc_info.value.attestation_id)
    assert record.phase == AttestationPhase.FAILED
    assert record.error_kind == "upstream_rejected"
    assert record.proof is None


@pytest.mark.asyncio
async def test_submission_failure_stops_chain(make_engine, store):
    chain = FakeChain()
    chain.send_error = SubmissionError("insufficient funds for gas * price + value")
    engine = make_engine(chain=chain)

    with pytest.raises(SubmissionError) as exc_info:
        await engine.attest("https://api.example.org/item", "GET", ".item", "{}")

    assert chain.polls == 0
    record = store.get(exc_info.value.attestation_id)
    assert record.error_kind == "submission"
    assert "insufficient funds" in record.error


@pytest.mark.asyncio
async def test_github_commit_goes_through_source_cache(make_engine, source_cache):
    verifier = FakeVerifier()
    engine = make_engine(verifier=verifier)

    outcome = await engine.attest_github_commit("octo/repo", "c0ffee")

    request_body = verifier.envelopes[0]["requestBody"]
    assert request_body["postProcessJq"] == COMMIT_POST_PROCESS_JQ
    assert request_body["url"].startswith("https://gateway.example.org/api/source-cache/")

    cached = source_cache.get(request_body["url"].rsplit("/", 1)[1])
    assert cached == {"sha": "c0ffee", "commit": {"tree": {"sha": "7ree"}}, "author": {"login": "octocat"}}
    assert outcome.proof is not None


@pytest.mark.asyncio
async def test_github_commit_fetch_failure_is_recorded(make_engine, store):
    async def missing_commit(repo, sha):
        raise UpstreamRejectedError("GitHub returned HTTP 404 for octo/repo@bad", status=404, body="")

    verifier = FakeVerifier()
    engine = make_engine(verifier=verifier, commit_fetcher=missing_commit)

    with pytest.raises(UpstreamRejectedError) as exc_info:
        await engine.attest_github_commit("octo/repo", "bad")

    assert verifier.envelopes == []
    assert store.get(exc_info.value.attestation_id).error_kind == "upstream_rejected"


@pytest.mark.asyncio
async def test_proxied_without_public_url_is_configuration_error(make_engine, store):
    engine = make_engine(public_base_url=None)

    with pytest.raises(ConfigurationError) as exc_info:
        await engine.attest_proxied({"a": 1}, ".a", "{}")

    assert store.get(exc_info.value.attestation_id).error_kind == "configuration"


@pytest.mark.asyncio
async def test_attest_url_defaults_to_whole_document(make_engine):
    verifier = FakeVerifier()
    engine = make_engine(verifier=verifier)

    await engine.attest_url("https://api.example.org/doc")

    body = verifier.envelopes[0]["requestBody"]
    assert body["url"] == "https://api.example.org/doc"
    assert body["postProcessJq"] == DEFAULT_POST_PROCESS_JQ


@pytest.mark.asyncio
async def test_attest_url_requires_filter_and_schema_together(make_engine):
    engine = make_engine()

    with pytest.raises(ValueError):
        await engine.attest_url("https://api.example.org/doc", filter_expression=".a")


@pytest.mark.asyncio
async def test_background_attestation_runs_to_completion(make_engine, store):
    engine = make_engine()

    att_id = engine.start(lambda i: engine.attest("https://api.example.org/item", "GET", ".item", "{}", attestation_id=i))
    assert store.get(att_id).phase == AttestationPhase.PREPARING

    task = engine._tasks[att_id]
    await task

    assert store.get(att_id).phase == AttestationPhase.PROOF_READY
    assert engine.running == 0


@pytest.mark.asyncio
async def test_background_failure_is_recorded_not_raised(make_engine, store):
    verifier = FakeVerifier(error=UpstreamRejectedError("Verifier returned HTTP 400: bad", status=400, body="bad"))
    engine = make_engine(verifier=verifier)

    att_id = engine.start(lambda i: engine.attest("https://api.example.org/item", "GET", ".item", "{}", attestation_id=i))
    await engine._tasks[att_id]

    record = store.get(att_id)
    assert record.phase == AttestationPhase.FAILED
    assert record.error_kind == "upstream_rejected"


@pytest.mark.asyncio
async def test_cancel_marks_record_cancelled(make_engine, store):
    engine = make_engine()
    att_id = engine.start(_block_forever)
    task = engine._tasks[att_id]
    await asyncio.sleep(0)

    assert engine.cancel(att_id) is True
    with pytest.raises(asyncio.CancelledError):
        await task

    record = store.get(att_id)
    assert record.phase == AttestationPhase.FAILED
    assert record.error_kind == "cancelled"
    assert engine.cancel(att_id) is False


@pytest.mark.asyncio
async def test_overall_timeout_fails_record(make_engine, store):
    engine = make_engine()
    att_id = engine.start(_block_forever, timeout=0.05)

    await engine._tasks[att_id]

    record = store.get(att_id)
    assert record.phase == AttestationPhase.FAILED
    assert record.error_kind == "timeout"


@pytest.mark.asyncio
async def test_overall_timeout_is_recorded_as_timeout_not_cancelled(make_engine, store):
    class HangingVerifier(FakeVerifier):
        async def prepare_request(self, envelope):
            await asyncio.Event().wait()

    engine = make_engine(verifier=HangingVerifier())
    att_id = engine.start(
        lambda i: engine.attest("https://api.example.org/item", "GET", ".item", "{}", attestation_id=i),
        timeout=0.05,
    )

    await engine._tasks[att_id]

    record = store.get(att_id)
    assert record.error_kind == "timeout"
    assert "exceeded" in record.error


@pytest.mark.asyncio
async def test_upstream_timeout_without_deadline_is_recorded(make_engine, store):
    chain = FakeChain()
    engine = make_engine(verifier=FakeVerifier(error=asyncio.TimeoutError()), chain=chain)

    att_id = engine.start(lambda i: engine.attest("https://api.example.org/item", "GET", ".item", "{}", attestation_id=i))
    task = engine._tasks[att_id]
    await task

    assert task.exception() is None
    assert chain.sent == []
    record = store.get(att_id)
    assert record.phase == AttestationPhase.FAILED
    assert record.error_kind == "network"
    assert engine.running == 0


class RoundPerSubmissionChain(FakeChain):
    """Each submission lands in its own voting round; every call yields."""

    def __init__(self):
        super().__init__()
        self.next_round = VOTING_ROUND

    async def get_voting_round_id(self, timestamp):
        await asyncio.sleep(0)
        self.round_lookups.append(timestamp)
        self.next_round += 1
        return self.next_round

    async def is_finalized(self, voting_round):
        await asyncio.sleep(0)
        return True


class RoundEchoDA(FakeDA):
    def __init__(self):
        super().__init__(lambda n, b: None)

    async def fetch_proof(self, voting_round, request_bytes):
        await asyncio.sleep(0)
        self.calls.append((voting_round, request_bytes))
        return {"proof": ["0x" + "cd" * 32], "response_hex": sample_response_hex(voting_round)}


@pytest.mark.asyncio
async def test_concurrent_attestations_keep_their_own_rounds(make_engine, store):
    chain = RoundPerSubmissionChain()
    engine = make_engine(chain=chain, da=RoundEchoDA())

    outcomes = await asyncio.gather(*[
        engine.attest(f"https://api.example.org/item/{n}", "GET", ".item", "{}") for n in range(8)
    ])

    assert len({o.attestation_id for o in outcomes}) == 8
    assert len({o.voting_round for o in outcomes}) == 8
    assert len(store) == 8
    for outcome in outcomes:
        record = store.get(outcome.attestation_id)
        assert record.phase == AttestationPhase.PROOF_READY
        assert record.error is None
        assert record.voting_round == outcome.voting_round == outcome.proof.data.voting_round
        assert record.proof == outcome.proof


@pytest.mark.asyncio
async def test_shutdown_cancels_running_attestations(make_engine, store):
    engine = make_engine()
    ids = [engine.start(_block_forever) for _ in range(3)]
    await asyncio.sleep(0)
    assert engine.running == 3

    await engine.shutdown()

    assert engine.running == 0
    assert all(store.get(i).error_kind == "cancelled" for i in ids)


def _proof_in_tree(voting_round=VOTING_ROUND):
    fields = sample_fields(voting_round)
    leaf = leaf_hash(encode_web2json_response(fields))
    leaves = [keccak(text=f"other-{i}") for i in range(4)] + [leaf]
    root, levels = build_tree(leaves)
    proof = DecodedProof(merkle_proof=proof_for_index(levels, len(leaves) - 1), data=Web2JsonResponse(**fields))
    return proof, root


@pytest.mark.asyncio
async def test_verify_proof_against_stored_root(make_engine):
    proof, root = _proof_in_tree()
    engine = make_engine(chain=FakeChain(merkle_root=root))

    result = await engine.verify_proof(proof)

    assert result.valid is True
    assert result.voting_round == VOTING_ROUND
    assert result.computed_root == result.stored_root


@pytest.mark.asyncio
async def test_verify_proof_detects_tampered_data(make_engine):
    proof, root = _proof_in_tree()
    tampered = proof.model_copy(update={"data": proof.data.model_copy(update={"lowest_used_timestamp": 1})})
    engine = make_engine(chain=FakeChain(merkle_root=root))

    result = await engine.verify_proof(tampered)

    assert result.valid is False
    assert result.computed_root != result.stored_root


def test_proof_contract_args_shape():
    proof, _ = _proof_in_tree()

    merkle_proof, response = proof.to_contract_args()

    assert all(isinstance(node, bytes) and len(node) == 32 for node in merkle_proof)
    assert response[2] == VOTING_ROUND
    assert response[4][0] == proof.data.request_body.url
    assert isinstance(response[5][0], bytes)
