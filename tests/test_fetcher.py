"""Tests for the DA layer client and the proof fetcher."""

import asyncio
import base64

import aiohttp
import pytest
from aiohttp import web

from veriflare.fdc.errors import ProofDecodeError, ProofUnavailableError
from veriflare.fdc.fetcher import ProofFetcher
from veriflare.models.status import AttestationPhase
from veriflare.utils.da_client import DALayerClient
from veriflare.utils.status_store import InvalidTransitionError
from veriflare_canonical.constants import DA_PROOF_PATH
from fakes import ENCODED_REQUEST, VOTING_ROUND, FakeDA, sample_response_hex, serve


def _finalized(store):
    att_id = store.create().id
    store.mark_submitted(att_id, VOTING_ROUND, "0xfeed")
    store.mark_waiting(att_id)
    store.mark_finalized(att_id)
    return att_id


def _fetcher(da, store, clock, max_attempts=30):
    return ProofFetcher(da, store, settle_seconds=30, max_attempts=max_attempts, retry_seconds=10, sleep=clock.sleep)


def _is_base64(request_bytes):
    return not request_bytes.startswith("0x") and request_bytes != ENCODED_REQUEST[2:]


@pytest.mark.asyncio
async def test_first_variant_success_decodes_proof(store, clock):
    da = FakeDA(lambda n, b: {"proof": ["0x" + "cd" * 32], "response_hex": sample_response_hex()})
    att_id = _finalized(store)

    proof = await _fetcher(da, store, clock).fetch(ENCODED_REQUEST, VOTING_ROUND, att_id)

    assert da.calls == [(VOTING_ROUND, ENCODED_REQUEST)]
    assert clock.sleeps == [30]
    assert proof.data.voting_round == VOTING_ROUND
    assert proof.merkle_proof == ["0x" + "cd" * 32]

    record = store.get(att_id)
    assert record.phase == AttestationPhase.PROOF_READY
    assert record.proof == proof


@pytest.mark.asyncio
async def test_third_variant_accepted_without_exhausting_budget(store, clock):
    def responder(n, request_bytes):
        if _is_base64(request_bytes):
            return {"proof": [], "response_hex": sample_response_hex()}
        return {"error": "not found"}

    da = FakeDA(responder)
    att_id = _finalized(store)

    proof = await _fetcher(da, store, clock).fetch(ENCODED_REQUEST, VOTING_ROUND, att_id)

    sent = [b for _, b in da.calls]
    assert sent == [
        ENCODED_REQUEST,
        ENCODED_REQUEST[2:],
        base64.b64encode(bytes.fromhex(ENCODED_REQUEST[2:])).decode(),
    ]
    assert proof.merkle_proof == []
    assert clock.sleeps == [30]


@pytest.mark.asyncio
async def test_never_ready_fails_only_after_full_budget(store, clock):
    da = FakeDA(lambda n, b: None)
    att_id = _finalized(store)

    with pytest.raises(ProofUnavailableError):
        await _fetcher(da, store, clock, max_attempts=30).fetch(ENCODED_REQUEST, VOTING_ROUND, att_id)

    assert len(da.calls) == 30 * 3
    assert clock.sleeps == [30] + [10] * 29

    record = store.get(att_id)
    assert record.phase == AttestationPhase.FAILED
    assert record.error_kind == "timeout"
    assert record.proof is None


@pytest.mark.asyncio
async def test_late_indexing_succeeds_on_later_attempt(store, clock):
    # ready from the 7th call on (3rd attempt, first variant)
    da = FakeDA(lambda n, b: {"proof": [], "response_hex": sample_response_hex()} if n >= 7 else None)
    att_id = _finalized(store)

    await _fetcher(da, store, clock).fetch(ENCODED_REQUEST, VOTING_ROUND, att_id)

    assert len(da.calls) == 7
    assert clock.sleeps == [30, 10, 10]


@pytest.mark.asyncio
async def test_network_errors_count_as_not_ready(store, clock):
    class FlakyDA(FakeDA):
        async def fetch_proof(self, voting_round, request_bytes):
            self.calls.append((voting_round, request_bytes))
            if len(self.calls) < 4:
                raise aiohttp.ClientConnectionError("reset")
            return {"proof": [], "response_hex": sample_response_hex()}

    da = FlakyDA(lambda n, b: None)
    att_id = _finalized(store)

    await _fetcher(da, store, clock).fetch(ENCODED_REQUEST, VOTING_ROUND, att_id)
    assert len(da.calls) == 4


@pytest.mark.asyncio
async def test_undecodable_response_is_not_retried(store, clock):
    da = FakeDA(lambda n, b: {"proof": [], "response_hex": "0xdeadbeef"})
    att_id = _finalized(store)

    with pytest.raises(ProofDecodeError):
        await _fetcher(da, store, clock).fetch(ENCODED_REQUEST, VOTING_ROUND, att_id)

    assert len(da.calls) == 1
    assert store.get(att_id).error_kind == "decode"


@pytest.mark.asyncio
async def test_cancellation_during_settle_marks_cancelled(store):
    da = FakeDA(lambda n, b: None)
    fetcher = ProofFetcher(da, store, settle_seconds=3600)
    att_id = _finalized(store)

    task = asyncio.create_task(fetcher.fetch(ENCODED_REQUEST, VOTING_ROUND, att_id))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert store.get(att_id).error_kind == "cancelled"
    assert da.calls == []


@pytest.mark.asyncio
async def test_fetch_on_unfinalized_record_never_queries_da(store, clock):
    da = FakeDA(lambda n, b: {"proof": [], "response_hex": sample_response_hex()})
    att_id = store.create().id

    with pytest.raises(InvalidTransitionError):
        await _fetcher(da, store, clock).fetch(ENCODED_REQUEST, VOTING_ROUND, att_id)

    assert da.calls == []
    assert clock.sleeps == []
    record = store.get(att_id)
    assert record.phase == AttestationPhase.PREPARING
    assert record.voting_round is None
    assert record.proof is None


@pytest.mark.asyncio
async def test_da_client_posts_round_and_bytes():
    seen = {}

    async def handler(request):
        seen["body"] = await request.json()
        seen["key"] = request.headers.get("X-API-KEY")
        return web.json_response({"proof": ["0x01"], "response_hex": "0x02"})

    async with serve([("POST", DA_PROOF_PATH, handler)]) as base:
        result = await DALayerClient(base, api_key="da-key").fetch_proof(12, "0xabcd")

    assert result == {"proof": ["0x01"], "response_hex": "0x02"}
    assert seen == {"body": {"votingRoundId": 12, "requestBytes": "0xabcd"}, "key": "da-key"}


@pytest.mark.asyncio
async def test_da_client_non_success_is_none():
    async def handler(request):
        return web.json_response({"error": "round not indexed"}, status=400)

    async with serve([("POST", DA_PROOF_PATH, handler)]) as base:
        assert await DALayerClient(base).fetch_proof(12, "0xabcd") is None
