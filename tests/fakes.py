"""Fakes for the attestation pipeline: clock, chain, verifier and DA layer."""

from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional

from aiohttp import web
from aiohttp.test_utils import TestServer
from eth_abi import encode

from veriflare.fdc.errors import ConfigurationError, SubmissionError
from veriflare_canonical.constants import (
    ATTESTATION_TYPE_WEB2JSON,
    COMMIT_POST_PROCESS_JQ,
    SOURCE_ID_PUBLIC_WEB2,
)
from veriflare_canonical.encoding import bytes_to_hex, encode_web2json_response

ENCODED_REQUEST = "0x" + "ab" * 64
TX_HASH = "0x" + "11" * 32
HUB_ADDRESS = "0x" + "0a" * 20
RELAY_ADDRESS = "0x" + "0b" * 20
VOTING_ROUND = 1_045_321
BLOCK_TIMESTAMP = 1_730_000_000


class FakeClock:
    """Monotonic clock whose sleep() just advances time."""

    def __init__(self, start: float = 1_000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeVerifier:
    def __init__(self, encoded: str = ENCODED_REQUEST, error: Optional[Exception] = None):
        self.encoded = encoded
        self.error = error
        self.envelopes: List[Dict[str, Any]] = []

    async def prepare_request(self, envelope: Dict[str, Any]) -> str:
        self.envelopes.append(envelope)
        if self.error:
            raise self.error
        return self.encoded


class FakeChain:
    def __init__(
        self,
        finalize_on_poll: Optional[int] = 1,
        voting_round: int = VOTING_ROUND,
        merkle_root: bytes = b"\x00" * 32,
    ):
        self.addresses = {"FdcHub": HUB_ADDRESS, "Relay": RELAY_ADDRESS}
        self.finalize_on_poll = finalize_on_poll
        self.voting_round = voting_round
        self.merkle_root = merkle_root
        self.receipt: Optional[Dict[str, Any]] = {"status": 1, "blockNumber": 777}
        self.block_timestamp: Optional[int] = BLOCK_TIMESTAMP
        self.send_error: Optional[Exception] = None
        self.poll_errors: Dict[int, Exception] = {}
        self.polls = 0
        self.sent: List[Dict[str, Any]] = []
        self.round_lookups: List[int] = []

    async def resolve_address(self, name: str) -> str:
        if name not in self.addresses:
            raise ConfigurationError(f"Contract '{name}' is not registered (registry returned zero address)")
        return self.addresses[name]

    async def request_attestation(self, hub_address: str, encoded_request: str, fee_wei: int) -> str:
        if self.send_error:
            raise self.send_error
        self.sent.append({"hub": hub_address, "request": encoded_request, "fee": fee_wei})
        return TX_HASH

    async def wait_for_receipt(self, tx_hash: str, timeout: float = 120):
        if self.receipt == "timeout":
            raise SubmissionError(f"Transaction {tx_hash} not mined within {timeout}s")
        return self.receipt

    async def get_block_timestamp(self, block_number: int) -> Optional[int]:
        return self.block_timestamp

    async def get_voting_round_id(self, timestamp: int) -> int:
        self.round_lookups.append(timestamp)
        return self.voting_round

    async def is_finalized(self, voting_round: int) -> bool:
        self.polls += 1
        if self.polls in self.poll_errors:
            raise self.poll_errors[self.polls]
        return self.finalize_on_poll is not None and self.polls >= self.finalize_on_poll

    async def get_merkle_root(self, voting_round: int) -> bytes:
        return self.merkle_root


class FakeDA:
    """
    DA layer stub. `responder(attempt_index, request_bytes)` returns the body
    for a call (None = not ready); calls are recorded as (round, bytes).
    """

    def __init__(self, responder: Callable[[int, str], Optional[Dict[str, Any]]]):
        self.responder = responder
        self.calls: List[tuple] = []

    async def fetch_proof(self, voting_round: int, request_bytes: str):
        self.calls.append((voting_round, request_bytes))
        return self.responder(len(self.calls), request_bytes)


def sample_fields(voting_round: int = VOTING_ROUND, url: str = "https://example.org/api/source-cache/k") -> Dict[str, Any]:
    commit_data = encode(["(string,string,string)"], [("c0ffee", "7ree", "octocat")])
    return {
        "attestation_type": ATTESTATION_TYPE_WEB2JSON,
        "source_id": SOURCE_ID_PUBLIC_WEB2,
        "voting_round": voting_round,
        "lowest_used_timestamp": BLOCK_TIMESTAMP - 60,
        "request_body": {
            "url": url,
            "http_method": "GET",
            "headers": "{}",
            "query_params": "{}",
            "body": "{}",
            "post_process_jq": COMMIT_POST_PROCESS_JQ,
            "abi_signature": '{"name":"task","type":"tuple"}',
        },
        "response_body": {"abi_encoded_data": bytes_to_hex(commit_data)},
    }


def sample_response_hex(voting_round: int = VOTING_ROUND) -> str:
    return bytes_to_hex(encode_web2json_response(sample_fields(voting_round)))


def ready_da(voting_round: int = VOTING_ROUND, proof: Optional[List[str]] = None) -> FakeDA:
    body = {"proof": proof if proof is not None else ["0x" + "cd" * 32], "response_hex": sample_response_hex(voting_round)}
    return FakeDA(lambda _n, _b: body)


@asynccontextmanager
async def serve(routes: List[tuple]):
    """
    Run an aiohttp app on a local port for the duration of the block.

    routes: [(method, path, handler), ...]; yields the base URL.
    """
    app = web.Application()
    for method, path, handler in routes:
        app.router.add_route(method, path, handler)
    server = TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url("")).rstrip("/")
    finally:
        await server.close()
