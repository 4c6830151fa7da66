"""Shared pytest fixtures: fake clock, stores and an engine wired over fakes."""

from typing import Optional

import pytest

from fakes import FakeChain, FakeClock, FakeDA, FakeVerifier, ready_da
from veriflare.fdc.fetcher import ProofFetcher
from veriflare.fdc.orchestrator import AttestationEngine
from veriflare.fdc.preparer import RequestPreparer
from veriflare.fdc.submitter import OnChainSubmitter
from veriflare.fdc.waiter import FinalizationWaiter
from veriflare.utils.source_cache import SourceCache
from veriflare.utils.status_store import AttestationStatusStore


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return AttestationStatusStore(clock=clock)


@pytest.fixture
def source_cache(clock):
    return SourceCache(retention_seconds=3600, clock=clock)


@pytest.fixture
def make_engine(store, source_cache, clock):
    """Build an engine over fakes; any collaborator can be overridden."""

    def _make(
        verifier: Optional[FakeVerifier] = None,
        chain: Optional[FakeChain] = None,
        da: Optional[FakeDA] = None,
        public_base_url: Optional[str] = "https://gateway.example.org",
        commit_fetcher=None,
        max_wait: float = 300,
        max_attempts: int = 30,
    ) -> AttestationEngine:
        verifier = verifier or FakeVerifier()
        chain = chain or FakeChain()
        da = da or ready_da(chain.voting_round)

        async def _default_commit_fetcher(repo, sha):
            return {"sha": sha, "commit": {"tree": {"sha": "7ree"}}, "author": {"login": "octocat"}}

        preparer = RequestPreparer(verifier, store, source_cache, public_base_url=public_base_url)
        submitter = OnChainSubmitter(chain, store, fee_wei=10**18)
        waiter = FinalizationWaiter(chain, store, max_wait=max_wait, poll_interval=10, sleep=clock.sleep, clock=clock)
        fetcher = ProofFetcher(da, store, settle_seconds=30, max_attempts=max_attempts, retry_seconds=10, sleep=clock.sleep)
        return AttestationEngine(
            preparer,
            submitter,
            waiter,
            fetcher,
            store,
            chain=chain,
            commit_fetcher=commit_fetcher or _default_commit_fetcher,
        )

    return _make
