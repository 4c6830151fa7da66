"""
Engine wiring from gateway configuration.
"""

import functools
from typing import Optional

from veriflare import config
from veriflare.fdc.fetcher import ProofFetcher
from veriflare.fdc.orchestrator import AttestationEngine
from veriflare.fdc.preparer import RequestPreparer
from veriflare.fdc.submitter import OnChainSubmitter
from veriflare.fdc.waiter import FinalizationWaiter
from veriflare.utils.chain import FlareChainClient
from veriflare.utils.da_client import DALayerClient
from veriflare.utils.github import fetch_commit_summary
from veriflare.utils.source_cache import SourceCache
from veriflare.utils.status_store import AttestationStatusStore
from veriflare.utils.verifier_client import VerifierClient


def build_engine(
    store: Optional[AttestationStatusStore] = None,
    source_cache: Optional[SourceCache] = None,
) -> AttestationEngine:
    store = store or AttestationStatusStore()
    source_cache = source_cache or SourceCache(retention_seconds=config.SOURCE_CACHE_RETENTION_SECONDS)

    verifier = VerifierClient(
        config.FDC_VERIFIER_URL, config.FDC_VERIFIER_API_KEY, timeout_seconds=config.HTTP_TIMEOUT_SECONDS
    )
    da_client = DALayerClient(
        config.DA_LAYER_URL, config.DA_LAYER_API_KEY, timeout_seconds=config.HTTP_TIMEOUT_SECONDS
    )
    chain = FlareChainClient(
        config.FLARE_RPC_URL,
        config.FLARE_CONTRACT_REGISTRY,
        private_key=config.FDC_SUBMITTER_PRIVATE_KEY,
        protocol_id=config.FDC_PROTOCOL_ID,
    )

    preparer = RequestPreparer(verifier, store, source_cache, public_base_url=config.PUBLIC_BACKEND_URL)
    submitter = OnChainSubmitter(
        chain, store, fee_wei=config.FDC_REQUEST_FEE_WEI, receipt_timeout=config.TX_RECEIPT_TIMEOUT_SECONDS
    )
    waiter = FinalizationWaiter(
        chain,
        store,
        max_wait=config.FINALIZATION_MAX_WAIT_SECONDS,
        poll_interval=config.FINALIZATION_POLL_SECONDS,
    )
    fetcher = ProofFetcher(
        da_client,
        store,
        settle_seconds=config.DA_SETTLE_SECONDS,
        max_attempts=config.DA_MAX_ATTEMPTS,
        retry_seconds=config.DA_RETRY_SECONDS,
    )

    commit_fetcher = functools.partial(
        fetch_commit_summary,
        api_url=config.GITHUB_API_URL,
        token=config.GITHUB_TOKEN,
        timeout_seconds=config.HTTP_TIMEOUT_SECONDS,
    )

    return AttestationEngine(
        preparer,
        submitter,
        waiter,
        fetcher,
        store,
        chain=chain,
        commit_fetcher=commit_fetcher,
        default_timeout=config.ATTESTATION_TIMEOUT_SECONDS or None,
    )
