"""
Source Cache Sweep Background Task
==================================

Removes source-cache entries older than the retention window every 10 minutes,
and (when ATTESTATION_RECORD_TTL_SECONDS > 0) drops terminal attestation
records that have not changed for that long.

Cache entries must outlive the verifier's fetch of them, so retention (1h)
is far longer than a voting round.
"""

import asyncio
import logging
import traceback
from typing import Optional

from veriflare.utils.source_cache import SourceCache
from veriflare.utils.status_store import AttestationStatusStore

logger = logging.getLogger(__name__)


def run_sweep(
    source_cache: SourceCache,
    store: Optional[AttestationStatusStore] = None,
    record_ttl_seconds: float = 0,
) -> int:
    """One sweep pass. Returns the number of cache entries removed."""
    removed = source_cache.sweep()
    if store is not None and record_ttl_seconds > 0:
        store.prune(record_ttl_seconds)
    return removed


async def cache_sweep_task(
    source_cache: SourceCache,
    interval_seconds: float = 600,
    store: Optional[AttestationStatusStore] = None,
    record_ttl_seconds: float = 0,
):
    """
    Background task, runs until cancelled.

    Errors in one pass are logged and the loop continues.
    """
    print("🧹 Source cache sweep task started")
    print(f"   Interval: {interval_seconds:.0f}s, retention: {source_cache.retention_seconds:.0f}s")

    while True:
        try:
            await asyncio.sleep(interval_seconds)
            run_sweep(source_cache, store, record_ttl_seconds)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[CACHE] Sweep error: {e}")
            traceback.print_exc()
