"""
Gateway Utilities
================

Core utilities for:
- source_cache.py: Short-lived public cache for pre-fetched source data
- status_store.py: In-memory attestation lifecycle records
- verifier_client.py: FDC verifier prepareRequest client
- da_client.py: Data Availability layer proof client
- chain.py: Flare registry / FdcHub / Relay access via web3
- github.py: Minimal GitHub commit pre-fetch
"""
