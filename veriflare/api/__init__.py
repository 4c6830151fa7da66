"""
Gateway API Endpoints

This package contains all FastAPI routers for the gateway:
- fdc: Attestation stages, full chain, background attestations, status
- source_cache: Public read endpoint used by the FDC verifier
"""
