"""
Gateway Background Tasks

This package contains async background tasks that run alongside the FastAPI app:
- cache_sweep: Drops expired source-cache entries and old attestation records
"""
