"""
Veriflare Attestation Gateway
=============================

Drives Flare Data Connector (FDC) Web2Json attestations end to end.

Features:
- Request preparation through the FDC verifier
- On-chain submission to FdcHub with voting-round lookup on the Relay
- Bounded polling for round finalization
- Merkle proof retrieval from the DA layer (multi-encoding retries)
- Short-lived source cache so the verifier can fetch pre-fetched data
- In-memory attestation status tracking
"""

__version__ = "1.0.0"
__author__ = "Veriflare Team"
