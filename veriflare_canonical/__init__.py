"""
Veriflare Canonical Module

Shared, protocol-level definitions used by the attestation gateway, the
operator scripts and the tests. Anything that must be byte-for-byte identical
to what the Flare Data Connector (FDC) and the on-chain verifier expect lives
here.

Module Structure:
    constants.py   - Attestation tags (bytes32 ASCII tag encoding), protocol id,
                     contract names, timing defaults
    encoding.py    - hex helpers, Web2Json response ABI encode/decode,
                     request-byte encoding variants for the DA layer
    merkle.py      - keccak sorted-pair Merkle proof verification
    timestamps.py  - canonical_timestamp() - RFC3339 UTC with Z, no microseconds

Usage:
    from veriflare_canonical.encoding import decode_web2json_response
    from veriflare_canonical.constants import FDC_PROTOCOL_ID
"""

__version__ = "1.0.0"

from veriflare_canonical.constants import (
    ATTESTATION_TYPE_WEB2JSON,
    SOURCE_ID_PUBLIC_WEB2,
    FDC_PROTOCOL_ID,
    FDC_HUB_CONTRACT_NAME,
    RELAY_CONTRACT_NAME,
    WEB2JSON_RESPONSE_ABI,
)

__all__ = [
    "__version__",
    "ATTESTATION_TYPE_WEB2JSON",
    "SOURCE_ID_PUBLIC_WEB2",
    "FDC_PROTOCOL_ID",
    "FDC_HUB_CONTRACT_NAME",
    "RELAY_CONTRACT_NAME",
    "WEB2JSON_RESPONSE_ABI",
]
