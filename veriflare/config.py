"""
Gateway Configuration
====================

Loads all environment variables for the attestation gateway.

Environment variables should be set in .env file in project root.
"""

import os
import warnings

from dotenv import load_dotenv

from veriflare_canonical.constants import (
    DEFAULT_CONTRACT_REGISTRY,
    DEFAULT_DA_LAYER_URL,
    DEFAULT_REQUEST_FEE_WEI,
    DEFAULT_RPC_URL,
    DEFAULT_VERIFIER_API_KEY,
    DEFAULT_VERIFIER_URL,
    DA_MAX_ATTEMPTS as _DA_MAX_ATTEMPTS,
    DA_RETRY_SECONDS as _DA_RETRY_SECONDS,
    DA_SETTLE_SECONDS as _DA_SETTLE_SECONDS,
    FDC_PROTOCOL_ID as _FDC_PROTOCOL_ID,
    FINALIZATION_MAX_WAIT_SECONDS as _FINALIZATION_MAX_WAIT_SECONDS,
    FINALIZATION_POLL_SECONDS as _FINALIZATION_POLL_SECONDS,
    SOURCE_CACHE_RETENTION_SECONDS as _SOURCE_CACHE_RETENTION_SECONDS,
    SOURCE_CACHE_SWEEP_SECONDS as _SOURCE_CACHE_SWEEP_SECONDS,
)

load_dotenv()

# ============================================================
# Gateway Build Info
# ============================================================
BUILD_ID = os.getenv("BUILD_ID", "dev-local")
GITHUB_COMMIT = os.getenv("GITHUB_SHA", "unknown")
PORT = int(os.getenv("PORT", "3002"))

# ============================================================
# FDC Verifier (request preparation)
# ============================================================
FDC_VERIFIER_URL = os.getenv("FDC_VERIFIER_URL", DEFAULT_VERIFIER_URL).rstrip("/")
FDC_VERIFIER_API_KEY = os.getenv("FDC_VERIFIER_API_KEY", DEFAULT_VERIFIER_API_KEY)

# ============================================================
# Data Availability Layer (proof retrieval)
# ============================================================
DA_LAYER_URL = os.getenv("DA_LAYER_URL", DEFAULT_DA_LAYER_URL).rstrip("/")
DA_LAYER_API_KEY = os.getenv("DA_LAYER_API_KEY")  # Optional

# ============================================================
# Flare Network (submission + finalization)
# ============================================================
FLARE_RPC_URL = os.getenv("FLARE_RPC_URL", DEFAULT_RPC_URL)
FLARE_CONTRACT_REGISTRY = os.getenv("FLARE_CONTRACT_REGISTRY", DEFAULT_CONTRACT_REGISTRY)
FDC_SUBMITTER_PRIVATE_KEY = os.getenv("FDC_SUBMITTER_PRIVATE_KEY")
FDC_REQUEST_FEE_WEI = int(os.getenv("FDC_REQUEST_FEE_WEI", str(DEFAULT_REQUEST_FEE_WEI)))
FDC_PROTOCOL_ID = int(os.getenv("FDC_PROTOCOL_ID", str(_FDC_PROTOCOL_ID)))
TX_RECEIPT_TIMEOUT_SECONDS = int(os.getenv("TX_RECEIPT_TIMEOUT_SECONDS", "120"))

if not FDC_SUBMITTER_PRIVATE_KEY:
    warnings.warn("FDC_SUBMITTER_PRIVATE_KEY environment variable not set - FdcHub submissions will fail")

# ============================================================
# Source Cache (public proxy for pre-fetched data)
# ============================================================
# Must be reachable by the FDC verifier (tunnel or public host)
PUBLIC_BACKEND_URL = os.getenv("PUBLIC_BACKEND_URL")
SOURCE_CACHE_RETENTION_SECONDS = int(
    os.getenv("SOURCE_CACHE_RETENTION_SECONDS", str(_SOURCE_CACHE_RETENTION_SECONDS))
)
SOURCE_CACHE_SWEEP_SECONDS = int(
    os.getenv("SOURCE_CACHE_SWEEP_SECONDS", str(_SOURCE_CACHE_SWEEP_SECONDS))
)

# ============================================================
# GitHub (commit pre-fetch)
# ============================================================
GITHUB_TOKEN = os.getenv("GITHUB_TOKEN")  # Optional, unauthenticated is 60 req/hr
GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip("/")

# ============================================================
# Polling Budgets
# ============================================================
FINALIZATION_MAX_WAIT_SECONDS = float(
    os.getenv("FINALIZATION_MAX_WAIT_SECONDS", str(_FINALIZATION_MAX_WAIT_SECONDS))
)
FINALIZATION_POLL_SECONDS = float(os.getenv("FINALIZATION_POLL_SECONDS", str(_FINALIZATION_POLL_SECONDS)))
DA_SETTLE_SECONDS = float(os.getenv("DA_SETTLE_SECONDS", str(_DA_SETTLE_SECONDS)))
DA_MAX_ATTEMPTS = int(os.getenv("DA_MAX_ATTEMPTS", str(_DA_MAX_ATTEMPTS)))
DA_RETRY_SECONDS = float(os.getenv("DA_RETRY_SECONDS", str(_DA_RETRY_SECONDS)))
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))

# Overall budget for a background attestation (0 = no limit beyond stage budgets)
ATTESTATION_TIMEOUT_SECONDS = float(os.getenv("ATTESTATION_TIMEOUT_SECONDS", "0"))

# Terminal status records older than this are pruned (0 = keep until restart)
ATTESTATION_RECORD_TTL_SECONDS = int(os.getenv("ATTESTATION_RECORD_TTL_SECONDS", "0"))


# ============================================================
# Configuration Validation
# ============================================================

def validate_config():
    """
    Validates that all required configuration is present.
    Called on application startup.
    """
    errors = []

    if not FDC_SUBMITTER_PRIVATE_KEY:
        errors.append("FDC_SUBMITTER_PRIVATE_KEY is not set")
    if not FLARE_RPC_URL:
        errors.append("FLARE_RPC_URL is not set")
    if not FLARE_CONTRACT_REGISTRY:
        errors.append("FLARE_CONTRACT_REGISTRY is not set")
    if SOURCE_CACHE_RETENTION_SECONDS < FINALIZATION_MAX_WAIT_SECONDS:
        errors.append(
            "SOURCE_CACHE_RETENTION_SECONDS must outlast FINALIZATION_MAX_WAIT_SECONDS "
            "(the verifier may fetch cached data late)"
        )

    if errors:
        raise ValueError("Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors))

    return True


def print_config_summary():
    """
    Prints a summary of the configuration (for debugging).
    NEVER prints secrets!
    """
    print("=" * 60)
    print("Gateway Configuration Summary")
    print("=" * 60)
    print(f"Build ID: {BUILD_ID}")
    print(f"GitHub Commit: {GITHUB_COMMIT}")
    print(f"FDC Verifier: {FDC_VERIFIER_URL}")
    print(f"DA Layer: {DA_LAYER_URL}")
    print(f"Flare RPC: {FLARE_RPC_URL}")
    print(f"Contract Registry: {FLARE_CONTRACT_REGISTRY}")
    print(f"Submitter Key: {'Configured' if FDC_SUBMITTER_PRIVATE_KEY else 'MISSING'}")
    print(f"Request Fee: {FDC_REQUEST_FEE_WEI} wei")
    print(f"Public URL: {PUBLIC_BACKEND_URL or 'not set (proxied sources disabled)'}")
    print(f"GitHub Token: {'set' if GITHUB_TOKEN else 'not set (rate-limited)'}")
    print(f"Finalization: max {FINALIZATION_MAX_WAIT_SECONDS:.0f}s, poll {FINALIZATION_POLL_SECONDS:.0f}s")
    print(f"DA Layer Retries: settle {DA_SETTLE_SECONDS:.0f}s, {DA_MAX_ATTEMPTS} x {DA_RETRY_SECONDS:.0f}s")
    print(f"Source Cache: keep {SOURCE_CACHE_RETENTION_SECONDS}s, sweep every {SOURCE_CACHE_SWEEP_SECONDS}s")
    print("=" * 60)


# Validate configuration on import
try:
    validate_config()
except ValueError as e:
    print(f"⚠️  Configuration warning: {e}")
    print("⚠️  Some features may not work correctly.")
