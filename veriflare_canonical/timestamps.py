"""
Veriflare Canonical Timestamp Functions

Timestamps attached to attestation records are RFC3339, UTC, with a Z suffix
and truncated to seconds.
"""

from datetime import datetime, timezone


def canonical_timestamp() -> str:
    """
    Generate a canonical timestamp.

    Format: RFC3339 UTC with Z suffix, truncated to seconds.
    Example: "2024-01-15T12:30:45Z"
    """
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%SZ")

