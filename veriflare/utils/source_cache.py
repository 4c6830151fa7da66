"""
Source Cache (Cache Proxy)

Publishes pre-fetched source data under an unguessable key so the FDC
verifier can fetch it from a URL we control:

    GET {PUBLIC_BACKEND_URL}/api/source-cache/{key}

Used when the upstream API is not reachable by the verifier (rate limits,
auth headers, GitHub blocking the verifier's egress).

Design:
- Key is 128 random bits (hex), never derived from the data
- JSON body is serialized once at put() and served verbatim, so the bytes
  the verifier hashes never change between fetches
- Entries live for the retention window (1h by default), long enough for
  the verifier to fetch after a slow round
- Written by the engine, read by inbound HTTP; guarded by a threading.Lock
"""

import json
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from veriflare_canonical.constants import SOURCE_CACHE_RETENTION_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: str
    data: Any
    body: bytes
    created_at: float


class SourceCache:
    def __init__(
        self,
        retention_seconds: float = SOURCE_CACHE_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def put(self, data: Any) -> str:
        """
        Store a JSON-serializable object and return its key.

        Raises:
            TypeError: If data is not JSON-serializable
        """
        body = json.dumps(data, separators=(",", ":")).encode("utf-8")
        key = secrets.token_hex(16)

        with self._lock:
            self._entries[key] = CacheEntry(key=key, data=data, body=body, created_at=self._clock())

        logger.info(f"[CACHE] Stored {len(body)} bytes under {key[:8]}...")
        return key

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.created_at > self.retention_seconds:
                del self._entries[key]
                return None
            return entry

    def get(self, key: str) -> Optional[Any]:
        entry = self._live_entry(key)
        return entry.data if entry else None

    def get_body(self, key: str) -> Optional[bytes]:
        """Exact JSON bytes served to the verifier, or None if absent/expired."""
        entry = self._live_entry(key)
        return entry.body if entry else None

    def sweep(self) -> int:
        """Remove expired entries. Returns the number removed."""
        cutoff = self._clock() - self.retention_seconds
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.created_at < cutoff]
            for key in expired:
                del self._entries[key]
            remaining = len(self._entries)

        if expired:
            logger.info(f"[CACHE] Swept {len(expired)} expired entries ({remaining} remaining)")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
