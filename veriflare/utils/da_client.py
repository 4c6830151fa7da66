"""
Data Availability Layer Client

    POST {DA_LAYER_URL}/api/v1/fdc/proof-by-request-round-raw
    {"votingRoundId": <int>, "requestBytes": <encoded request>}

    -> {"proof": ["0x..", ...], "response_hex": "0x.."}

The DA layer indexes a round some time after finalization, so "not found"
is an expected answer while polling. This client reports it as None and
leaves the retry policy to the ProofFetcher.
"""

import logging
from typing import Any, Dict, Optional

import aiohttp

from veriflare_canonical.constants import DA_PROOF_PATH

logger = logging.getLogger(__name__)


class DALayerClient:
    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout_seconds: float = 30):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def fetch_proof(self, voting_round: int, request_bytes: str) -> Optional[Dict[str, Any]]:
        """
        Returns:
            Parsed JSON body on 2xx, None on any other status

        Raises:
            aiohttp.ClientError / asyncio.TimeoutError: Network failure
        """
        url = f"{self.base_url}{DA_PROOF_PATH}"
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-KEY"] = self.api_key

        payload = {"votingRoundId": voting_round, "requestBytes": request_bytes}

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(url, json=payload, headers=headers) as response:
                if response.status < 200 or response.status >= 300:
                    logger.debug(f"[PROOF] DA layer returned HTTP {response.status} for round {voting_round}")
                    return None
                try:
                    return await response.json(content_type=None)
                except ValueError:
                    logger.debug(f"[PROOF] DA layer returned non-JSON body for round {voting_round}")
                    return None
