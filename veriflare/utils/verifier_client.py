"""
FDC Verifier Client

Thin aiohttp client for the Web2Json verifier:

    POST {FDC_VERIFIER_URL}/Web2Json/prepareRequest
    X-API-KEY: <key>

The verifier fetches the target URL, runs the jq filter, checks the result
against the ABI signature and answers with `abiEncodedRequest`, the exact
bytes FdcHub expects.
"""

import json
import logging
from typing import Any, Dict

import aiohttp

from veriflare.fdc.errors import NoEncodedRequestError, UpstreamRejectedError, truncate_body
from veriflare_canonical.constants import MAX_ERROR_BODY_CHARS, VERIFIER_PREPARE_PATH

logger = logging.getLogger(__name__)


class VerifierClient:
    def __init__(self, base_url: str, api_key: str, timeout_seconds: float = 30):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def prepare_request(self, envelope: Dict[str, Any]) -> str:
        """
        Ask the verifier to encode an attestation request.

        Returns:
            abiEncodedRequest as 0x hex

        Raises:
            UpstreamRejectedError: Non-2xx status (body truncated)
            NoEncodedRequestError: 2xx without abiEncodedRequest
            aiohttp.ClientError / asyncio.TimeoutError: Network failure
        """
        url = f"{self.base_url}{VERIFIER_PREPARE_PATH}"
        headers = {"Content-Type": "application/json", "X-API-KEY": self.api_key}

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(url, json=envelope, headers=headers) as response:
                text = await response.text()
                status = response.status

        if status < 200 or status >= 300:
            body = truncate_body(text, MAX_ERROR_BODY_CHARS)
            logger.warning(f"[PREPARE] Verifier returned HTTP {status}: {body}")
            raise UpstreamRejectedError(f"Verifier returned HTTP {status}: {body}", status=status, body=body)

        try:
            payload = json.loads(text)
        except ValueError:
            payload = None

        encoded = payload.get("abiEncodedRequest") if isinstance(payload, dict) else None
        if not encoded:
            verifier_status = payload.get("status") if isinstance(payload, dict) else None
            body = truncate_body(text, MAX_ERROR_BODY_CHARS)
            raise NoEncodedRequestError(
                f"Verifier did not return abiEncodedRequest (status: {verifier_status or 'unknown'})",
                status=status,
                body=body,
            )

        return encoded
