"""
Request Preparer

Stage 1 of an attestation. Builds the Web2Json request envelope and exchanges
it with the FDC verifier for `abiEncodedRequest`, the blob FdcHub accepts.

Envelope:
    {
      "attestationType": <Web2Json tag>,
      "sourceId": <PublicWeb2 tag>,
      "requestBody": {
        "url", "httpMethod", "headers", "queryParams", "body",
        "postProcessJq", "abiSignature"
      }
    }

headers/queryParams/body/abiSignature travel as JSON strings, as the verifier
expects; unused ones are the literal "{}".

Proxied preparation publishes a payload in the source cache first and points
the verifier at our own public URL instead of the original source.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import aiohttp

from veriflare.fdc.errors import AttestationError, ConfigurationError, ErrorKind
from veriflare.models.status import AttestationPhase
from veriflare.utils.source_cache import SourceCache
from veriflare.utils.status_store import AttestationStatusStore
from veriflare_canonical.constants import (
    ATTESTATION_TYPE_WEB2JSON,
    SOURCE_CACHE_ROUTE,
    SOURCE_ID_PUBLIC_WEB2,
)

logger = logging.getLogger(__name__)

Schema = Union[str, Dict[str, Any]]


@dataclass
class PreparedRequest:
    encoded_request: str
    attestation_id: str
    source_url: Optional[str] = None


def _json_field(value: Optional[Union[str, Dict[str, Any]]]) -> str:
    if value is None:
        return "{}"
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))


def build_envelope(
    target_url: str,
    http_method: str,
    filter_expression: str,
    result_schema: Schema,
    headers: Optional[Dict[str, Any]] = None,
    query_params: Optional[Dict[str, Any]] = None,
    body: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "attestationType": ATTESTATION_TYPE_WEB2JSON,
        "sourceId": SOURCE_ID_PUBLIC_WEB2,
        "requestBody": {
            "url": target_url,
            "httpMethod": http_method.upper(),
            "headers": _json_field(headers),
            "queryParams": _json_field(query_params),
            "body": _json_field(body),
            "postProcessJq": filter_expression,
            "abiSignature": _json_field(result_schema),
        },
    }


class RequestPreparer:
    def __init__(
        self,
        verifier,
        store: AttestationStatusStore,
        source_cache: Optional[SourceCache] = None,
        public_base_url: Optional[str] = None,
    ):
        self.verifier = verifier
        self.store = store
        self.source_cache = source_cache
        self.public_base_url = public_base_url

    @property
    def public_base_url(self) -> Optional[str]:
        return self._public_base_url

    @public_base_url.setter
    def public_base_url(self, url: Optional[str]):
        # Updated at runtime when a tunnel comes up
        self._public_base_url = url.rstrip("/") if url else None

    def _open_record(self, attestation_id: Optional[str]) -> str:
        if attestation_id and attestation_id in self.store:
            # Reused records must still be preparing
            self.store.check_transition(attestation_id, AttestationPhase.SUBMITTED)
            return attestation_id
        return self.store.create(attestation_id).id

    async def prepare(
        self,
        target_url: str,
        http_method: str,
        filter_expression: str,
        result_schema: Schema,
        headers: Optional[Dict[str, Any]] = None,
        query_params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        attestation_id: Optional[str] = None,
    ) -> PreparedRequest:
        """
        Ask the verifier to encode a request for target_url.

        The status record is opened in phase `preparing` before the verifier is
        contacted. Pass `attestation_id` to reuse a record created earlier.

        Raises:
            UpstreamRejectedError / NoEncodedRequestError: Verifier refused
            aiohttp.ClientError / asyncio.TimeoutError: Verifier unreachable
        """
        attestation_id = self._open_record(attestation_id)
        envelope = build_envelope(
            target_url, http_method, filter_expression, result_schema, headers, query_params, body
        )

        logger.info(f"[PREPARE] {attestation_id}: {http_method.upper()} {target_url}")

        try:
            encoded = await self.verifier.prepare_request(envelope)
        except AttestationError as e:
            e.attestation_id = attestation_id
            self.store.mark_failed(attestation_id, e.message, e.kind)
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.store.mark_failed(attestation_id, f"Verifier unreachable: {str(e) or type(e).__name__}", ErrorKind.NETWORK)
            raise
        except asyncio.CancelledError:
            self.store.fail_if_active(attestation_id, "Attestation cancelled during preparation", ErrorKind.CANCELLED)
            raise

        logger.info(f"[PREPARE] {attestation_id}: encoded request {len(encoded)} chars")
        return PreparedRequest(encoded_request=encoded, attestation_id=attestation_id)

    async def prepare_proxied(
        self,
        payload: Any,
        filter_expression: str,
        result_schema: Schema,
        attestation_id: Optional[str] = None,
    ) -> PreparedRequest:
        """
        Publish `payload` in the source cache and prepare against its public URL.

        Keep payloads minimal: the verifier times out on large bodies.

        Raises:
            ConfigurationError: No public base URL (or no cache) configured
        """
        attestation_id = self._open_record(attestation_id)

        if not self.public_base_url or self.source_cache is None:
            error = ConfigurationError(
                "PUBLIC_BACKEND_URL is not set - the FDC verifier cannot reach cached source data. "
                "Set it (or POST /api/fdc/set-public-url) to a publicly reachable URL.",
                attestation_id=attestation_id,
            )
            self.store.mark_failed(attestation_id, error.message, error.kind)
            raise error

        key = self.source_cache.put(payload)
        source_url = f"{self.public_base_url}{SOURCE_CACHE_ROUTE}/{key}"

        prepared = await self.prepare(
            source_url, "GET", filter_expression, result_schema, attestation_id=attestation_id
        )
        prepared.source_url = source_url
        return prepared
