"""
Veriflare Canonical Encoding

Byte-level encodings shared by the gateway and the operator scripts:

- hex helpers for 0x-prefixed strings
- the fixed Web2Json response ABI layout (decode + encode)
- request-byte encoding variants accepted by the DA layer

The Web2Json response is a single ABI tuple:

    (bytes32 attestationType,
     bytes32 sourceId,
     uint64  votingRound,
     uint64  lowestUsedTimestamp,
     (string url, string httpMethod, string headers, string queryParams,
      string body, string postProcessJq, string abiSignature) requestBody,
     (bytes abiEncodedData) responseBody)

It is produced by `abi.encode(response)` on-chain, so the same bytes are the
Merkle leaf preimage.
"""

import base64
from typing import Any, Callable, Dict, List, NamedTuple

from eth_abi import decode, encode

from veriflare_canonical.constants import WEB2JSON_RESPONSE_ABI


def strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def hex_to_bytes(value: str) -> bytes:
    """Decode a hex string with or without the 0x prefix."""
    return bytes.fromhex(strip_0x(value))


def bytes_to_hex(value: bytes) -> str:
    return "0x" + value.hex()


def decode_web2json_response(data: bytes) -> Dict[str, Any]:
    """
    Decode ABI bytes into the Web2Json response fields.

    Args:
        data: Raw `abi.encode(IWeb2Json.Response)` bytes

    Returns:
        Dict with snake_case keys:
        attestation_type, source_id (0x hex), voting_round,
        lowest_used_timestamp (int), request_body (dict of 7 strings),
        response_body ({"abi_encoded_data": 0x hex})

    Raises:
        eth_abi.exceptions.DecodingError / ValueError: bytes do not match the layout
    """
    (response,) = decode([WEB2JSON_RESPONSE_ABI], data)
    attestation_type, source_id, voting_round, lowest_used_timestamp, request_body, response_body = response
    url, http_method, headers, query_params, body, post_process_jq, abi_signature = request_body

    return {
        "attestation_type": bytes_to_hex(attestation_type),
        "source_id": bytes_to_hex(source_id),
        "voting_round": int(voting_round),
        "lowest_used_timestamp": int(lowest_used_timestamp),
        "request_body": {
            "url": url,
            "http_method": http_method,
            "headers": headers,
            "query_params": query_params,
            "body": body,
            "post_process_jq": post_process_jq,
            "abi_signature": abi_signature,
        },
        "response_body": {
            "abi_encoded_data": bytes_to_hex(response_body[0]),
        },
    }


def web2json_response_tuple(fields: Dict[str, Any]) -> tuple:
    """
    Build the positional tuple for a Web2Json response from decoded fields.

    Field order matches the on-chain struct; this is also the shape web3
    expects for a struct argument.
    """
    request_body = fields["request_body"]
    return (
        hex_to_bytes(fields["attestation_type"]),
        hex_to_bytes(fields["source_id"]),
        int(fields["voting_round"]),
        int(fields["lowest_used_timestamp"]),
        (
            request_body["url"],
            request_body["http_method"],
            request_body["headers"],
            request_body["query_params"],
            request_body["body"],
            request_body["post_process_jq"],
            request_body["abi_signature"],
        ),
        (hex_to_bytes(fields["response_body"]["abi_encoded_data"]),),
    )


def encode_web2json_response(fields: Dict[str, Any]) -> bytes:
    """Inverse of decode_web2json_response()."""
    return encode([WEB2JSON_RESPONSE_ABI], [web2json_response_tuple(fields)])


# =============================================================================
# DA LAYER REQUEST-BYTE VARIANTS
# =============================================================================

class EncodingVariant(NamedTuple):
    name: str
    transform: Callable[[str], str]


def _as_hex(encoded_request: str) -> str:
    return "0x" + strip_0x(encoded_request)


def _as_bare_hex(encoded_request: str) -> str:
    return strip_0x(encoded_request)


def _as_base64(encoded_request: str) -> str:
    return base64.b64encode(hex_to_bytes(encoded_request)).decode("ascii")


# Tried in order on every DA attempt; the endpoint has accepted each of these
# at different times.
ENCODING_VARIANTS: List[EncodingVariant] = [
    EncodingVariant("hex", _as_hex),
    EncodingVariant("hex-no-prefix", _as_bare_hex),
    EncodingVariant("base64", _as_base64),
]
