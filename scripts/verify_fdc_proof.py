#!/usr/bin/env python3
"""
Query and verify FDC attestations produced by the Veriflare gateway.

Verification is done locally and trusts neither the gateway nor the DA layer:
1. Fetch the attestation record (proof + decoded response) from the gateway
2. Re-encode the response with the fixed Web2Json ABI layout
3. Fold the Merkle proof into a root (keccak, sorted pairs)
4. Read the Relay's stored root for the voting round from the chain
5. Compare

Usage:
    python verify_fdc_proof.py status <attestation_id>
    python verify_fdc_proof.py verify <attestation_id>
    python verify_fdc_proof.py verify --proof-file proof.json

Environment (or flags):
    VERIFLARE_GATEWAY_URL   default http://localhost:3002
    FLARE_RPC_URL           default Coston2 public RPC
    FLARE_CONTRACT_REGISTRY default Coston2 registry
"""

import argparse
import json
import os
import sys
from typing import Any, Dict, Optional

import requests
from web3 import Web3

# Add parent directory to path to import veriflare_canonical
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from veriflare_canonical.constants import (  # noqa: E402
    DEFAULT_CONTRACT_REGISTRY,
    DEFAULT_RPC_URL,
    FDC_PROTOCOL_ID,
    REGISTRY_ABI,
    RELAY_ABI,
    RELAY_CONTRACT_NAME,
)
from veriflare_canonical.encoding import bytes_to_hex, encode_web2json_response  # noqa: E402
from veriflare_canonical.merkle import compute_root, leaf_hash  # noqa: E402

DEFAULT_GATEWAY_URL = os.getenv("VERIFLARE_GATEWAY_URL", "http://localhost:3002")


def fetch_record(gateway_url: str, attestation_id: str) -> Optional[Dict[str, Any]]:
    """GET /api/fdc/attestation/{id}"""
    url = f"{gateway_url.rstrip('/')}/api/fdc/attestation/{attestation_id}"
    try:
        response = requests.get(url, timeout=30)
    except requests.ConnectionError:
        print(f"❌ Cannot connect to gateway at {gateway_url}")
        return None
    except requests.Timeout:
        print("❌ Gateway request timed out")
        return None

    if response.status_code == 404:
        print(f"❌ Attestation {attestation_id} not found")
        return None
    if response.status_code != 200:
        print(f"❌ Gateway returned HTTP {response.status_code}: {response.text[:200]}")
        return None
    return response.json()


def print_record(record: Dict[str, Any]):
    print(f"Attestation: {record['id']}")
    print(f"   Phase:        {record['phase']}")
    print(f"   Voting round: {record.get('voting_round')}")
    print(f"   Tx hash:      {record.get('tx_hash')}")
    print(f"   Created:      {record['created_at']}")
    print(f"   Updated:      {record['updated_at']}")
    if record.get("error"):
        print(f"   Error ({record.get('error_kind')}): {record['error']}")
    if record.get("proof"):
        data = record["proof"]["data"]
        print(f"   URL:          {data['request_body']['url']}")
        print(f"   Filter:       {data['request_body']['post_process_jq']}")
        print(f"   Proof length: {len(record['proof']['merkle_proof'])}")


def stored_root(rpc_url: str, registry_address: str, voting_round: int) -> bytes:
    web3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 30}))
    registry = web3.eth.contract(address=Web3.to_checksum_address(registry_address), abi=REGISTRY_ABI)
    relay_address = registry.functions.getContractAddressByName(RELAY_CONTRACT_NAME).call()
    relay = web3.eth.contract(address=Web3.to_checksum_address(relay_address), abi=RELAY_ABI)
    return bytes(relay.functions.merkleRoots(FDC_PROTOCOL_ID, voting_round).call())


def verify(proof: Dict[str, Any], rpc_url: str, registry_address: str) -> bool:
    data = proof["data"]
    voting_round = int(data["voting_round"])

    print(f"🔍 Verifying proof for round {voting_round}")
    leaf = leaf_hash(encode_web2json_response(data))
    computed = compute_root(leaf, proof.get("merkle_proof", []))
    print(f"   Leaf:          {bytes_to_hex(leaf)}")
    print(f"   Computed root: {bytes_to_hex(computed)}")

    root = stored_root(rpc_url, registry_address, voting_round)
    print(f"   Relay root:    {bytes_to_hex(root)}")

    if computed == root:
        print("✅ Proof is valid: response is included in the finalized round")
        return True
    print("❌ Proof does NOT match the Relay's Merkle root")
    return False


def main():
    parser = argparse.ArgumentParser(description="Query and verify Veriflare FDC attestations")
    parser.add_argument("--gateway", default=DEFAULT_GATEWAY_URL, help="Gateway base URL")
    parser.add_argument("--rpc", default=os.getenv("FLARE_RPC_URL", DEFAULT_RPC_URL), help="Flare RPC URL")
    parser.add_argument(
        "--registry",
        default=os.getenv("FLARE_CONTRACT_REGISTRY", DEFAULT_CONTRACT_REGISTRY),
        help="FlareContractRegistry address",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    status_cmd = sub.add_parser("status", help="Show an attestation record")
    status_cmd.add_argument("attestation_id")

    verify_cmd = sub.add_parser("verify", help="Verify a proof against the Relay")
    verify_cmd.add_argument("attestation_id", nargs="?")
    verify_cmd.add_argument("--proof-file", help="JSON file with {merkle_proof, data}")

    args = parser.parse_args()

    if args.command == "status":
        record = fetch_record(args.gateway, args.attestation_id)
        if record is None:
            sys.exit(1)
        print_record(record)
        sys.exit(0)

    if args.proof_file:
        with open(args.proof_file, "r") as f:
            proof = json.load(f)
    elif args.attestation_id:
        record = fetch_record(args.gateway, args.attestation_id)
        if record is None:
            sys.exit(1)
        if record.get("phase") != "proof-ready" or not record.get("proof"):
            print(f"❌ Attestation is '{record.get('phase')}', no proof to verify")
            sys.exit(1)
        proof = record["proof"]
    else:
        parser.error("verify needs an attestation_id or --proof-file")

    sys.exit(0 if verify(proof, args.rpc, args.registry) else 1)


if __name__ == "__main__":
    main()
