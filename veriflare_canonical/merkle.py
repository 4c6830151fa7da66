"""
Merkle Proof Verification for FDC Attestations

The FDC commits each voting round to a Merkle root stored on the Relay
contract. Proofs returned by the DA layer follow the OpenZeppelin
`MerkleProof` convention:

- Leaves are keccak256(abi.encode(response))
- Internal nodes are keccak256(min(a, b) || max(a, b)) (sorted pair)
- A node without a sibling is carried up unchanged

This lets the gateway check a proof locally before anyone pays gas to submit
it to the verifier contract.
"""

from typing import List, Sequence, Tuple

from eth_utils import keccak

from veriflare_canonical.encoding import hex_to_bytes


def hash_pair(a: bytes, b: bytes) -> bytes:
    """keccak256 of the two 32-byte nodes in ascending order."""
    if a <= b:
        return keccak(a + b)
    return keccak(b + a)


def leaf_hash(response_bytes: bytes) -> bytes:
    return keccak(response_bytes)


def compute_root(leaf: bytes, proof: Sequence[str]) -> bytes:
    """
    Fold a proof path into a root.

    Args:
        leaf: 32-byte leaf hash
        proof: Sibling hashes as hex strings, leaf level first (may be empty)
    """
    current = leaf
    for sibling in proof:
        current = hash_pair(current, hex_to_bytes(sibling))
    return current


def verify_proof(leaf: bytes, proof: Sequence[str], expected_root: bytes) -> bool:
    return compute_root(leaf, proof) == expected_root


def build_tree(leaves: List[bytes]) -> Tuple[bytes, List[List[bytes]]]:
    """
    Build a sorted-pair tree over leaf hashes.

    Returns:
        (root, levels) where levels[0] are the leaves and levels[-1] == [root]

    Raises:
        ValueError: If leaves is empty
    """
    if not leaves:
        raise ValueError("Cannot build Merkle tree from empty leaf list")

    levels = [list(leaves)]
    current = levels[0]
    while len(current) > 1:
        next_level = []
        for i in range(0, len(current), 2):
            if i + 1 < len(current):
                next_level.append(hash_pair(current[i], current[i + 1]))
            else:
                next_level.append(current[i])
        levels.append(next_level)
        current = next_level

    return current[0], levels


def proof_for_index(levels: List[List[bytes]], index: int) -> List[str]:
    """Sibling path (0x hex) for leaf `index` of a tree from build_tree()."""
    if index < 0 or index >= len(levels[0]):
        raise ValueError(f"Leaf index {index} out of range (0-{len(levels[0]) - 1})")

    proof = []
    for level in levels[:-1]:
        sibling = index ^ 1
        if sibling < len(level):
            proof.append("0x" + level[sibling].hex())
        index //= 2
    return proof
