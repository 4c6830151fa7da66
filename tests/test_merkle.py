"""Tests for sorted-pair keccak Merkle proofs."""

import pytest
from eth_utils import keccak

from veriflare_canonical.merkle import (
    build_tree,
    compute_root,
    hash_pair,
    proof_for_index,
    verify_proof,
)


def _leaves(n):
    return [keccak(text=f"leaf-{i}") for i in range(n)]


def test_hash_pair_is_order_independent():
    a, b = _leaves(2)
    assert hash_pair(a, b) == hash_pair(b, a) == keccak(min(a, b) + max(a, b))


def test_single_leaf_root_is_leaf_with_empty_proof():
    (leaf,) = _leaves(1)
    root, levels = build_tree([leaf])

    assert root == leaf
    assert proof_for_index(levels, 0) == []
    assert compute_root(leaf, []) == leaf


@pytest.mark.parametrize("count", [2, 3, 5, 8, 13])
def test_every_leaf_proves_into_root(count):
    leaves = _leaves(count)
    root, levels = build_tree(leaves)

    for i, leaf in enumerate(leaves):
        assert verify_proof(leaf, proof_for_index(levels, i), root)


def test_wrong_leaf_does_not_verify():
    leaves = _leaves(4)
    root, levels = build_tree(leaves)

    assert not verify_proof(keccak(text="intruder"), proof_for_index(levels, 0), root)


def test_proof_accepts_unprefixed_hex():
    leaves = _leaves(2)
    root, levels = build_tree(leaves)
    bare = [p[2:] for p in proof_for_index(levels, 1)]

    assert verify_proof(leaves[1], bare, root)


def test_empty_tree_and_bad_index_rejected():
    with pytest.raises(ValueError):
        build_tree([])
    _, levels = build_tree(_leaves(3))
    with pytest.raises(ValueError):
        proof_for_index(levels, 3)
