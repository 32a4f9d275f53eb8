"""Tests for the allowlist Merkle tree and proof verification."""

import pytest
from eth_account import Account

from mintgate.crypto.merkle import (
    EMPTY_ROOT,
    AllowlistTree,
    digest_hex,
    hash_pair,
    leaf_hash,
    parse_digest,
    verify_proof,
)


def _address(n: int) -> str:
    return Account.from_key(n.to_bytes(32, "big")).address


MEMBERS = [_address(i) for i in range(1, 8)]
OUTSIDER = _address(99)


class TestLeafHash:
    def test_case_insensitive(self) -> None:
        addr = MEMBERS[0]
        assert leaf_hash(addr) == leaf_hash(addr.lower())

    def test_distinct_identities_distinct_leaves(self) -> None:
        assert leaf_hash(MEMBERS[0]) != leaf_hash(MEMBERS[1])

    def test_invalid_identity_rejected(self) -> None:
        with pytest.raises(ValueError):
            leaf_hash("not-an-address")


class TestHashPair:
    def test_order_independent(self) -> None:
        a, b = leaf_hash(MEMBERS[0]), leaf_hash(MEMBERS[1])
        assert hash_pair(a, b) == hash_pair(b, a)


class TestAllowlistTree:
    def test_empty_tree_has_empty_root(self) -> None:
        assert AllowlistTree([]).root == EMPTY_ROOT

    def test_single_member_root_is_leaf(self) -> None:
        tree = AllowlistTree([MEMBERS[0]])
        assert tree.root == leaf_hash(MEMBERS[0])
        proof = tree.proof_for(MEMBERS[0])
        assert proof is not None
        assert proof.path == ()
        assert verify_proof(MEMBERS[0], proof.path, tree.root)

    def test_deterministic_regardless_of_order(self) -> None:
        assert AllowlistTree(MEMBERS).root == AllowlistTree(reversed(MEMBERS)).root

    def test_duplicates_collapse(self) -> None:
        tree = AllowlistTree(MEMBERS + [MEMBERS[0].lower()])
        assert tree.member_count == len(MEMBERS)
        assert tree.root == AllowlistTree(MEMBERS).root

    def test_every_member_verifies(self) -> None:
        """Odd-sized tree: promoted nodes still produce valid proofs."""
        tree = AllowlistTree(MEMBERS)
        for member in MEMBERS:
            proof = tree.proof_for(member)
            assert proof is not None
            assert proof.root == tree.root
            assert verify_proof(member, proof.path, tree.root)

    def test_non_member_has_no_proof(self) -> None:
        assert AllowlistTree(MEMBERS).proof_for(OUTSIDER) is None


class TestVerifyProof:
    def test_non_member_cannot_reuse_member_proof(self) -> None:
        tree = AllowlistTree(MEMBERS)
        proof = tree.proof_for(MEMBERS[2])
        assert not verify_proof(OUTSIDER, proof.path, tree.root)

    def test_tampered_proof_element_fails(self) -> None:
        tree = AllowlistTree(MEMBERS)
        proof = tree.proof_for(MEMBERS[3])
        for i in range(len(proof.path)):
            path = list(proof.path)
            path[i] = bytes([path[i][0] ^ 0x01]) + path[i][1:]
            assert not verify_proof(MEMBERS[3], path, tree.root)

    def test_tampered_root_fails(self) -> None:
        tree = AllowlistTree(MEMBERS)
        proof = tree.proof_for(MEMBERS[3])
        bad_root = tree.root[:-1] + bytes([tree.root[-1] ^ 0x01])
        assert not verify_proof(MEMBERS[3], proof.path, bad_root)

    def test_proof_against_replaced_root_fails(self) -> None:
        old = AllowlistTree(MEMBERS)
        new = AllowlistTree(MEMBERS[:3])
        proof = old.proof_for(MEMBERS[5])
        assert not verify_proof(MEMBERS[5], proof.path, new.root)

    def test_empty_root_never_verifies(self) -> None:
        assert not verify_proof(MEMBERS[0], [], EMPTY_ROOT)

    def test_malformed_digest_fails(self) -> None:
        tree = AllowlistTree(MEMBERS)
        assert not verify_proof(MEMBERS[0], [b"\x01" * 31], tree.root)

    def test_invalid_identity_fails(self) -> None:
        tree = AllowlistTree(MEMBERS)
        assert not verify_proof("0x1234", [], tree.root)


class TestDigestParsing:
    def test_hex_roundtrip(self) -> None:
        root = AllowlistTree(MEMBERS).root
        assert parse_digest(digest_hex(root)) == root

    def test_wrong_length_rejected(self) -> None:
        with pytest.raises(ValueError):
            parse_digest("0x" + "ab" * 31)

    def test_non_hex_rejected(self) -> None:
        with pytest.raises(ValueError):
            parse_digest("0x" + "zz" * 32)
