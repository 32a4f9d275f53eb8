"""Allowlist Merkle tree and membership verification.

Uses keccak-256 as the hash function so that roots and proofs are
interchangeable with the on-chain verifier. A leaf is the keccak-256
of the 20 raw address bytes (``abi.encodePacked(address)``).

Pairs are hashed in sorted order (smaller digest first). This is the
commit scheme: it makes a proof a plain list of sibling digests with no
left/right markers. Leaves are sorted before tree construction so the
root is independent of insertion order. An odd node at the end of a
level is promoted unchanged.

verify_proof is pure and stateless. It is run on every request since
the committed root may change between calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from web3 import Web3

from mintgate.models.sale import normalize_identity


DIGEST_SIZE = 32

# Root used before any allowlist is committed. No proof can fold to it.
EMPTY_ROOT = b"\x00" * DIGEST_SIZE


@dataclass(frozen=True)
class AllowlistProof:
    """An inclusion proof for a single identity."""
    identity: str
    leaf: bytes
    path: tuple[bytes, ...]
    root: bytes

    def to_hex(self) -> list[str]:
        return [digest_hex(p) for p in self.path]


def leaf_hash(identity: str) -> bytes:
    """Hash an address identity into its leaf digest."""
    address = normalize_identity(identity)
    return bytes(Web3.solidity_keccak(["address"], [address]))


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Hash two nodes together, smaller digest first."""
    if a <= b:
        return bytes(Web3.keccak(a + b))
    return bytes(Web3.keccak(b + a))


def compute_root(leaf: bytes, proof: Sequence[bytes]) -> bytes:
    """Fold a proof path into a leaf, in order."""
    current = leaf
    for sibling in proof:
        current = hash_pair(current, sibling)
    return current


def verify_proof(identity: str, proof: Sequence[bytes], root: bytes) -> bool:
    """Return True iff the proof folds the identity's leaf into root.

    Malformed identities or digests never verify.
    """
    if len(root) != DIGEST_SIZE or root == EMPTY_ROOT:
        return False
    if any(len(p) != DIGEST_SIZE for p in proof):
        return False
    try:
        leaf = leaf_hash(identity)
    except ValueError:
        return False
    return compute_root(leaf, proof) == root


class AllowlistTree:
    """A deterministic sorted-pair Merkle tree over address identities.

    Usage:
        tree = AllowlistTree(["0xabc...", "0xdef..."])
        root = tree.root
        proof = tree.proof_for("0xabc...")
        assert verify_proof("0xabc...", proof.path, root)
    """

    def __init__(self, identities: Iterable[str]) -> None:
        members = {normalize_identity(i) for i in identities}
        self._leaves: dict[bytes, str] = {leaf_hash(m): m for m in members}
        self._levels: list[list[bytes]] = self._build(sorted(self._leaves))

    @staticmethod
    def _build(leaves: list[bytes]) -> list[list[bytes]]:
        if not leaves:
            return [[]]
        levels = [leaves]
        current = leaves
        while len(current) > 1:
            next_level: list[bytes] = []
            for i in range(0, len(current), 2):
                if i + 1 < len(current):
                    next_level.append(hash_pair(current[i], current[i + 1]))
                else:
                    next_level.append(current[i])  # promoted
            levels.append(next_level)
            current = next_level
        return levels

    @property
    def member_count(self) -> int:
        return len(self._leaves)

    @property
    def root(self) -> bytes:
        """The committed root. An empty tree has the empty root."""
        top = self._levels[-1]
        return top[0] if top else EMPTY_ROOT

    def contains(self, identity: str) -> bool:
        try:
            return leaf_hash(identity) in self._leaves
        except ValueError:
            return False

    def proof_for(self, identity: str) -> Optional[AllowlistProof]:
        """Generate the inclusion proof for an identity.

        Returns None if the identity is not a member.
        """
        if not self.contains(identity):
            return None
        leaf = leaf_hash(identity)
        idx = self._levels[0].index(leaf)
        path: list[bytes] = []
        for level in self._levels[:-1]:
            sibling_idx = idx ^ 1
            if sibling_idx < len(level):
                path.append(level[sibling_idx])
            idx //= 2
        return AllowlistProof(
            identity=normalize_identity(identity),
            leaf=leaf,
            path=tuple(path),
            root=self.root,
        )


def digest_hex(digest: bytes) -> str:
    """Render a digest as 0x-prefixed lowercase hex."""
    return "0x" + digest.hex()


def parse_digest(value: str) -> bytes:
    """Parse a 0x-prefixed (or bare) 32-byte hex digest.

    Raises ValueError for anything else.
    """
    raw = value.removeprefix("0x").removeprefix("0X")
    try:
        digest = bytes.fromhex(raw)
    except ValueError:
        raise ValueError(f"Digest is not valid hex: {value!r}") from None
    if len(digest) != DIGEST_SIZE:
        raise ValueError(
            f"Digest must be {DIGEST_SIZE} bytes, got {len(digest)}: {value!r}"
        )
    return digest
