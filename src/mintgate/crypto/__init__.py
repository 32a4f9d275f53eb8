"""Cryptographic primitives — allowlist Merkle tree and proof verification."""

from mintgate.crypto.merkle import AllowlistProof, AllowlistTree, verify_proof

__all__ = ["AllowlistProof", "AllowlistTree", "verify_proof"]
