"""Sale models — phases, mint requests, lookup keys and failure codes.

A mint request is ephemeral: it is built per call, consumed by the
service, and discarded. The only durable state lives in the phase
controller and the supply ledger.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional

from web3 import Web3


class SalePhase(str, enum.Enum):
    """The single globally active sale mode."""
    PUBLIC = "public"
    PRIMARY_ALLOWLIST = "primary_allowlist"
    SECONDARY_ALLOWLIST = "secondary_allowlist"
    CLOSED = "closed"


# Phases whose mint entry point requires a membership proof.
ALLOWLIST_PHASES = frozenset({
    SalePhase.PRIMARY_ALLOWLIST,
    SalePhase.SECONDARY_ALLOWLIST,
})


class MintErrorCode(str, enum.Enum):
    """Classification of rejected requests. All are terminal."""
    UNAUTHORIZED = "unauthorized"
    PHASE_MISMATCH = "phase_mismatch"
    PROOF_INVALID = "proof_invalid"
    PAYMENT_MISMATCH = "payment_mismatch"
    SUPPLY_EXCEEDED = "supply_exceeded"
    PHASE_CAP_EXCEEDED = "phase_cap_exceeded"
    GIFT_CAP_EXCEEDED = "gift_cap_exceeded"
    NONEXISTENT_ITEM = "nonexistent_item"
    REENTRANT_CALL = "reentrant_call"
    INVALID_QUANTITY = "invalid_quantity"
    INVALID_IDENTITY = "invalid_identity"
    RECEIPT_REJECTED = "receipt_rejected"


class MintError(Exception):
    """Raised by ledger and registry components when a check fails."""

    def __init__(self, code: MintErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class MintCheck:
    """Outcome of one ordered validation step."""
    ok: bool
    code: Optional[MintErrorCode] = None
    message: str = ""

    @staticmethod
    def passed() -> MintCheck:
        return _PASSED

    @staticmethod
    def failed(code: MintErrorCode, message: str) -> MintCheck:
        return MintCheck(ok=False, code=code, message=message)

    def raise_if_failed(self) -> None:
        if not self.ok:
            raise MintError(self.code, self.message)  # type: ignore[arg-type]


_PASSED = MintCheck(ok=True)


def normalize_identity(identity: str) -> str:
    """Return the checksummed form of an address identity.

    Raises ValueError for anything that is not a 20-byte hex address,
    so the same holder can never appear under two spellings.
    """
    if not isinstance(identity, str) or not Web3.is_address(identity):
        raise ValueError(f"Invalid identity address: {identity!r}")
    return Web3.to_checksum_address(identity)


@dataclass(frozen=True)
class PhaseMintKey:
    """Lookup key for per-identity, per-phase mint counts."""
    identity: str
    phase: SalePhase

    @staticmethod
    def of(identity: str, phase: SalePhase) -> PhaseMintKey:
        return PhaseMintKey(identity=normalize_identity(identity), phase=phase)


@dataclass(frozen=True)
class MintRequest:
    """A single incoming mint request.

    payment is denominated in wei. proof is the ordered sibling path
    for allowlisted phases and empty otherwise.
    """
    identity: str
    quantity: int
    phase: SalePhase
    payment: int
    proof: tuple[bytes, ...] = field(default_factory=tuple)
