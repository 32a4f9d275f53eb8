"""Core data models for mintgate."""

from mintgate.models.sale import (
    ALLOWLIST_PHASES,
    MintCheck,
    MintError,
    MintErrorCode,
    MintRequest,
    PhaseMintKey,
    SalePhase,
    normalize_identity,
)

__all__ = [
    "ALLOWLIST_PHASES",
    "MintCheck",
    "MintError",
    "MintErrorCode",
    "MintRequest",
    "PhaseMintKey",
    "SalePhase",
    "normalize_identity",
]
