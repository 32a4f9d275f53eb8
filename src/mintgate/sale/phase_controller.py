"""Sale phase controller — holds the active phase and allowlist commitments.

Rules:
- Exactly one phase is active at a time. Initial phase is CLOSED.
- Transitions are unconditional and total: any phase can follow any
  other. There is no terminal phase.
- Each allowlisted phase has its own committed root. Replacing a root
  invalidates every proof built against the previous set.

Admin authorization is enforced by the service layer, not here.
"""

from __future__ import annotations

from mintgate.crypto.merkle import DIGEST_SIZE, EMPTY_ROOT
from mintgate.models.sale import (
    ALLOWLIST_PHASES,
    MintCheck,
    MintErrorCode,
    SalePhase,
)


class PhaseController:
    """Owns the single global sale phase.

    Usage:
        controller = PhaseController()
        controller.set_phase(SalePhase.PUBLIC)
        check = controller.require_active_phase(SalePhase.PUBLIC)
    """

    def __init__(self) -> None:
        self._phase = SalePhase.CLOSED
        self._commitments: dict[SalePhase, bytes] = {
            phase: EMPTY_ROOT for phase in ALLOWLIST_PHASES
        }

    def current_phase(self) -> SalePhase:
        return self._phase

    def set_phase(self, new: SalePhase) -> SalePhase:
        """Overwrite the active phase. Returns the previous phase."""
        previous = self._phase
        self._phase = SalePhase(new)
        return previous

    def require_active_phase(self, expected: SalePhase) -> MintCheck:
        if self._phase != expected:
            return MintCheck.failed(
                MintErrorCode.PHASE_MISMATCH,
                f"Sale phase is {self._phase.value}, request targets {expected.value}",
            )
        return MintCheck.passed()

    def commitment(self, phase: SalePhase) -> bytes:
        """Return the committed root for an allowlisted phase."""
        self._require_allowlist_phase(phase)
        return self._commitments[phase]

    def set_commitment(self, phase: SalePhase, root: bytes) -> bytes:
        """Replace the committed root for an allowlisted phase.

        Returns the previous root.
        """
        self._require_allowlist_phase(phase)
        if len(root) != DIGEST_SIZE:
            raise ValueError(
                f"Commitment must be {DIGEST_SIZE} bytes, got {len(root)}"
            )
        previous = self._commitments[phase]
        self._commitments[phase] = bytes(root)
        return previous

    @staticmethod
    def _require_allowlist_phase(phase: SalePhase) -> None:
        if phase not in ALLOWLIST_PHASES:
            raise ValueError(f"Phase {phase.value} has no allowlist commitment")
