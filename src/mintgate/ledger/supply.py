"""Supply ledger — total, gifted and per-phase issuance counters.

All three pools (public, allowlist, gift) draw ids from one monotonic
counter, so ids are contiguous from 1 with no gaps and no reuse.

The gift pool is carved out of total supply. Public and allowlist
issuance may only use MAX_TOTAL - MAX_GIFTED items, plus whatever part
of the gift pool has already been consumed by gifts:

    total_issued <= max_total - max_gifted + total_gifted
    total_gifted <= max_gifted
    phase_count[key] <= max_per_phase

Counters only increase. There is no decrement operation: an issued
item never returns to the pool. Each reserve_* call checks everything
first and writes only when all checks pass. transaction() discards a
reservation whose request failed before completing. Callers serialize
access (see MintService).
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from mintgate.models.sale import MintCheck, MintErrorCode, PhaseMintKey, SalePhase


class SupplyLedger:
    """In-memory issuance counters.

    Usage:
        ledger = SupplyLedger(max_total=9999, max_gifted=666, max_per_phase=3)
        ids = ledger.reserve_issuance(holder, SalePhase.PUBLIC, 2)   # [1, 2]
        ids = ledger.reserve_gift(1)                                # [3]
    """

    def __init__(self, max_total: int, max_gifted: int, max_per_phase: int) -> None:
        if max_gifted > max_total:
            raise ValueError(
                f"Gift pool ({max_gifted}) cannot exceed total supply ({max_total})"
            )
        if max_total <= 0 or max_gifted < 0 or max_per_phase <= 0:
            raise ValueError("Supply limits must be positive")
        self._max_total = max_total
        self._max_gifted = max_gifted
        self._max_per_phase = max_per_phase
        self._total_issued = 0
        self._total_gifted = 0
        self._phase_counts: dict[PhaseMintKey, int] = {}

    @property
    def total_issued(self) -> int:
        return self._total_issued

    @property
    def total_gifted(self) -> int:
        return self._total_gifted

    @property
    def max_per_phase(self) -> int:
        return self._max_per_phase

    @property
    def public_capacity(self) -> int:
        """Items still available to public and allowlist minting."""
        return self._public_ceiling() - self._total_issued

    @property
    def gift_capacity(self) -> int:
        return min(
            self._max_gifted - self._total_gifted,
            self._max_total - self._total_issued,
        )

    def phase_count(self, identity: str, phase: SalePhase) -> int:
        return self._phase_counts.get(PhaseMintKey.of(identity, phase), 0)

    def check_issuance(
        self, identity: str, phase: SalePhase, quantity: int
    ) -> MintCheck:
        """Check a public/allowlist issuance without mutating anything."""
        if quantity <= 0:
            return MintCheck.failed(
                MintErrorCode.INVALID_QUANTITY,
                f"Quantity must be positive, got {quantity}",
            )
        if self._total_issued + quantity > self._public_ceiling():
            return MintCheck.failed(
                MintErrorCode.SUPPLY_EXCEEDED,
                f"Requested {quantity}, only {self.public_capacity} left "
                f"outside the gift pool",
            )
        key = PhaseMintKey.of(identity, phase)
        already = self._phase_counts.get(key, 0)
        if already + quantity > self._max_per_phase:
            return MintCheck.failed(
                MintErrorCode.PHASE_CAP_EXCEEDED,
                f"{key.identity} has minted {already} in {phase.value}; "
                f"{quantity} more exceeds cap of {self._max_per_phase}",
            )
        return MintCheck.passed()

    def check_gift(self, quantity: int) -> MintCheck:
        """Check a gift reservation without mutating anything."""
        if quantity <= 0:
            return MintCheck.failed(
                MintErrorCode.INVALID_QUANTITY,
                f"Quantity must be positive, got {quantity}",
            )
        if self._total_gifted + quantity > self._max_gifted:
            return MintCheck.failed(
                MintErrorCode.GIFT_CAP_EXCEEDED,
                f"Requested {quantity} gifts, only "
                f"{self._max_gifted - self._total_gifted} left in gift pool",
            )
        if self._total_issued + quantity > self._max_total:
            return MintCheck.failed(
                MintErrorCode.SUPPLY_EXCEEDED,
                f"Requested {quantity}, only "
                f"{self._max_total - self._total_issued} left in total supply",
            )
        return MintCheck.passed()

    def reserve_issuance(
        self, identity: str, phase: SalePhase, quantity: int
    ) -> list[int]:
        """Commit a public/allowlist issuance and return the new ids.

        Raises MintError (SUPPLY_EXCEEDED or PHASE_CAP_EXCEEDED) with no
        mutation if the request does not fit.
        """
        self.check_issuance(identity, phase, quantity).raise_if_failed()
        key = PhaseMintKey.of(identity, phase)
        self._phase_counts[key] = self._phase_counts.get(key, 0) + quantity
        return self._advance(quantity)

    def reserve_gift(self, quantity: int) -> list[int]:
        """Commit a gift reservation and return the new ids.

        Gifts do not touch any per-phase count.
        """
        self.check_gift(quantity).raise_if_failed()
        self._total_gifted += quantity
        return self._advance(quantity)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Scope a reservation together with the work that depends on it.

        If the enclosed block raises, the counters are restored to their
        values on entry and the exception propagates. A reservation only
        becomes permanent once the whole request has completed.
        """
        saved = (self._total_issued, self._total_gifted, dict(self._phase_counts))
        try:
            yield
        except BaseException:
            self._total_issued, self._total_gifted, self._phase_counts = saved
            raise

    def snapshot(self) -> dict[str, Any]:
        """Return a serializable view of the counters."""
        return {
            "total_issued": self._total_issued,
            "total_gifted": self._total_gifted,
            "public_capacity": self.public_capacity,
            "gift_capacity": self.gift_capacity,
            "phase_counts": [
                {
                    "identity": key.identity,
                    "phase": key.phase.value,
                    "count": count,
                }
                for key, count in sorted(
                    self._phase_counts.items(),
                    key=lambda kv: (kv[0].identity, kv[0].phase.value),
                )
            ],
        }

    def _public_ceiling(self) -> int:
        return self._max_total - self._max_gifted + self._total_gifted

    def _advance(self, quantity: int) -> list[int]:
        first = self._total_issued + 1
        self._total_issued += quantity
        return list(range(first, self._total_issued + 1))
