"""Sale gating — phase controller and payment validation."""

from mintgate.sale.payment import validate_payment, validate_quantity
from mintgate.sale.phase_controller import PhaseController

__all__ = ["PhaseController", "validate_payment", "validate_quantity"]
