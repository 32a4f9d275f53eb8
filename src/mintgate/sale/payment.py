"""Payment validation — attached value must equal price x quantity exactly.

No overpayment is accepted and there is no refund path, so an exact
match is the only passing outcome. Amounts are integer wei.
"""

from __future__ import annotations

from mintgate.models.sale import MintCheck, MintErrorCode


# Payments are carried in the chain's 256-bit unsigned value width.
UINT256_MAX = 2**256 - 1


def checked_mul(a: int, b: int) -> int:
    """Multiply two non-negative ints, raising OverflowError past uint256."""
    if a < 0 or b < 0:
        raise OverflowError(f"Negative operand in payment arithmetic: {a} * {b}")
    product = a * b
    if product > UINT256_MAX:
        raise OverflowError(f"Payment overflow: {a} * {b}")
    return product


def validate_quantity(quantity: int) -> MintCheck:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        return MintCheck.failed(
            MintErrorCode.INVALID_QUANTITY,
            f"Quantity must be a positive integer, got {quantity!r}",
        )
    return MintCheck.passed()


def validate_payment(attached: int, price: int, quantity: int) -> MintCheck:
    """Check that attached == price * quantity."""
    try:
        expected = checked_mul(price, quantity)
    except OverflowError as e:
        return MintCheck.failed(MintErrorCode.PAYMENT_MISMATCH, str(e))
    if attached != expected:
        return MintCheck.failed(
            MintErrorCode.PAYMENT_MISMATCH,
            f"Attached payment {attached} wei != required {expected} wei "
            f"({quantity} x {price})",
        )
    return MintCheck.passed()
