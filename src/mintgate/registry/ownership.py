"""Ownership registry — records which identity holds each issued item.

This is the collaborator the mint service hands newly reserved ids to.
It does not decide anything about supply; it only materializes ids in
the exact order the ledger produced them, exactly once each.

Also carries the thin pass-throughs that sit next to ownership in the
collection: metadata URI assembly, royalty quotes, and operator
approvals including the marketplace-proxy blanket approval.

Receipt callbacks registered with on_received run synchronously after
each item is recorded. They are recipient-supplied code and may try to
call back into the mint service; the service guards against that.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from mintgate.models.sale import MintError, MintErrorCode, normalize_identity


ReceiptCallback = Callable[[str, int], None]

# Royalty rates are expressed in basis points of the sale price.
BPS_DENOMINATOR = 10_000


class ProxyApprovalGate:
    """Boolean-gated blanket approval for a marketplace proxy operator."""

    def __init__(self, proxy_address: Optional[str] = None, enabled: bool = True) -> None:
        self._proxy = normalize_identity(proxy_address) if proxy_address else None
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def proxy_address(self) -> Optional[str]:
        return self._proxy

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)

    def allows(self, operator: str) -> bool:
        if not self._enabled or self._proxy is None:
            return False
        try:
            return normalize_identity(operator) == self._proxy
        except ValueError:
            return False


class OwnershipRegistry:
    """In-memory record of item ownership.

    Usage:
        registry = OwnershipRegistry(base_uri="ipfs://cid/")
        registry.materialize(holder, 1)
        registry.owner_of(1)      # holder
        registry.token_uri(1)     # "ipfs://cid/1.json"
    """

    def __init__(
        self,
        base_uri: str = "",
        royalty_receiver: Optional[str] = None,
        royalty_bps: int = 0,
        proxy_gate: Optional[ProxyApprovalGate] = None,
    ) -> None:
        if not 0 <= royalty_bps <= BPS_DENOMINATOR:
            raise ValueError(f"Royalty must be within 0..{BPS_DENOMINATOR} bps")
        self._owners: dict[int, str] = {}
        self._balances: dict[str, int] = {}
        self._operator_approvals: set[tuple[str, str]] = set()
        self._callbacks: list[ReceiptCallback] = []
        self._base_uri = base_uri
        self._royalty_receiver = (
            normalize_identity(royalty_receiver) if royalty_receiver else None
        )
        self._royalty_bps = royalty_bps
        self._proxy_gate = proxy_gate or ProxyApprovalGate(enabled=False)

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    def materialize(self, recipient: str, item_id: int) -> None:
        """Record a newly issued item under its recipient.

        Raises ValueError if the id was already materialized or is not
        the next id in sequence.
        """
        if item_id in self._owners:
            raise ValueError(f"Item already materialized: {item_id}")
        expected = len(self._owners) + 1
        if item_id != expected:
            raise ValueError(
                f"Items must be materialized in order: expected {expected}, got {item_id}"
            )
        owner = normalize_identity(recipient)
        self._owners[item_id] = owner
        self._balances[owner] = self._balances.get(owner, 0) + 1
        for callback in list(self._callbacks):
            callback(owner, item_id)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Undo every materialization made inside the block if it raises."""
        owners = dict(self._owners)
        balances = dict(self._balances)
        try:
            yield
        except BaseException:
            self._owners = owners
            self._balances = balances
            raise

    def on_received(self, callback: ReceiptCallback) -> None:
        """Register a callback run after each materialization."""
        self._callbacks.append(callback)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def item_count(self) -> int:
        return len(self._owners)

    def exists(self, item_id: int) -> bool:
        return item_id in self._owners

    def owner_of(self, item_id: int) -> str:
        owner = self._owners.get(item_id)
        if owner is None:
            raise MintError(
                MintErrorCode.NONEXISTENT_ITEM, f"Item does not exist: {item_id}"
            )
        return owner

    def balance_of(self, identity: str) -> int:
        return self._balances.get(normalize_identity(identity), 0)

    def items_of(self, identity: str) -> list[int]:
        owner = normalize_identity(identity)
        return [i for i, o in self._owners.items() if o == owner]

    # ------------------------------------------------------------------
    # Metadata URI
    # ------------------------------------------------------------------

    @property
    def base_uri(self) -> str:
        return self._base_uri

    def set_base_uri(self, base_uri: str) -> None:
        self._base_uri = base_uri

    def token_uri(self, item_id: int) -> str:
        """Return base URI + id + ".json", or "" when no base is set."""
        self.owner_of(item_id)
        if not self._base_uri:
            return ""
        return f"{self._base_uri}{item_id}.json"

    # ------------------------------------------------------------------
    # Royalties
    # ------------------------------------------------------------------

    def royalty_info(self, item_id: int, sale_price: int) -> tuple[Optional[str], int]:
        """Return (receiver, amount) owed on a sale of item_id.

        The amount is floored to whole wei.
        """
        self.owner_of(item_id)
        if sale_price < 0:
            raise ValueError("Sale price cannot be negative")
        return self._royalty_receiver, sale_price * self._royalty_bps // BPS_DENOMINATOR

    # ------------------------------------------------------------------
    # Operator approvals
    # ------------------------------------------------------------------

    @property
    def proxy_gate(self) -> ProxyApprovalGate:
        return self._proxy_gate

    def set_approval_for_all(self, owner: str, operator: str, approved: bool) -> None:
        pair = (normalize_identity(owner), normalize_identity(operator))
        if approved:
            self._operator_approvals.add(pair)
        else:
            self._operator_approvals.discard(pair)

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        """True for explicit approvals and for the enabled marketplace proxy."""
        if self._proxy_gate.allows(operator):
            return True
        pair = (normalize_identity(owner), normalize_identity(operator))
        return pair in self._operator_approvals
