"""Issuance accounting."""

from mintgate.ledger.supply import SupplyLedger

__all__ = ["SupplyLedger"]
