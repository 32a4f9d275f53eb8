"""Item ownership collaborator."""

from mintgate.registry.ownership import OwnershipRegistry, ProxyApprovalGate

__all__ = ["OwnershipRegistry", "ProxyApprovalGate"]
