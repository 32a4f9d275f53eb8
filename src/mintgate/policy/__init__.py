"""Mint configuration."""

from mintgate.policy.resolver import MintPolicy, PolicyResolver, PolicyValidationError

__all__ = ["MintPolicy", "PolicyResolver", "PolicyValidationError"]
