"""Policy resolver — loads and validates the persisted mint configuration.

The configuration surface is small: supply limits, prices, royalty rate,
the marketplace proxy operator, and the metadata base URI. Prices are
written in ether as decimal strings and resolved to integer wei.

Invalid configuration is rejected at load time (fail-closed): a gift
pool larger than total supply, a non-positive per-phase cap, a negative
price, or a royalty above 100% all raise ValueError.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional

from web3 import Web3

from mintgate.models.sale import normalize_identity


PARAMS_FILE = "mint_params.json"

DEFAULT_MAX_TOTAL = 9999
DEFAULT_MAX_GIFTED = 666
DEFAULT_MAX_PER_PHASE = 3
DEFAULT_PUBLIC_PRICE_ETH = "0.07"
DEFAULT_SECONDARY_PRICE_ETH = "0.05"
DEFAULT_ROYALTY_BPS = 500


class PolicyValidationError(ValueError):
    """Raised with every violation found in a mint configuration."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("Invalid mint configuration: " + "; ".join(errors))
        self.errors = errors


@dataclass(frozen=True)
class MintPolicy:
    """Resolved, validated mint parameters."""
    max_total: int
    max_gifted: int
    max_per_phase: int
    public_price_wei: int
    secondary_price_wei: int
    royalty_bps: int = DEFAULT_ROYALTY_BPS
    proxy_registry: Optional[str] = None
    proxy_approval_enabled: bool = True
    base_uri: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PolicyResolver:
    """Builds a MintPolicy from a config directory or from defaults.

    Usage:
        policy = PolicyResolver.from_config_dir(Path("config")).policy
        policy = PolicyResolver.defaults().policy
    """

    def __init__(self, params: dict[str, Any]) -> None:
        self._policy = self._resolve(params)

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        path = Path(config_dir) / PARAMS_FILE
        with path.open("r", encoding="utf-8") as handle:
            return cls(json.load(handle))

    @classmethod
    def defaults(cls) -> PolicyResolver:
        return cls({})

    @property
    def policy(self) -> MintPolicy:
        return self._policy

    @staticmethod
    def _resolve(params: dict[str, Any]) -> MintPolicy:
        supply = params.get("supply", {})
        pricing = params.get("pricing", {})
        royalty = params.get("royalty", {})
        marketplace = params.get("marketplace", {})
        metadata = params.get("metadata", {})

        errors: list[str] = []
        max_total = _int_field(supply, "MAX_TOTAL", DEFAULT_MAX_TOTAL, errors)
        max_gifted = _int_field(supply, "MAX_GIFTED", DEFAULT_MAX_GIFTED, errors)
        max_per_phase = _int_field(
            supply, "MAX_PER_PHASE", DEFAULT_MAX_PER_PHASE, errors,
        )
        royalty_bps = _int_field(royalty, "ROYALTY_BPS", DEFAULT_ROYALTY_BPS, errors)

        if max_total <= 0:
            errors.append(f"MAX_TOTAL must be > 0, got {max_total}")
        if max_gifted < 0:
            errors.append(f"MAX_GIFTED must be >= 0, got {max_gifted}")
        if max_gifted > max_total:
            errors.append(
                f"MAX_GIFTED ({max_gifted}) cannot exceed MAX_TOTAL ({max_total})"
            )
        if max_per_phase <= 0:
            errors.append(f"MAX_PER_PHASE must be > 0, got {max_per_phase}")
        elif 0 <= max_gifted <= max_total and max_per_phase > max_total - max_gifted:
            errors.append(
                f"MAX_PER_PHASE ({max_per_phase}) exceeds the public pool "
                f"({max_total - max_gifted})"
            )
        if not 0 <= royalty_bps <= 10_000:
            errors.append(f"ROYALTY_BPS must be within 0..10000, got {royalty_bps}")

        public_price = _ether_to_wei(
            pricing.get("PUBLIC_PRICE_ETH", DEFAULT_PUBLIC_PRICE_ETH),
            "PUBLIC_PRICE_ETH", errors,
        )
        secondary_price = _ether_to_wei(
            pricing.get("SECONDARY_PRICE_ETH", DEFAULT_SECONDARY_PRICE_ETH),
            "SECONDARY_PRICE_ETH", errors,
        )

        proxy = marketplace.get("PROXY_REGISTRY") or None
        if proxy is not None:
            try:
                proxy = normalize_identity(proxy)
            except ValueError as e:
                errors.append(f"PROXY_REGISTRY: {e}")

        if errors:
            raise PolicyValidationError(errors)

        return MintPolicy(
            max_total=max_total,
            max_gifted=max_gifted,
            max_per_phase=max_per_phase,
            public_price_wei=public_price,
            secondary_price_wei=secondary_price,
            royalty_bps=royalty_bps,
            proxy_registry=proxy,
            proxy_approval_enabled=bool(
                marketplace.get("PROXY_APPROVAL_ENABLED", True)
            ),
            base_uri=str(metadata.get("BASE_URI", "")),
        )


def _int_field(section: dict[str, Any], name: str, default: int, errors: list[str]) -> int:
    value = section.get(name, default)
    if isinstance(value, bool) or not isinstance(value, int):
        errors.append(f"{name} must be an integer, got {value!r}")
        return default
    return value


def _ether_to_wei(value: Any, name: str, errors: list[str]) -> int:
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        errors.append(f"{name} is not a decimal amount: {value!r}")
        return 0
    if not amount.is_finite():
        errors.append(f"{name} is not a decimal amount: {value!r}")
        return 0
    if amount < 0:
        errors.append(f"{name} must be >= 0, got {value}")
        return 0
    return int(Web3.to_wei(amount, "ether"))
