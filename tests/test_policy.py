"""Tests for the policy resolver."""

import json
from pathlib import Path

import pytest
from web3 import Web3

from mintgate.policy.resolver import PolicyResolver, PolicyValidationError


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


class TestDefaults:
    def test_default_constants(self) -> None:
        policy = PolicyResolver.defaults().policy
        assert policy.max_total == 9999
        assert policy.max_gifted == 666
        assert policy.max_per_phase == 3
        assert policy.public_price_wei == Web3.to_wei("0.07", "ether")
        assert policy.secondary_price_wei == Web3.to_wei("0.05", "ether")
        assert policy.royalty_bps == 500


class TestConfigDir:
    def test_loads_shipped_config(self) -> None:
        policy = PolicyResolver.from_config_dir(CONFIG_DIR).policy
        assert policy.max_total == 9999
        assert policy.max_gifted == 666
        assert policy.proxy_registry == Web3.to_checksum_address(
            "0xa5409ec958c83c3f309868babaca7c86dcb077c1"
        )

    def test_missing_dir_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            PolicyResolver.from_config_dir(tmp_path)


class TestValidation:
    def test_gift_pool_larger_than_supply(self) -> None:
        with pytest.raises(ValueError, match="MAX_GIFTED"):
            PolicyResolver({"supply": {"MAX_TOTAL": 10, "MAX_GIFTED": 11}})

    def test_zero_phase_cap(self) -> None:
        with pytest.raises(ValueError, match="MAX_PER_PHASE"):
            PolicyResolver({"supply": {"MAX_PER_PHASE": 0}})

    def test_negative_price(self) -> None:
        with pytest.raises(ValueError, match="PUBLIC_PRICE_ETH"):
            PolicyResolver({"pricing": {"PUBLIC_PRICE_ETH": "-0.01"}})

    def test_non_decimal_price(self) -> None:
        with pytest.raises(ValueError, match="SECONDARY_PRICE_ETH"):
            PolicyResolver({"pricing": {"SECONDARY_PRICE_ETH": "cheap"}})

    def test_royalty_over_100_percent(self) -> None:
        with pytest.raises(ValueError, match="ROYALTY_BPS"):
            PolicyResolver({"royalty": {"ROYALTY_BPS": 10_001}})

    def test_bad_proxy_address(self) -> None:
        with pytest.raises(ValueError, match="PROXY_REGISTRY"):
            PolicyResolver({"marketplace": {"PROXY_REGISTRY": "0x1234"}})

    def test_phase_cap_larger_than_public_pool(self) -> None:
        with pytest.raises(ValueError, match="public pool"):
            PolicyResolver({"supply": {"MAX_TOTAL": 10, "MAX_GIFTED": 8, "MAX_PER_PHASE": 3}})

    def test_non_integer_limit(self) -> None:
        with pytest.raises(ValueError, match="MAX_TOTAL must be an integer"):
            PolicyResolver({"supply": {"MAX_TOTAL": "lots"}})

    def test_non_finite_price(self) -> None:
        with pytest.raises(ValueError, match="PUBLIC_PRICE_ETH"):
            PolicyResolver({"pricing": {"PUBLIC_PRICE_ETH": "NaN"}})

    def test_every_violation_reported(self) -> None:
        with pytest.raises(PolicyValidationError) as excinfo:
            PolicyResolver({
                "supply": {"MAX_TOTAL": 10, "MAX_GIFTED": 11},
                "royalty": {"ROYALTY_BPS": -1},
            })
        assert len(excinfo.value.errors) == 2

    def test_custom_config_file(self, tmp_path: Path) -> None:
        (tmp_path / "mint_params.json").write_text(json.dumps({
            "supply": {"MAX_TOTAL": 100, "MAX_GIFTED": 10, "MAX_PER_PHASE": 5},
            "pricing": {"PUBLIC_PRICE_ETH": "1", "SECONDARY_PRICE_ETH": "0.5"},
        }))
        policy = PolicyResolver.from_config_dir(tmp_path).policy
        assert policy.max_per_phase == 5
        assert policy.public_price_wei == 10**18
        assert policy.secondary_price_wei == 5 * 10**17
