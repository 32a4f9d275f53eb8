"""Tests for mintgate CLI — proves CLI dispatches correctly."""

import json
from pathlib import Path

import pytest
from eth_account import Account
from web3 import Web3

from mintgate.cli import build_parser, main
from mintgate.models.sale import SalePhase
from mintgate.persistence.event_log import EventLog
from mintgate.policy.resolver import PolicyResolver
from mintgate.service import MintService


def _address(n: int) -> str:
    return Account.from_key(n.to_bytes(32, "big")).address


MEMBERS = [_address(i) for i in range(1, 6)]
OUTSIDER = _address(50)


@pytest.fixture
def allowlist_file(tmp_path: Path) -> Path:
    path = tmp_path / "primary.txt"
    lines = ["# primary allowlist", ""] + [f"{m}  # member" for m in MEMBERS]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class TestCLIParsing:
    def test_params_command(self) -> None:
        args = build_parser().parse_args(["params"])
        assert args.command == "params"

    def test_config_override(self, tmp_path: Path) -> None:
        args = build_parser().parse_args(["--config", str(tmp_path), "params"])
        assert args.config == tmp_path

    def test_verify_proof_command(self) -> None:
        args = build_parser().parse_args([
            "verify-proof", "--address", MEMBERS[0],
            "--root", "0x" + "11" * 32, "--proof", "0x" + "22" * 32,
        ])
        assert args.command == "verify-proof"
        assert args.proof == ["0x" + "22" * 32]

    def test_verify_proof_without_siblings(self) -> None:
        args = build_parser().parse_args([
            "verify-proof", "--address", MEMBERS[0], "--root", "0x" + "11" * 32,
        ])
        assert args.proof == []


class TestCLIExecution:
    def test_no_command_shows_help(self) -> None:
        assert main([]) == 0

    def test_params_runs(self, capsys) -> None:
        assert main(["params"]) == 0
        params = json.loads(capsys.readouterr().out)
        assert params["max_total"] == 9999
        assert params["max_gifted"] == 666
        assert params["public_price_wei"] == Web3.to_wei("0.07", "ether")

    def test_params_missing_config(self, tmp_path: Path) -> None:
        assert main(["--config", str(tmp_path), "params"]) == 1

    def test_check_invariants_runs(self) -> None:
        assert main(["check-invariants"]) == 0

    def test_check_invariants_reports_bad_config(self, tmp_path: Path, capsys) -> None:
        (tmp_path / "mint_params.json").write_text(json.dumps({
            "supply": {"MAX_TOTAL": "lots", "MAX_GIFTED": 10, "MAX_PER_PHASE": 3},
        }))
        assert main(["--config", str(tmp_path), "check-invariants"]) == 1
        assert "MAX_TOTAL must be an integer" in capsys.readouterr().out

    def test_check_invariants_agrees_with_params(self, tmp_path: Path) -> None:
        (tmp_path / "mint_params.json").write_text(json.dumps({
            "supply": {"MAX_TOTAL": 10, "MAX_GIFTED": 8, "MAX_PER_PHASE": 3},
        }))
        assert main(["--config", str(tmp_path), "check-invariants"]) == 1
        assert main(["--config", str(tmp_path), "params"]) == 1

    def test_check_invariants_missing_config(self, tmp_path: Path) -> None:
        assert main(["--config", str(tmp_path), "check-invariants"]) == 1

    def test_allowlist_root(self, allowlist_file: Path, capsys) -> None:
        assert main(["allowlist-root", "--file", str(allowlist_file)]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["members"] == 5
        assert out["root"].startswith("0x") and len(out["root"]) == 66

    def test_proof_round_trip(self, allowlist_file: Path, capsys) -> None:
        assert main([
            "allowlist-proof", "--file", str(allowlist_file),
            "--address", MEMBERS[2],
        ]) == 0
        proof = json.loads(capsys.readouterr().out)
        assert main([
            "verify-proof", "--address", MEMBERS[2],
            "--root", proof["root"], "--proof", *proof["proof"],
        ]) == 0
        assert main([
            "verify-proof", "--address", OUTSIDER,
            "--root", proof["root"], "--proof", *proof["proof"],
        ]) == 1

    def test_proof_for_outsider_fails(self, allowlist_file: Path) -> None:
        assert main([
            "allowlist-proof", "--file", str(allowlist_file),
            "--address", OUTSIDER,
        ]) == 1

    def test_verify_rejects_malformed_root(self) -> None:
        assert main([
            "verify-proof", "--address", MEMBERS[0], "--root", "0xzz",
        ]) == 1

    def test_audit_missing_file(self, tmp_path: Path) -> None:
        assert main(["audit", "--events", str(tmp_path / "none.jsonl")]) == 1

    def test_audit_reconciles_counters(self, tmp_path: Path, capsys) -> None:
        events = tmp_path / "events.jsonl"
        admin = _address(100)
        policy = PolicyResolver.defaults().policy
        service = MintService(policy, admin=admin, event_log=EventLog(storage_path=events))
        service.set_phase(admin, SalePhase.PUBLIC)
        service.mint_public(MEMBERS[0], 2, 2 * policy.public_price_wei)
        service.mint_public(MEMBERS[0], 2, 2 * policy.public_price_wei)
        service.gift_to_addresses(admin, [MEMBERS[1]])

        assert main(["audit", "--events", str(events)]) == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["total_issued"] == 3
        assert summary["total_gifted"] == 1
        assert summary["phase_counts"] == {"public": {MEMBERS[0]: 2}}
        assert summary["rejected"] == {"phase_cap_exceeded": 1}

    def test_audit_detects_tampering(self, tmp_path: Path) -> None:
        events = tmp_path / "events.jsonl"
        admin = _address(100)
        service = MintService(
            PolicyResolver.defaults().policy, admin=admin,
            event_log=EventLog(storage_path=events),
        )
        service.set_phase(admin, SalePhase.PUBLIC)
        events.write_text(
            events.read_text(encoding="utf-8").replace('"public"', '"closed"'),
            encoding="utf-8",
        )
        assert main(["audit", "--events", str(events)]) == 1
