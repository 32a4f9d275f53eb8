"""mintgate CLI — operator tooling for the issuance engine.

Usage:
    python -m mintgate.cli params
    python -m mintgate.cli allowlist-root --file primary.txt
    python -m mintgate.cli allowlist-proof --file primary.txt --address 0xabc...
    python -m mintgate.cli verify-proof --address 0xabc... --root 0x... --proof 0x... 0x...
    python -m mintgate.cli audit --events data/events.jsonl
    python -m mintgate.cli check-invariants

Defaults for --config and --events can be set in a .env file through
MINTGATE_CONFIG_DIR and MINTGATE_EVENTS.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from mintgate.crypto.merkle import AllowlistTree, digest_hex, parse_digest, verify_proof
from mintgate.persistence.event_log import EventLog, summarize
from mintgate.policy.resolver import PolicyResolver


ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG = ROOT / "config"
DEFAULT_EVENTS = ROOT / "data" / "events.jsonl"


def _read_addresses(path: Path) -> list[str]:
    """Read one address per line, ignoring blanks and # comments."""
    addresses: list[str] = []
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.split("#", 1)[0].strip()
            if line:
                addresses.append(line)
    return addresses


def cmd_params(args: argparse.Namespace) -> int:
    try:
        policy = PolicyResolver.from_config_dir(args.config).policy
    except (OSError, ValueError) as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    print(json.dumps(policy.to_dict(), indent=2))
    return 0


def cmd_allowlist_root(args: argparse.Namespace) -> int:
    try:
        tree = AllowlistTree(_read_addresses(args.file))
    except (OSError, ValueError) as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    print(json.dumps({
        "members": tree.member_count,
        "root": digest_hex(tree.root),
    }, indent=2))
    return 0


def cmd_allowlist_proof(args: argparse.Namespace) -> int:
    try:
        tree = AllowlistTree(_read_addresses(args.file))
    except (OSError, ValueError) as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    proof = tree.proof_for(args.address)
    if proof is None:
        print(f"Failed: {args.address} is not on the allowlist", file=sys.stderr)
        return 1
    print(json.dumps({
        "address": proof.identity,
        "leaf": digest_hex(proof.leaf),
        "root": digest_hex(proof.root),
        "proof": proof.to_hex(),
    }, indent=2))
    return 0


def cmd_verify_proof(args: argparse.Namespace) -> int:
    try:
        root = parse_digest(args.root)
        proof = [parse_digest(p) for p in args.proof]
    except ValueError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    if verify_proof(args.address, proof, root):
        print("valid")
        return 0
    print("invalid", file=sys.stderr)
    return 1


def cmd_audit(args: argparse.Namespace) -> int:
    """Verify an event log's integrity and reconcile the supply counters."""
    if not args.events.exists():
        print(f"Failed: no event log at {args.events}", file=sys.stderr)
        return 1
    try:
        log = EventLog(storage_path=args.events)
    except (ValueError, KeyError) as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    print(json.dumps(summarize(log), indent=2, sort_keys=True))
    return 0


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run configuration invariant checks."""
    tools_dir = ROOT / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check
    return check(args.config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mintgate",
        description="mintgate — mint authorization and supply accounting",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(os.environ.get("MINTGATE_CONFIG_DIR", DEFAULT_CONFIG)),
        help="Path to config directory (default: config/)",
    )
    sub = parser.add_subparsers(dest="command")

    # params
    sub.add_parser("params", help="Show the resolved mint parameters")

    # allowlist-root
    p_root = sub.add_parser("allowlist-root", help="Compute an allowlist root")
    p_root.add_argument("--file", type=Path, required=True, help="Address list file")

    # allowlist-proof
    p_proof = sub.add_parser("allowlist-proof", help="Generate a membership proof")
    p_proof.add_argument("--file", type=Path, required=True, help="Address list file")
    p_proof.add_argument("--address", required=True, help="Member address")

    # verify-proof
    p_verify = sub.add_parser("verify-proof", help="Verify a membership proof")
    p_verify.add_argument("--address", required=True, help="Claimed member address")
    p_verify.add_argument("--root", required=True, help="Committed root (hex)")
    p_verify.add_argument("--proof", nargs="*", default=[], help="Proof digests (hex)")

    # audit
    p_audit = sub.add_parser("audit", help="Verify and summarize an event log")
    p_audit.add_argument(
        "--events",
        type=Path,
        default=Path(os.environ.get("MINTGATE_EVENTS", DEFAULT_EVENTS)),
        help="Path to events JSONL (default: data/events.jsonl)",
    )

    # check-invariants
    sub.add_parser("check-invariants", help="Run configuration invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "params": cmd_params,
        "allowlist-root": cmd_allowlist_root,
        "allowlist-proof": cmd_allowlist_proof,
        "verify-proof": cmd_verify_proof,
        "audit": cmd_audit,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
