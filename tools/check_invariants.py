#!/usr/bin/env python3
"""mintgate invariant checks against the persisted mint configuration.

The rules themselves live in PolicyResolver; this tool reports every
violation in a config directory and turns the result into an exit code.
"""

import json
import sys
from pathlib import Path
from typing import Optional


ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = ROOT / "config"
PARAMS_FILE = "mint_params.json"

# Add src to path for mintgate imports
sys.path.insert(0, str(ROOT / "src"))

from mintgate.policy.resolver import PolicyResolver, PolicyValidationError  # noqa: E402


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check(config_dir: Optional[Path] = None) -> int:
    path = (config_dir or CONFIG_DIR) / PARAMS_FILE
    errors: list[str] = []
    try:
        params = load_json(path)
    except (OSError, json.JSONDecodeError) as e:
        errors.append(f"{path}: {e}")
    else:
        if not isinstance(params, dict):
            errors.append(f"{path}: top level must be an object")
        else:
            try:
                policy = PolicyResolver(params).policy
            except PolicyValidationError as e:
                errors.extend(e.errors)
            else:
                print(
                    f"supply {policy.max_total} (gift pool {policy.max_gifted}, "
                    f"{policy.max_per_phase} per phase)"
                )

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"  - {err}")
        return 1

    print("All invariant checks passed.")
    return 0


if __name__ == "__main__":
    sys.exit(check())
