#!/usr/bin/env python3
"""plan_turn.py - Run the Hive policy over recorded game snapshots.

Usage:
    python scripts/plan_turn.py turn_001.json turn_002.json ...
    python scripts/plan_turn.py --debug 2 --set horizon.safety_margin=3 game.json

Each file holds one snapshot object (``{"turnNo": .., "ants": .., ...}``) or a
list of them. Snapshots are fed to a single policy instance in order, so
reservations and tasks carry over exactly as in a live game. One line of JSON
(``{"turn": n, "moves": [...]}``) is printed per snapshot on stdout; debug and
trace output goes to stderr.

Exit codes:
  0: every snapshot planned
  1: a file could not be read or a snapshot could not be parsed
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Iterator

from anthive_agents.policy.scripted_agent.hive import HiveConfig, HivePolicy, SnapshotError, moves_payload


def parse_overrides(pairs: list[str]) -> dict[str, str]:
    """``["a.b=1", "seed=7"]`` -> ``{"a.b": "1", "seed": "7"}``."""
    overrides: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"expected key=value, got {pair!r}")
        overrides[key.strip()] = value.strip()
    return overrides


def iter_snapshots(paths: list[Path]) -> Iterator[tuple[Path, Any]]:
    for path in paths:
        with open(path) as f:
            data = json.load(f)
        if isinstance(data, list):
            for item in data:
                yield path, item
        else:
            yield path, data


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("snapshots", nargs="+", type=Path, help="Snapshot JSON files, in turn order")
    parser.add_argument("--debug", type=int, default=0, choices=[0, 1, 2], help="Debug logger level")
    parser.add_argument("--trace", action="store_true", help="Print per-unit decision traces")
    parser.add_argument("--trace-level", type=int, default=1, help="Trace verbosity (1 or 2)")
    parser.add_argument("--trace-unit", default="", help="Only trace this unit id")
    parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Config override, e.g. horizon.safety_margin=3 (repeatable)",
    )
    args = parser.parse_args()

    try:
        config = HiveConfig.from_overrides(parse_overrides(args.overrides))
    except (KeyError, ValueError) as exc:
        parser.error(f"bad --set: {exc}")

    policy = HivePolicy(
        config=config,
        trace=int(args.trace),
        trace_level=args.trace_level,
        trace_unit=args.trace_unit,
        debug=args.debug,
    )

    try:
        for path, payload in iter_snapshots(args.snapshots):
            try:
                commands = policy.step(payload)
            except SnapshotError as exc:
                print(f"ERROR: {path}: {exc}", file=sys.stderr)
                return 1
            turn = policy.last_analysis.turn if policy.last_analysis else None
            print(json.dumps({"turn": turn, **moves_payload(commands)}, separators=(",", ":")))
    except (OSError, json.JSONDecodeError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        policy.end_game()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
