#!/usr/bin/env python3
"""
Print a transition rule table, or the transitions one role may take.

Usage:
    python3 scripts/show_transitions.py voucher
    python3 scripts/show_transitions.py budget_entry --state pending_approval --role admin
    python3 scripts/show_transitions.py --table path/to/table.yaml
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

W = 88


def _print_table(registry) -> None:
    print()
    print("=" * W)
    print(f"{registry.entity_type.upper()} (initial: {registry.initial_state})".center(W))
    print("=" * W)
    print(f"  {'From':<18} {'To':<18} {'Action':<16} {'Comment':<8} Roles")
    print(f"  {'-'*18} {'-'*18} {'-'*16} {'-'*8} {'-'*22}")
    for rule in registry:
        print(
            f"  {rule.from_state:<18} {rule.to_state:<18} {rule.action:<16} "
            f"{'yes' if rule.requires_comment else 'no':<8} "
            f"{', '.join(sorted(rule.allowed_roles))}"
        )
    terminal = ", ".join(sorted(registry.terminal_states)) or "(none)"
    print()
    print(f"  Terminal states: {terminal}")
    print()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("name", nargs="?", help="Bundled table name (voucher, budget_entry)")
    parser.add_argument("--table", type=Path, help="Path to a YAML rule table")
    parser.add_argument("--state", help="Current state to query")
    parser.add_argument("--role", help="Acting role to query")
    args = parser.parse_args(argv)

    logging.disable(logging.CRITICAL)

    from workflow_config import load_bundled_registry, load_registry
    from workflow_kernel.domain import Actor, GuardEngine

    if args.table is not None:
        registry = load_registry(args.table)
    elif args.name:
        try:
            registry = load_bundled_registry(args.name)
        except FileNotFoundError:
            print(f"  ERROR: no bundled table named '{args.name}'", file=sys.stderr)
            return 1
    else:
        parser.error("give a bundled table name or --table")

    if args.state is None and args.role is None:
        _print_table(registry)
        return 0
    if args.state is None or args.role is None:
        parser.error("--state and --role go together")

    targets = GuardEngine().allowed_targets(
        registry, args.state, Actor(id="cli", role=args.role)
    )
    if not targets:
        print(f"  No transitions from '{args.state}' for role '{args.role}'.")
        return 0
    for target in targets:
        rule = registry.rule_for(args.state, target)
        note = " (comment required)" if rule is not None and rule.requires_comment else ""
        print(f"  {args.state} -> {target}{note}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
