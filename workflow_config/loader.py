"""
Rule Table Loader (``workflow_config.loader``).

Responsibility
--------------
Loads per-entity-type transition tables from YAML and builds immutable
``TransitionRegistry`` instances from them.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on the kernel domain
(``TransitionRule``, ``TransitionRegistry``) and nothing else in the
project.

Invariants enforced
-------------------
* Missing required keys raise ``KeyError``; no silent defaults for
  ``entity_type``, ``from``, ``to`` or ``roles``.
* Duplicate ``(from, to)`` edges raise ``DuplicateTransitionRuleError``
  (from the registry constructor).
* ``compute_checksum`` produces a deterministic SHA-256 hash of a parsed
  table for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* A table whose top level is not a mapping  -> ``ValueError``.

Audit relevance
---------------
Each load logs the table's checksum, so the rule set in force at any
point can be matched to a version-controlled file.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from workflow_kernel.domain.registry import TransitionRegistry
from workflow_kernel.domain.workflow import DEFAULT_INITIAL_STATE, TransitionRule
from workflow_kernel.exceptions import RegistryError
from workflow_kernel.logging_config import get_logger

logger = get_logger("config.loader")

TABLES_DIR = Path(__file__).parent / "tables"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def parse_rule(data: dict[str, Any]) -> TransitionRule:
    """Build one rule.  ``requires_comment`` must be a YAML boolean.

    Raises:
        KeyError: if ``from``, ``to`` or ``roles`` is missing.
        ValueError: if ``requires_comment`` is not true/false (a quoted
            "false" would otherwise read as true).
    """
    roles = data["roles"]
    if isinstance(roles, str):
        roles = [roles]
    requires_comment = data.get("requires_comment", False)
    if not isinstance(requires_comment, bool):
        raise ValueError(
            f"requires_comment for {data['from']} -> {data['to']} must be "
            f"true or false, got {requires_comment!r}"
        )
    return TransitionRule(
        from_state=str(data["from"]),
        to_state=str(data["to"]),
        allowed_roles=frozenset(str(r) for r in roles),
        requires_comment=requires_comment,
        action=str(data.get("action", "")),
    )


def parse_registry(data: dict[str, Any]) -> TransitionRegistry:
    """Build a registry from a parsed table.

    ``initial_state`` defaults to ``draft``.
    """
    rules = [parse_rule(r) for r in data["transitions"] or []]
    return TransitionRegistry(
        str(data["entity_type"]),
        rules,
        initial_state=str(data.get("initial_state", DEFAULT_INITIAL_STATE)),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_registry(path: Path | str) -> TransitionRegistry:
    path = Path(path)
    data = load_yaml_file(path)
    registry = parse_registry(data)
    logger.info(
        "rule_table_loaded",
        extra={
            "entity_type": registry.entity_type,
            "path": str(path),
            "rule_count": len(registry),
            "checksum": compute_checksum(data),
        },
    )
    return registry


def load_registries(directory: Path | str) -> dict[str, TransitionRegistry]:
    """Load every ``*.yaml`` table in ``directory``, keyed by entity type.

    Two files declaring the same entity type raise RegistryError.
    """
    directory = Path(directory)
    registries: dict[str, TransitionRegistry] = {}
    for path in sorted(directory.glob("*.yaml")):
        registry = load_registry(path)
        if registry.entity_type in registries:
            raise RegistryError(
                f"Entity type '{registry.entity_type}' declared twice "
                f"(second declaration in {path.name})"
            )
        registries[registry.entity_type] = registry
    return registries


def bundled_table_path(name: str) -> Path:
    return TABLES_DIR / f"{name}.yaml"


def load_bundled_registry(name: str) -> TransitionRegistry:
    """Load one of the tables shipped with the package (``voucher``, ``budget_entry``)."""
    return load_registry(bundled_table_path(name))


def load_bundled_registries() -> dict[str, TransitionRegistry]:
    return load_registries(TABLES_DIR)
