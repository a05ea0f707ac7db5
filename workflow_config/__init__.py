"""
Transition rule tables loaded from YAML.

Runtime code receives ``TransitionRegistry`` objects; this package only
turns version-controlled YAML tables into them.
"""

from workflow_config.loader import (
    bundled_table_path,
    compute_checksum,
    load_bundled_registries,
    load_bundled_registry,
    load_registries,
    load_registry,
    parse_registry,
    parse_rule,
)

__all__ = [
    "bundled_table_path",
    "compute_checksum",
    "load_bundled_registries",
    "load_bundled_registry",
    "load_registries",
    "load_registry",
    "parse_registry",
    "parse_rule",
]
