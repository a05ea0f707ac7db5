"""
Workflow Kernel

Entity lifecycle engine for governed records with:
- Declarative per-entity-type transition tables
- Role and comment guards
- Optimistic (compare-and-set) status writes
- Append-only audit trail of every transition attempt
"""

__version__ = "0.1.0"
