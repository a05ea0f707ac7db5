"""
Voucher lifecycle table.

The canonical rule set for voucher-like entities.  Other entity types
supply their own registry with the same shape (see ``workflow_config``).

    draft -> pending_approval -> approved -> posted -> correction
      |            |    ^
      v            v    |
    cancelled   cancelled  (back to draft with a comment)
"""

from workflow_kernel.domain.registry import TransitionRegistry
from workflow_kernel.domain.workflow import TransitionRule

VOUCHER_ENTITY_TYPE = "voucher"

DRAFT = "draft"
PENDING_APPROVAL = "pending_approval"
APPROVED = "approved"
POSTED = "posted"
CORRECTION = "correction"
CANCELLED = "cancelled"

PREPARER = "preparer"
SPENDING_AUTHORITY = "spending_authority"
REALIZATION_OFFICER = "realization_officer"
ACCOUNTANT = "accountant"
ADMIN = "admin"
SUPER_ADMIN = "super_admin"

VOUCHER_RULES: tuple[TransitionRule, ...] = (
    TransitionRule(
        from_state=DRAFT,
        to_state=PENDING_APPROVAL,
        allowed_roles=frozenset({PREPARER, ADMIN, SUPER_ADMIN}),
        action="submit",
    ),
    TransitionRule(
        from_state=PENDING_APPROVAL,
        to_state=APPROVED,
        allowed_roles=frozenset({SPENDING_AUTHORITY, ADMIN, SUPER_ADMIN}),
        action="approve",
    ),
    TransitionRule(
        from_state=PENDING_APPROVAL,
        to_state=DRAFT,
        allowed_roles=frozenset({PREPARER, SPENDING_AUTHORITY, ADMIN, SUPER_ADMIN}),
        requires_comment=True,
        action="return_to_draft",
    ),
    TransitionRule(
        from_state=APPROVED,
        to_state=POSTED,
        allowed_roles=frozenset({REALIZATION_OFFICER, ACCOUNTANT, ADMIN, SUPER_ADMIN}),
        action="post",
    ),
    TransitionRule(
        from_state=POSTED,
        to_state=CORRECTION,
        allowed_roles=frozenset({ACCOUNTANT, ADMIN, SUPER_ADMIN}),
        requires_comment=True,
        action="correct",
    ),
    TransitionRule(
        from_state=DRAFT,
        to_state=CANCELLED,
        allowed_roles=frozenset({PREPARER, ADMIN, SUPER_ADMIN}),
        requires_comment=True,
        action="cancel",
    ),
    TransitionRule(
        from_state=PENDING_APPROVAL,
        to_state=CANCELLED,
        allowed_roles=frozenset({SPENDING_AUTHORITY, ADMIN, SUPER_ADMIN}),
        requires_comment=True,
        action="cancel",
    ),
)

VOUCHER_REGISTRY = TransitionRegistry(
    VOUCHER_ENTITY_TYPE,
    VOUCHER_RULES,
    initial_state=DRAFT,
)
