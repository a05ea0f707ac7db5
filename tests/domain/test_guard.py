"""
Tests for GuardEngine.

Checks run in order: rule existence, role membership, comment.  The
first failing check determines the error.
"""

import pytest

from workflow_kernel.domain import voucher
from workflow_kernel.domain.guard import GuardEngine
from workflow_kernel.domain.workflow import Actor
from workflow_kernel.exceptions import (
    CommentRequiredError,
    RoleNotPermittedError,
    UndefinedTransitionError,
)

REGISTRY = voucher.VOUCHER_REGISTRY


@pytest.fixture
def guard():
    return GuardEngine()


def _evaluate(guard, src, dst, role, comment=None):
    return guard.evaluate(
        REGISTRY.rule_for(src, dst),
        Actor(id="u1", role=role),
        comment,
        from_state=src,
        to_state=dst,
    )


class TestEvaluate:

    def test_missing_rule_is_undefined_transition(self, guard):
        result = _evaluate(guard, voucher.CANCELLED, voucher.DRAFT, voucher.ADMIN, "reopen")
        assert not result.passed
        assert isinstance(result.error, UndefinedTransitionError)
        assert result.error.from_state == voucher.CANCELLED
        assert result.error.to_state == voucher.DRAFT

    def test_role_outside_allowed_set(self, guard):
        result = _evaluate(guard, voucher.APPROVED, voucher.POSTED, voucher.PREPARER)
        assert isinstance(result.error, RoleNotPermittedError)
        assert result.error.role == voucher.PREPARER
        assert result.error.allowed_roles == (
            "accountant", "admin", "realization_officer", "super_admin",
        )

    def test_role_checked_before_comment(self, guard):
        result = _evaluate(guard, voucher.POSTED, voucher.CORRECTION, voucher.PREPARER)
        assert isinstance(result.error, RoleNotPermittedError)

    @pytest.mark.parametrize("comment", [None, "", "   ", "\t\n"])
    def test_blank_comment_rejected(self, guard, comment):
        result = _evaluate(
            guard, voucher.PENDING_APPROVAL, voucher.DRAFT, voucher.PREPARER, comment
        )
        assert isinstance(result.error, CommentRequiredError)
        assert result.error.code == "COMMENT_REQUIRED"

    def test_any_non_blank_comment_accepted(self, guard):
        result = _evaluate(
            guard, voucher.PENDING_APPROVAL, voucher.DRAFT, voucher.PREPARER, "x"
        )
        assert result.passed
        assert result.rule is REGISTRY.rule_for(voucher.PENDING_APPROVAL, voucher.DRAFT)

    def test_comment_ignored_when_not_required(self, guard):
        result = _evaluate(guard, voucher.DRAFT, voucher.PENDING_APPROVAL, voucher.PREPARER)
        assert result.passed
        assert result.error is None


class TestAllowedTargets:

    def test_preparer_from_draft(self, guard):
        targets = guard.allowed_targets(REGISTRY, voucher.DRAFT, Actor("u", voucher.PREPARER))
        assert targets == [voucher.PENDING_APPROVAL, voucher.CANCELLED]

    def test_spending_authority_from_pending(self, guard):
        targets = guard.allowed_targets(
            REGISTRY, voucher.PENDING_APPROVAL, Actor("u", voucher.SPENDING_AUTHORITY)
        )
        assert targets == [voucher.APPROVED, voucher.DRAFT, voucher.CANCELLED]

    def test_comment_requirement_does_not_filter(self, guard):
        targets = guard.allowed_targets(
            REGISTRY, voucher.POSTED, Actor("u", voucher.ACCOUNTANT)
        )
        assert targets == [voucher.CORRECTION]

    def test_unknown_role_gets_nothing(self, guard):
        assert guard.allowed_targets(REGISTRY, voucher.DRAFT, Actor("u", "auditor")) == []

    @pytest.mark.parametrize("state", [voucher.CANCELLED, voucher.CORRECTION, "no_such_state"])
    def test_terminal_or_unknown_state(self, guard, state):
        assert guard.allowed_targets(REGISTRY, state, Actor("u", voucher.SUPER_ADMIN)) == []
