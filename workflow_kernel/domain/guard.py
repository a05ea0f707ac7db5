"""
GuardEngine -- pure transition guard evaluation.

Responsibility:
    Decides whether an actor may apply a rule: the rule must exist, the
    actor's role must be in the rule's allowed roles, and a rule that
    requires a comment must receive a non-blank one.  The same role check
    backs ``available_transitions``.

Architecture position:
    Kernel > Domain -- pure functional core.  No logging, no I/O, no
    clock; the caller records the outcome.

Invariants enforced:
    - Checks run in a fixed order: existence, role, comment.  The first
      failure wins, so an unauthorized actor never learns whether a
      comment would have been required.
    - Comment content is not validated beyond being non-blank.
"""

from __future__ import annotations

from dataclasses import dataclass

from workflow_kernel.domain.registry import TransitionRegistry
from workflow_kernel.domain.workflow import Actor, TransitionRule, WorkflowState
from workflow_kernel.exceptions import (
    CommentRequiredError,
    RoleNotPermittedError,
    TransitionError,
    UndefinedTransitionError,
)


@dataclass(frozen=True)
class GuardResult:
    """Result of a guard evaluation.

    ``rule`` is the validated rule when ``passed``; ``error`` is the typed
    failure otherwise.
    """

    passed: bool
    rule: TransitionRule | None = None
    error: TransitionError | None = None


def _is_blank(comment: str | None) -> bool:
    return comment is None or not comment.strip()


class GuardEngine:
    """Evaluates transition guards.  Stateless; one instance can be shared."""

    def evaluate(
        self,
        rule: TransitionRule | None,
        actor: Actor,
        comment: str | None,
        *,
        from_state: WorkflowState,
        to_state: WorkflowState,
    ) -> GuardResult:
        if rule is None:
            return GuardResult(
                passed=False,
                error=UndefinedTransitionError(from_state, to_state),
            )

        if not rule.allows(actor.role):
            return GuardResult(
                passed=False,
                rule=rule,
                error=RoleNotPermittedError(
                    role=actor.role,
                    from_state=rule.from_state,
                    to_state=rule.to_state,
                    allowed_roles=tuple(sorted(rule.allowed_roles)),
                ),
            )

        if rule.requires_comment and _is_blank(comment):
            return GuardResult(
                passed=False,
                rule=rule,
                error=CommentRequiredError(rule.from_state, rule.to_state),
            )

        return GuardResult(passed=True, rule=rule)

    def permits(self, rule: TransitionRule, actor: Actor) -> bool:
        """Role check only; the comment is supplied at execution time."""
        return rule.allows(actor.role)

    def allowed_targets(
        self,
        registry: TransitionRegistry,
        from_state: WorkflowState,
        actor: Actor,
    ) -> list[WorkflowState]:
        return [
            rule.to_state
            for rule in registry.rules_for(from_state)
            if self.permits(rule, actor)
        ]
