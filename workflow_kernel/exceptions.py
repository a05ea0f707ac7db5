"""
Typed Exception Hierarchy for the Workflow Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the workflow engine (HTTP handlers, UI actions, batch jobs)
must react differently to each failure: a missing comment is shown to the
user, a role failure is an authorization message, a concurrent
modification is refetched and retried, and an unavailable store is a
hard failure.  Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Transition outcomes (undefined edge, role, comment, conflict) are NOT
raised by ``WorkflowService.transition``.  They are returned inside a
``TransitionResult`` and recorded in the audit trail.  Infrastructure and
configuration errors ARE raised.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    WorkflowKernelError (base)
    |
    +-- TransitionError                 (returned in TransitionResult)
    |   +-- UndefinedTransitionError
    |   +-- RoleNotPermittedError
    |   +-- CommentRequiredError
    |   +-- ConcurrentModificationError (also a ConcurrencyError)
    |
    +-- ConcurrencyError
    |
    +-- StorageError
    |   +-- StorageUnavailableError
    |
    +-- EntityError
    |   +-- EntityNotFoundError
    |   +-- EntityAlreadyExistsError
    |
    +-- RegistryError
    |   +-- DuplicateTransitionRuleError
    |   +-- UnknownEntityTypeError
    |
    +-- AuditError
    |   +-- HistoryReplayError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised / Returned
----------------|-----------------------------|-----------------------------------------
Transition      | UNDEFINED_TRANSITION        | No rule for (from, to)
                | ROLE_NOT_PERMITTED          | Actor role not in allowed roles
                | COMMENT_REQUIRED            | Rule needs a comment, none given
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENT_MODIFICATION     | Stored status != caller's current state
----------------|-----------------------------|-----------------------------------------
Storage         | STORAGE_UNAVAILABLE         | Entity store or audit sink failed
----------------|-----------------------------|-----------------------------------------
Entity          | ENTITY_NOT_FOUND            | (entity_type, entity_id) not stored
                | ENTITY_ALREADY_EXISTS       | create_entity on an existing key
----------------|-----------------------------|-----------------------------------------
Registry        | DUPLICATE_TRANSITION_RULE   | Two rules for the same (from, to)
                | UNKNOWN_ENTITY_TYPE         | No registry for the entity type
----------------|-----------------------------|-----------------------------------------
Audit           | HISTORY_REPLAY_FAILED       | Audit history does not chain
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of an audit row

===============================================================================
HANDLING PATTERNS
===============================================================================

1. INSPECT RESULTS FOR TRANSITION OUTCOMES:

    result = service.transition("voucher", "42", "draft", "pending_approval", actor)
    if not result.success:
        return {"error": result.error_code, "message": result.reason}

2. RETRY CONCURRENT MODIFICATION ONCE (refetch state, re-present):

    if isinstance(result.error, ConcurrentModificationError):
        current = store.get_status("voucher", "42")
        options = service.available_transitions("voucher", current, actor)

3. LET STORAGE ERRORS PROPAGATE:

    except StorageUnavailableError:
        # Nothing was committed; caller decides retry policy.
        raise
"""


class WorkflowKernelError(Exception):
    """
    Base exception for all workflow kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "WORKFLOW_KERNEL_ERROR"


# Transition outcomes


class TransitionError(WorkflowKernelError):
    """Base for the non-fatal outcomes of a transition attempt."""

    code: str = "TRANSITION_ERROR"


class UndefinedTransitionError(TransitionError):
    """No rule exists for the requested (from, to) pair."""

    code: str = "UNDEFINED_TRANSITION"

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"No transition defined from '{from_state}' to '{to_state}'"
        )


class RoleNotPermittedError(TransitionError):
    """Actor's role is not among the rule's allowed roles."""

    code: str = "ROLE_NOT_PERMITTED"

    def __init__(
        self,
        role: str,
        from_state: str,
        to_state: str,
        allowed_roles: tuple[str, ...],
    ):
        self.role = role
        self.from_state = from_state
        self.to_state = to_state
        self.allowed_roles = allowed_roles
        super().__init__(
            f"Role '{role}' may not transition '{from_state}' -> '{to_state}'; "
            f"requires one of: {', '.join(allowed_roles)}"
        )


class CommentRequiredError(TransitionError):
    """Rule requires a non-empty comment and none was supplied."""

    code: str = "COMMENT_REQUIRED"

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"A comment is required to transition '{from_state}' -> '{to_state}'"
        )


# Concurrency


class ConcurrencyError(WorkflowKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(TransitionError, ConcurrencyError):
    """
    Stored status no longer matches the caller's current state.

    Another actor already transitioned the entity.  The caller should
    refetch the status and recompute available transitions.
    """

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_state: str,
        actual_state: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_state = expected_state
        self.actual_state = actual_state
        actual = actual_state if actual_state is not None else "unknown"
        super().__init__(
            f"{entity_type}:{entity_id} was modified concurrently: "
            f"expected status '{expected_state}', found '{actual}'"
        )


# Storage


class StorageError(WorkflowKernelError):
    """Base exception for storage errors."""

    code: str = "STORAGE_ERROR"


class StorageUnavailableError(StorageError):
    """
    Entity store or audit sink could not complete an operation.

    Fatal for the call.  Nothing is reported as committed; the caller
    decides the retry policy.
    """

    code: str = "STORAGE_UNAVAILABLE"

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        msg = f"Storage unavailable during {operation}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


# Entities


class EntityError(WorkflowKernelError):
    """Base exception for governed entity errors."""

    code: str = "ENTITY_ERROR"


class EntityNotFoundError(EntityError):
    """Governed entity is not present in the store."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"Entity not found: {entity_type}:{entity_id}")


class EntityAlreadyExistsError(EntityError):
    """Governed entity is already registered in the store."""

    code: str = "ENTITY_ALREADY_EXISTS"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"Entity already exists: {entity_type}:{entity_id}")


# Registry


class RegistryError(WorkflowKernelError):
    """Transition table is malformed."""

    code: str = "REGISTRY_ERROR"


class DuplicateTransitionRuleError(RegistryError):
    """Two rules were declared for the same (from, to) pair."""

    code: str = "DUPLICATE_TRANSITION_RULE"

    def __init__(self, entity_type: str, from_state: str, to_state: str):
        self.entity_type = entity_type
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Duplicate transition rule for {entity_type}: "
            f"'{from_state}' -> '{to_state}'"
        )


class UnknownEntityTypeError(RegistryError):
    """No transition registry is configured for the entity type."""

    code: str = "UNKNOWN_ENTITY_TYPE"

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"No transition registry for entity type '{entity_type}'")


# Audit


class AuditError(WorkflowKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class HistoryReplayError(AuditError):
    """
    Audit history for an entity does not form a valid chain.

    Each successful entry must start from the state produced by the
    previous one.
    """

    code: str = "HISTORY_REPLAY_FAILED"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        seq: int | None,
        expected_from: str,
        found_from: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.seq = seq
        self.expected_from = expected_from
        self.found_from = found_from
        super().__init__(
            f"Audit history for {entity_type}:{entity_id} breaks at seq {seq}: "
            f"expected from_state '{expected_from}', found '{found_from}'"
        )


# Immutability


class ImmutabilityError(WorkflowKernelError):
    """Base exception for immutability errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )
