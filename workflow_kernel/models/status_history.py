"""
Module: workflow_kernel.models.status_history
Responsibility: ORM persistence for the append-only transition audit trail.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - Append-only; no UPDATE or DELETE (ORM listeners in db/immutability.py).
    - seq is assigned by the database and increases with insertion order;
      it breaks ties between entries with equal timestamps.
    - outcome is 'success' or 'rejected'; rejection_reason is set iff the
      outcome is 'rejected'.

Audit relevance:
    Every call to WorkflowService.transition writes exactly one row here,
    including guard failures and concurrency conflicts.  Replaying the
    successful rows of an entity in (occurred_at, seq) order reproduces
    the entity's current status.
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from workflow_kernel.db.base import Base, UTCDateTime
from workflow_kernel.domain.audit import AuditEntry, AuditOutcome


class StatusHistoryModel(Base):
    """One transition attempt for one governed entity."""

    __tablename__ = "status_history"

    __table_args__ = (
        CheckConstraint(
            "outcome IN ('success', 'rejected')",
            name="ck_status_history_outcome",
        ),
        CheckConstraint(
            "(outcome = 'rejected') = (rejection_reason IS NOT NULL)",
            name="ck_status_history_rejection_reason",
        ),
        Index("idx_status_history_entity", "entity_type", "entity_id", "occurred_at"),
        Index("idx_status_history_actor", "actor_id"),
        Index("idx_status_history_outcome", "outcome"),
    )

    # SQLite only autoincrements INTEGER PRIMARY KEY
    seq: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    organization_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    from_state: Mapped[str] = mapped_column(String(50), nullable=False)
    to_state: Mapped[str] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(50), nullable=False)

    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    outcome: Mapped[str] = mapped_column(String(16), nullable=False)

    # Error code (UNDEFINED_TRANSITION, ROLE_NOT_PERMITTED, ...)
    rejection_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    rejection_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<StatusHistory #{self.seq} {self.entity_type}:{self.entity_id} "
            f"{self.from_state}->{self.to_state} {self.outcome}>"
        )

    @classmethod
    def from_entry(cls, entry: AuditEntry) -> "StatusHistoryModel":
        return cls(
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            organization_id=entry.organization_id,
            from_state=entry.from_state,
            to_state=entry.to_state,
            actor_id=entry.actor_id,
            actor_role=entry.actor_role,
            comment=entry.comment,
            occurred_at=entry.timestamp,
            outcome=entry.outcome.value,
            rejection_reason=entry.rejection_reason,
            rejection_message=entry.rejection_message,
        )

    def to_entry(self) -> AuditEntry:
        return AuditEntry(
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            organization_id=self.organization_id,
            from_state=self.from_state,
            to_state=self.to_state,
            actor_id=self.actor_id,
            actor_role=self.actor_role,
            comment=self.comment,
            timestamp=self.occurred_at,
            outcome=AuditOutcome(self.outcome),
            rejection_reason=self.rejection_reason,
            rejection_message=self.rejection_message,
            seq=self.seq,
        )
