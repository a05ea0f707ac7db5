"""
Module: workflow_kernel.models.governed_entity
Responsibility: ORM persistence for the status of governed entities.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (entity_type, entity_id) is unique: one status row per governed record.
    - status changes only through a conditional UPDATE issued by
      SqlEntityStore.compare_and_set_status; every successful write bumps
      ``version``.
    - status is a cache of the last successful status_history entry's
      to_state (checked by HistoryReconciliationService).

Non-goals:
    The business record itself (voucher amounts, risk scores, budget lines)
    lives in the host application's tables.  This row carries only what the
    workflow engine needs.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from workflow_kernel.db.base import Base, UTCDateTime, UUIDString


class GovernedEntityModel(Base):
    """Current workflow status of one governed record."""

    __tablename__ = "governed_entities"

    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", name="uq_governed_entity_key"),
        Index("idx_governed_entity_org", "organization_id"),
        Index("idx_governed_entity_status", "entity_type", "status"),
    )

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # Host-side record id; opaque to the engine
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)

    organization_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    status: Mapped[str] = mapped_column(String(50), nullable=False)

    # Status the entity was created in; replay starts here
    initial_status: Mapped[str] = mapped_column(String(50), nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<GovernedEntity {self.entity_type}:{self.entity_id} status={self.status}>"
