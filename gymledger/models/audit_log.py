"""Audit log model for tracking membership lifecycle events."""

from typing import Any

from sqlalchemy import JSON, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from gymledger.models import Base, BaseModel


class AuditLog(Base, BaseModel):
    """Audit log entry for tracking changes to memberships and money movements.

    Records who (actor) did what (action) to which entity (entity_type,
    entity_id) and optional field snapshots (changes).
    """

    __tablename__ = "audit_logs"

    gym_id: Mapped[int | None] = mapped_column(ForeignKey("gyms.id"), nullable=True)
    """Gym the entity belongs to."""

    entity_type: Mapped[str] = mapped_column(String(50), index=False)
    """Entity type being audited: "membership", "transaction", etc."""

    entity_id: Mapped[int] = mapped_column(index=False)
    """Primary key of the entity being audited."""

    action: Mapped[str] = mapped_column(String(50), index=False)
    """Action performed: "pay", "cancel", "renew", etc."""

    actor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    """Operator who performed the action. None for scheduled runs."""

    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True, index=False)
    """Optional JSON snapshot of changed fields: {"status": "cancelled", "refund": "500.00"}."""

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, entity_type={self.entity_type}, entity_id={self.entity_id}, "
            f"action={self.action}, actor={self.actor}, created_at={self.created_at})>"
        )


__all__ = ["AuditLog"]
