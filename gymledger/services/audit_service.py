"""Audit service for logging membership and money-movement events."""

from sqlalchemy.orm import Session

from gymledger.models.audit_log import AuditLog


class AuditService:
    """Service for audit log operations.

    Entries are added to the caller's session and commit (or roll back)
    together with the change they describe.
    """

    @staticmethod
    def log(
        db: Session,
        entity_type: str,
        entity_id: int,
        action: str,
        actor: str | None = None,
        changes: dict | None = None,
        gym_id: int | None = None,
    ) -> AuditLog:
        """Create audit log entry.

        Args:
            db: Database session
            entity_type: Type of entity ("membership", "transaction", "daily_cash")
            entity_id: Primary key of the entity
            action: Action performed ("pay", "cancel", "renew", "close", etc.)
            actor: Operator who performed the action (None for scheduled runs)
            changes: Optional JSON snapshot of changed fields
            gym_id: Owning gym

        Returns:
            Created AuditLog object
        """
        audit = AuditLog(
            gym_id=gym_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor=actor,
            changes=changes,
        )
        db.add(audit)
        return audit

    @staticmethod
    def list_for_entity(db: Session, entity_type: str, entity_id: int) -> list[AuditLog]:
        return (
            db.query(AuditLog)
            .filter_by(entity_type=entity_type, entity_id=entity_id)
            .order_by(AuditLog.id)
            .all()
        )


__all__ = ["AuditService"]
