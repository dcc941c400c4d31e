"""Audit trail service."""

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stayledger.models.admin import AuditLog


class AuditService:
    """Service for append-only audit logging of state changes and money movement."""

    # Actions written by the booking core
    ACTIONS = {
        "booking_status_change",
        "payment_initialize",
        "payment_verify",
        "payment_fail",
        "payment_mismatch",
        "refund_create",
        "dispute_open",
        "dispute_review",
        "dispute_resolve",
        "dispute_close",
    }

    async def log_action(
        self,
        db: AsyncSession,
        action: str,
        resource_type: str,
        resource_id: UUID,
        actor_id: UUID | None = None,
        actor_role: str | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Log an action (immutable).

        Args:
            db: Database session
            action: Action name (e.g., "refund_create")
            resource_type: Resource type (e.g., "booking", "payment")
            resource_id: Resource ID
            actor_id: User performing the action, None for the system
            actor_role: GUEST, REALTOR, ADMIN or SYSTEM
            old_values: Previous state
            new_values: New state

        Returns:
            Created audit log entry
        """
        audit = AuditLog(
            actor_id=actor_id,
            actor_role=actor_role,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            old_values=old_values,
            new_values=new_values,
        )
        db.add(audit)
        return audit

    async def log_status_change(
        self,
        db: AsyncSession,
        resource_type: str,
        resource_id: UUID,
        old_status: str,
        new_status: str,
        actor_role: str | None = None,
        actor_id: UUID | None = None,
        **details: Any,
    ) -> AuditLog:
        """Log a lifecycle transition."""
        return await self.log_action(
            db,
            action=f"{resource_type}_status_change",
            resource_type=resource_type,
            resource_id=resource_id,
            actor_id=actor_id,
            actor_role=actor_role,
            old_values={"status": old_status},
            new_values={"status": new_status, **details},
        )

    async def get_trail(
        self,
        db: AsyncSession,
        resource_id: UUID,
    ) -> list[AuditLog]:
        """All audit rows for a resource, oldest first."""
        result = await db.execute(
            select(AuditLog)
            .where(AuditLog.resource_id == resource_id)
            .order_by(AuditLog.created_at, AuditLog.id)
        )
        return list(result.scalars().all())


audit_service = AuditService()
