"""
Audit trail for invoices.

Every status change and every payment recorded or removed leaves an
audit_logs row with the invoice state before and after. Rows are written
through the caller's session so they commit or roll back with the change.
"""

from typing import Optional
from datetime import datetime
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from invoicehub.models.audit_log import AuditLog

logger = structlog.get_logger()

INVOICE_ENTITY = "INVOICE"


def invoice_snapshot(invoice) -> dict:
    """The audited subset of an invoice's state."""
    return {
        "status": invoice.status,
        "amount_paid": str(invoice.amount_paid),
    }


def changed_fields(before: Optional[dict], after: Optional[dict]) -> Optional[list[str]]:
    if not before or not after:
        return None
    keys = sorted(set(before) | set(after))
    return [k for k in keys if before.get(k) != after.get(k)] or None


def _optional_uuid(value) -> Optional[uuid.UUID]:
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        logger.warning("audit_invalid_user_id", value=str(value))
        return None


async def create_audit_log(
    session: AsyncSession,
    user_id,
    action: str,
    entity_type: str,
    entity_id,
    before_state: Optional[dict] = None,
    after_state: Optional[dict] = None,
    actor_email: Optional[str] = None,
) -> AuditLog:
    """Add an audit row and flush. The request id is taken from the structlog context."""
    entry = AuditLog(
        user_id=_optional_uuid(user_id),
        actor_email=actor_email,
        action=action,
        entity_type=entity_type,
        entity_id=uuid.UUID(str(entity_id)),
        before_state=before_state,
        after_state=after_state,
        changed_fields=changed_fields(before_state, after_state),
        request_id=structlog.contextvars.get_contextvars().get("request_id"),
        created_at=datetime.utcnow(),
    )
    session.add(entry)
    await session.flush()

    logger.info(
        "audit_log_created",
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
    )
    return entry


async def record_invoice_event(
    session: AsyncSession,
    invoice,
    action: str,
    before: dict,
    user_id=None,
    actor_email: Optional[str] = None,
) -> AuditLog:
    """Audit a change to `invoice`; the after-state is read from the invoice itself."""
    return await create_audit_log(
        session,
        user_id=user_id if user_id is not None else invoice.user_id,
        action=action,
        entity_type=INVOICE_ENTITY,
        entity_id=invoice.id,
        before_state=before,
        after_state=invoice_snapshot(invoice),
        actor_email=actor_email,
    )


async def list_invoice_history(session: AsyncSession, invoice_id) -> list[AuditLog]:
    result = await session.execute(
        select(AuditLog)
        .where(AuditLog.entity_type == INVOICE_ENTITY, AuditLog.entity_id == invoice_id)
        .order_by(AuditLog.created_at)
    )
    return list(result.scalars().all())
