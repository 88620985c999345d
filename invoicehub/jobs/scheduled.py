# invoicehub/jobs/scheduled.py
"""
Scheduled background jobs triggered by an external scheduler calling these endpoints.

Jobs:
  - process-scheduled-invoices: Hourly, emails scheduled invoices that are due
  - process-recurring-invoices: Daily, generates invoices from due templates
  - mark-overdue-invoices: Daily, flags unpaid invoices past their due date
"""

import secrets

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from invoicehub.config import settings
from invoicehub.database import get_db
from invoicehub.schemas.invoice import JobRunResponse
from invoicehub.services.invoice_scheduler import mark_overdue_invoices, process_scheduled_invoices
from invoicehub.services.recurring_invoice_service import process_recurring_invoices

logger = structlog.get_logger()
router = APIRouter()


async def _require_internal_auth(request: Request):
    """Validate the X-Internal-Secret header against INTERNAL_JOB_SECRET."""
    secret = settings.INTERNAL_JOB_SECRET
    if not secret:
        # In development (DEBUG=True), allow unauthenticated internal calls
        if settings.DEBUG:
            return
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="INTERNAL_JOB_SECRET is not configured",
        )
    provided = request.headers.get("X-Internal-Secret")
    if not provided or not secrets.compare_digest(provided, secret):
        logger.warning("internal_auth_failed", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )


@router.post("/process-scheduled-invoices", response_model=JobRunResponse)
async def run_scheduled_invoices(
    db: AsyncSession = Depends(get_db),
    _auth: None = Depends(_require_internal_auth),
):
    run = await process_scheduled_invoices(db)
    return JobRunResponse(
        processed=run.processed,
        succeeded=run.sent,
        errors=run.errors,
        error_messages=run.error_messages,
    )


@router.post("/process-recurring-invoices", response_model=JobRunResponse)
async def run_recurring_invoices(
    db: AsyncSession = Depends(get_db),
    _auth: None = Depends(_require_internal_auth),
):
    run = await process_recurring_invoices(db)
    return JobRunResponse(
        processed=run.processed,
        succeeded=run.generated,
        errors=run.errors,
        error_messages=run.error_messages,
    )


@router.post("/mark-overdue-invoices")
async def run_mark_overdue(
    db: AsyncSession = Depends(get_db),
    _auth: None = Depends(_require_internal_auth),
):
    count = await mark_overdue_invoices(db)
    return {"processed": count}
