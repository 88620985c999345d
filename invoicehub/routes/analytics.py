"""
Analytics API: /api/v1/analytics

Provides:
  - expense analytics (category, tax savings, time series, vendors, payment methods)
  - invoice dashboard (counts per status, receivables, revenue collected)
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from invoicehub.database import get_db
from invoicehub.middleware.auth import get_current_user
from invoicehub.models.client import Client
from invoicehub.models.expense import Expense
from invoicehub.models.invoice import Invoice
from invoicehub.schemas.analytics import DashboardResponse
from invoicehub.schemas.common import money
from invoicehub.schemas.expense import ExpenseAnalyticsResponse
from invoicehub.services.expense_analytics import PERIODS, calculate_expense_analytics
from invoicehub.services.invoice_status import InvoiceStatus, OPEN_STATUSES

router = APIRouter()

# Cancelled and refunded invoices are not counted as invoiced revenue
_BILLED_STATUSES = tuple(
    s.value
    for s in InvoiceStatus
    if s not in (InvoiceStatus.DRAFT, InvoiceStatus.SCHEDULED, InvoiceStatus.CANCELLED, InvoiceStatus.REFUNDED)
)


@router.get("/expenses", response_model=ExpenseAnalyticsResponse)
async def get_expense_analytics(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    tax_rate: float = Query(0, ge=0, le=100),
    period: str = Query("month", pattern="^(" + "|".join(PERIODS) + ")$"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = select(Expense).where(Expense.user_id == current_user["user_id"])
    if start_date:
        q = q.where(Expense.expense_date >= start_date)
    if end_date:
        q = q.where(Expense.expense_date <= end_date)
    expenses = list((await db.execute(q.order_by(Expense.expense_date))).scalars().all())
    return calculate_expense_analytics(expenses, tax_rate=tax_rate, period=period)


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = current_user["user_id"]

    status_rows = await db.execute(
        select(Invoice.status, func.count(Invoice.id))
        .where(Invoice.user_id == user_id)
        .group_by(Invoice.status)
    )
    counts = {s.value: 0 for s in InvoiceStatus}
    counts.update({row[0]: row[1] for row in status_rows.all()})

    totals = (
        await db.execute(
            select(
                func.coalesce(func.sum(Invoice.total), 0),
                func.coalesce(func.sum(Invoice.amount_paid), 0),
            ).where(Invoice.user_id == user_id, Invoice.status.in_(_BILLED_STATUSES))
        )
    ).one()

    outstanding = (
        await db.execute(
            select(func.coalesce(func.sum(Invoice.total - Invoice.amount_paid), 0)).where(
                Invoice.user_id == user_id,
                Invoice.status.in_([s.value for s in OPEN_STATUSES]),
            )
        )
    ).scalar()

    client_count = (
        await db.execute(select(func.count(Client.id)).where(Client.user_id == user_id))
    ).scalar() or 0

    return DashboardResponse(
        invoice_counts=counts,
        total_invoiced=money(totals[0]),
        revenue_collected=money(totals[1]),
        outstanding_receivables=money(outstanding or Decimal("0")),
        overdue_count=counts[InvoiceStatus.OVERDUE.value],
        client_count=client_count,
    )
