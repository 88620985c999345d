"""Central model registry: import all models so Alembic autodiscover works."""

from invoicehub.database import Base  # noqa: F401

from invoicehub.models.user import User  # noqa: F401
from invoicehub.models.client import Client  # noqa: F401
from invoicehub.models.bank_account import BankAccount  # noqa: F401
from invoicehub.models.service import Service  # noqa: F401
from invoicehub.models.recurring_invoice import RecurringInvoice, RecurringInvoiceItem  # noqa: F401
from invoicehub.models.invoice import Invoice, InvoiceLineItem  # noqa: F401
from invoicehub.models.payment import Payment  # noqa: F401
from invoicehub.models.expense import Expense  # noqa: F401
from invoicehub.models.audit_log import AuditLog  # noqa: F401
