"""
Seed script: creates a demo user with clients, a bank account, services,
invoices (one partially paid) and a few expenses.
Run from the repository root: python -m scripts.seed
"""
import asyncio
import sys
import os
import uuid
from datetime import date, timedelta
from decimal import Decimal

# Ensure the project root is on sys.path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select
from invoicehub.database import session_scope
from invoicehub.models.user import User
from invoicehub.models.client import Client
from invoicehub.models.bank_account import BankAccount
from invoicehub.models.service import Service
from invoicehub.models.expense import Expense
from invoicehub.services.auth_service import hash_password
from invoicehub.services.invoice_service import create_invoice_with_line_items
from invoicehub.services.payment_ledger import record_payment

# ---------- Fixed UUIDs ----------

USER_ADMIN_ID = uuid.UUID("a0000000-0000-0000-0000-000000000001")
USER_DEMO_ID = uuid.UUID("a0000000-0000-0000-0000-000000000002")

CLIENT_ACME_ID = uuid.UUID("c0000000-0000-0000-0000-000000000001")
CLIENT_GLOBEX_ID = uuid.UUID("c0000000-0000-0000-0000-000000000002")

BANK_ACCOUNT_ID = uuid.UUID("b0000000-0000-0000-0000-000000000001")

DEFAULT_PASSWORD = "InvoiceHub123!"


async def seed():
    async with session_scope() as db:
        # Check if already seeded
        result = await db.execute(select(User).where(User.id == USER_DEMO_ID))
        if result.scalar_one_or_none():
            print("Seed data already exists. Skipping.")
            return

        hashed_pw = hash_password(DEFAULT_PASSWORD)

        # --- Users ---
        db.add_all([
            User(id=USER_ADMIN_ID, email="admin@invoicehub.example.com", password_hash=hashed_pw,
                 name="System Admin", role="admin"),
            User(id=USER_DEMO_ID, email="demo@invoicehub.example.com", password_hash=hashed_pw,
                 name="Dana Freelancer", role="user", company_name="Dana Design Studio",
                 preferred_currency="USD"),
        ])
        await db.flush()

        # --- Clients ---
        db.add_all([
            Client(id=CLIENT_ACME_ID, user_id=USER_DEMO_ID, name="Wile E. Coyote",
                   email="billing@acme.example.com", company="Acme Corporation"),
            Client(id=CLIENT_GLOBEX_ID, user_id=USER_DEMO_ID, name="Hank Scorpio",
                   email="accounts@globex.example.com", company="Globex"),
        ])

        # --- Bank account + services ---
        db.add(BankAccount(
            id=BANK_ACCOUNT_ID, user_id=USER_DEMO_ID, account_holder_name="Dana Freelancer",
            bank_name="First Demo Bank", iban="DE89370400440532013000", swift_code="COBADEFFXXX",
            is_default=True,
        ))
        db.add_all([
            Service(user_id=USER_DEMO_ID, name="Design consultation", category="design",
                    price=Decimal("95.00"), unit="hour"),
            Service(user_id=USER_DEMO_ID, name="Logo package", category="branding",
                    price=Decimal("1200.00"), unit="project"),
        ])
        await db.flush()

        # --- Invoices ---
        today = date.today()
        inv_paid, _ = await create_invoice_with_line_items(
            db,
            user_id=USER_DEMO_ID,
            client_id=CLIENT_ACME_ID,
            line_items=[
                {"description": "Widget", "quantity": 2, "price": 50},
                {"description": "Setup", "quantity": 1, "price": 25},
            ],
            tax_rate=10,
            invoice_date=today - timedelta(days=20),
            due_date=today + timedelta(days=10),
            bank_account_id=BANK_ACCOUNT_ID,
        )
        inv_paid.status = "sent"
        await db.flush()
        await record_payment(db, inv_paid.id, USER_DEMO_ID, Decimal("50.00"))

        await create_invoice_with_line_items(
            db,
            user_id=USER_DEMO_ID,
            client_id=CLIENT_GLOBEX_ID,
            line_items=[{"description": "Logo package", "quantity": 1, "price": 1200}],
            tax_rate=0,
            due_date=today + timedelta(days=30),
        )

        # --- Expenses ---
        db.add_all([
            Expense(user_id=USER_DEMO_ID, description="Adobe subscription", category="software",
                    amount=Decimal("54.99"), expense_date=today - timedelta(days=12),
                    payment_method="credit_card", vendor="Adobe", is_tax_deductible=True),
            Expense(user_id=USER_DEMO_ID, description="Client lunch", category="meals",
                    amount=Decimal("42.50"), expense_date=today - timedelta(days=5),
                    payment_method="cash", vendor="Bistro 21"),
        ])

        print("Seed data inserted successfully!")
        print(f"  Users: 2 (password: {DEFAULT_PASSWORD})")
        print("  Clients: 2")
        print("  Invoices: 2 (one partially paid)")
        print("  Expenses: 2")


if __name__ == "__main__":
    asyncio.run(seed())
